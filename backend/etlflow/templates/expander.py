"""
TemplateExpander — turns a template plus parameter values into a new
draft pipeline.

Substitution walks the template tree:
    "{{limit}}"            → the parameter value itself (type preserved)
    "top {{limit}} rows"   → the value formatted into the string
    "{{undeclared}}"       → left untouched

Instantiation is atomic: parameters are checked, the expanded document
is validated as a full definition, and only then is the pipeline created.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Callable

from pydantic import ValidationError as PydanticValidationError

from etlflow.core.clock import utcnow
from etlflow.core.constants import ParameterType, PipelineStatus
from etlflow.core.logging import get_logger
from etlflow.models.pipeline import Pipeline, PipelineDefinition, check_transformation_order
from etlflow.models.template import PipelineTemplate, TemplateParameter
from etlflow.pipeline.errors import MissingParameterError, ValidationError
from etlflow.repositories.pipelines import PipelineRepository
from etlflow.templates.registry import TemplateRegistry

logger = get_logger(__name__)

PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")

_TRUE = {"true", "1", "yes", "on"}
_FALSE = {"false", "0", "no", "off"}


def _coerce(template_id: str, param: TemplateParameter, value: Any) -> Any:
    """Check `value` against the declared parameter type."""
    def invalid(reason: str) -> ValidationError:
        return ValidationError(
            f"Parameter '{param.name}' {reason}",
            details={"template_id": template_id, "parameter": param.name, "value": value},
        )

    if param.type == ParameterType.NUMBER:
        if isinstance(value, bool):
            raise invalid("must be a number")
        if isinstance(value, (int, float)):
            return value
        if isinstance(value, str):
            try:
                number = float(value)
            except ValueError:
                raise invalid("must be a number") from None
            return int(number) if number.is_integer() and "." not in value else number
        raise invalid("must be a number")

    if param.type == ParameterType.BOOLEAN:
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.lower() in _TRUE | _FALSE:
            return value.lower() in _TRUE
        raise invalid("must be a boolean")

    if param.type == ParameterType.SELECT:
        if param.options is not None and value not in param.options:
            raise invalid(f"must be one of {param.options}")
        return value

    if not isinstance(value, str):
        raise invalid("must be a string")
    return value


def _substitute(node: Any, values: dict[str, Any]) -> Any:
    if isinstance(node, dict):
        return {key: _substitute(child, values) for key, child in node.items()}
    if isinstance(node, list):
        return [_substitute(child, values) for child in node]
    if not isinstance(node, str):
        return node

    whole = PLACEHOLDER.fullmatch(node)
    if whole and whole.group(1) in values:
        return values[whole.group(1)]

    def replace(match: re.Match) -> str:
        name = match.group(1)
        if name not in values:
            return match.group(0)
        value = values[name]
        return "" if value is None else str(value)

    return PLACEHOLDER.sub(replace, node)


class TemplateExpander:
    def __init__(
        self,
        templates: TemplateRegistry,
        pipelines: PipelineRepository,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.templates = templates
        self.pipelines = pipelines
        self._clock = clock

    def resolve_parameters(self, template: PipelineTemplate, params: dict[str, Any]) -> dict[str, Any]:
        """
        Apply defaults, enforce required parameters and check declared types.

        Raises:
            MissingParameterError: a required parameter has no value
            ValidationError: a value does not match its declared type
        """
        values: dict[str, Any] = {}
        for param in template.parameters:
            value = params.get(param.name)
            if value is None:
                value = param.default
            if value is None:
                if param.required:
                    raise MissingParameterError(template.id, param.name)
                values[param.name] = None
                continue
            values[param.name] = _coerce(template.id, param, value)

        unknown = sorted(set(params) - set(values))
        if unknown:
            logger.debug("Ignoring undeclared template parameters", template_id=template.id, parameters=unknown)
        return values

    def expand(self, template: PipelineTemplate, params: dict[str, Any], *, name: str | None = None) -> PipelineDefinition:
        """Build and validate the definition without storing it."""
        values = self.resolve_parameters(template, params)
        document = _substitute(template.template, values)
        document["name"] = name or f"{template.name} - {self._clock().strftime('%Y-%m-%d %H:%M:%S')}"
        document.setdefault("description", template.description)
        document["status"] = PipelineStatus.DRAFT

        try:
            definition = PipelineDefinition.model_validate(document)
        except PydanticValidationError as exc:
            raise ValidationError(
                f"Template '{template.id}' expanded to an invalid pipeline",
                details={
                    "template_id": template.id,
                    "errors": exc.errors(include_url=False, include_context=False),
                },
            ) from exc
        check_transformation_order(definition.transformations)
        return definition

    async def instantiate(
        self,
        template_id: str,
        params: dict[str, Any] | None = None,
        *,
        name: str | None = None,
    ) -> Pipeline:
        """
        Create a draft pipeline from a template.

        Raises:
            NotFoundError: unknown template
            MissingParameterError / ValidationError: nothing is created
        """
        template = self.templates.get(template_id)
        definition = self.expand(template, params or {}, name=name)
        pipeline = await self.pipelines.create(definition)

        logger.info("Pipeline created from template", template_id=template_id, pipeline_id=pipeline.id)
        return pipeline
