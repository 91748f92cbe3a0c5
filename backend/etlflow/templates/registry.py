"""
TemplateRegistry — lookup of pipeline templates by id.

Pre-loaded with the built-in templates; more can be registered at
composition time.
"""

from __future__ import annotations

from etlflow.models.template import PipelineTemplate
from etlflow.pipeline.errors import NotFoundError
from etlflow.templates.defaults import DEFAULT_TEMPLATES


class TemplateRegistry:
    def __init__(self, templates: list[PipelineTemplate] | None = None) -> None:
        self._templates: dict[str, PipelineTemplate] = {}
        for template in DEFAULT_TEMPLATES if templates is None else templates:
            self.register(template)

    def register(self, template: PipelineTemplate) -> None:
        self._templates[template.id] = template

    def get(self, template_id: str) -> PipelineTemplate:
        try:
            return self._templates[template_id].model_copy(deep=True)
        except KeyError:
            raise NotFoundError("Template", template_id) from None

    def list(self) -> list[PipelineTemplate]:
        return [t.model_copy(deep=True) for t in self._templates.values()]
