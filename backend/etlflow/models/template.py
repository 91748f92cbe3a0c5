"""Pipeline template models — parameterised blueprints for new pipelines."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from etlflow.core.constants import ParameterType


class TemplateParameter(BaseModel):
    name: str
    type: ParameterType = ParameterType.STRING
    required: bool = False
    default: Any = None
    options: list[Any] | None = None
    description: str = ""


class PipelineTemplate(BaseModel):
    """
    `template` is a partial pipeline document whose string values may
    contain `{{parameter}}` placeholders.
    """

    id: str
    name: str
    description: str = ""
    category: str = "general"
    template: dict[str, Any] = Field(default_factory=dict)
    parameters: list[TemplateParameter] = Field(default_factory=list)

    def get_parameter(self, name: str) -> TemplateParameter | None:
        for param in self.parameters:
            if param.name == name:
                return param
        return None
