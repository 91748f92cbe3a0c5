"""Template request schemas."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class InstantiateRequest(BaseModel):
    """Parameter values for a template; `name` overrides the generated name."""

    parameters: dict[str, Any] = Field(default_factory=dict)
    name: str | None = Field(default=None, min_length=1)
