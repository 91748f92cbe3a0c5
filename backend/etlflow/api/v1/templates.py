"""
Template endpoints — browse templates and create pipelines from them.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from etlflow.api.deps import get_expander, get_templates
from etlflow.api.schemas.templates import InstantiateRequest
from etlflow.models.pipeline import Pipeline
from etlflow.models.template import PipelineTemplate
from etlflow.templates.expander import TemplateExpander
from etlflow.templates.registry import TemplateRegistry

router = APIRouter(prefix="/templates", tags=["Templates"])


@router.get("", response_model=list[PipelineTemplate])
async def list_templates(templates: TemplateRegistry = Depends(get_templates)):
    return templates.list()


@router.get("/{template_id}", response_model=PipelineTemplate)
async def get_template(template_id: str, templates: TemplateRegistry = Depends(get_templates)):
    return templates.get(template_id)


@router.post("/{template_id}/instantiate", response_model=Pipeline, status_code=status.HTTP_201_CREATED)
async def instantiate_template(
    template_id: str,
    body: InstantiateRequest,
    expander: TemplateExpander = Depends(get_expander),
):
    """Create a draft pipeline; 422 on a missing or mistyped parameter."""
    return await expander.instantiate(template_id, body.parameters, name=body.name)
