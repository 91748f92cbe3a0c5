"""Shared dependencies for API routes."""

from __future__ import annotations

from fastapi import Depends, Request

from etlflow.monitoring.health import HealthMonitor
from etlflow.pipeline.engine import ExecutionEngine
from etlflow.repositories.executions import ExecutionStore
from etlflow.repositories.pipelines import PipelineRepository
from etlflow.services import Services
from etlflow.templates.expander import TemplateExpander
from etlflow.templates.registry import TemplateRegistry


def get_services(request: Request) -> Services:
    """The Services instance wired at application start."""
    return request.app.state.services


def get_pipelines(services: Services = Depends(get_services)) -> PipelineRepository:
    return services.pipelines


def get_executions(services: Services = Depends(get_services)) -> ExecutionStore:
    return services.executions


def get_engine(services: Services = Depends(get_services)) -> ExecutionEngine:
    return services.engine


def get_health_monitor(services: Services = Depends(get_services)) -> HealthMonitor:
    return services.health


def get_templates(services: Services = Depends(get_services)) -> TemplateRegistry:
    return services.templates


def get_expander(services: Services = Depends(get_services)) -> TemplateExpander:
    return services.expander
