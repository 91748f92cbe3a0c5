"""
PipelineRepository — versioned storage of pipeline definitions.

Versioning rules:
    - create → "1.0.0", history ["1.0.0"]
    - update touching source / destination / transformations → patch + 1,
      computed from the highest version in history so versions never repeat
    - any other update (name, status, schedule, last_run, ...) keeps the version
    - rollback only moves the version pointer; it does not restore the
      field values that version had
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError as PydanticValidationError

from etlflow.core.clock import utcnow
from etlflow.core.logging import get_logger
from etlflow.models.pipeline import (
    PROTECTED_FIELDS,
    VERSIONED_FIELDS,
    Pipeline,
    PipelineDefinition,
    check_transformation_order,
)
from etlflow.pipeline.errors import NotFoundError, ValidationError
from etlflow.repositories.storage import DocumentStore

if TYPE_CHECKING:
    from etlflow.repositories.executions import ExecutionStore

logger = get_logger(__name__)

# Keys a patch may carry besides the definition fields
_ENGINE_FIELDS = frozenset({"last_run"})
_PATCHABLE_FIELDS = frozenset(PipelineDefinition.model_fields) | _ENGINE_FIELDS


def parse_version(version: str) -> tuple[int, int, int]:
    try:
        major, minor, patch = (int(part) for part in version.split("."))
    except ValueError:
        raise ValidationError(f"Invalid version '{version}'", details={"version": version}) from None
    return major, minor, patch


def next_version(history: list[str]) -> str:
    """Patch-bump the highest version seen so far."""
    major, minor, patch = max(parse_version(v) for v in history)
    return f"{major}.{minor}.{patch + 1}"


def _validate(document: dict[str, Any]) -> Pipeline:
    try:
        pipeline = Pipeline.model_validate(document)
    except PydanticValidationError as exc:
        raise ValidationError(
            "Invalid pipeline definition",
            details={"errors": exc.errors(include_url=False, include_context=False)},
        ) from exc
    check_transformation_order(pipeline.transformations)
    return pipeline


class PipelineRepository:
    def __init__(self, store: DocumentStore, executions: ExecutionStore | None = None) -> None:
        self._store = store
        self._executions = executions

    async def create(self, definition: PipelineDefinition | dict[str, Any]) -> Pipeline:
        """Store a new pipeline with a fresh id at version 1.0.0."""
        if isinstance(definition, PipelineDefinition):
            document = definition.to_document()
        else:
            document = dict(definition)

        for key in PROTECTED_FIELDS & document.keys():
            document.pop(key)

        now = utcnow()
        pipeline = _validate({**document, "created_at": now, "updated_at": now})
        await self._store.save(pipeline.id, pipeline.to_document())

        logger.info("Pipeline created", pipeline_id=pipeline.id, name=pipeline.name)
        return pipeline

    async def get(self, pipeline_id: str) -> Pipeline:
        document = await self._store.get(pipeline_id)
        if document is None:
            raise NotFoundError("Pipeline", pipeline_id)
        return Pipeline.model_validate(document)

    async def list(self) -> list[Pipeline]:
        pipelines = [Pipeline.model_validate(doc) for doc in await self._store.list()]
        return sorted(pipelines, key=lambda p: p.created_at)

    async def update(self, pipeline_id: str, patch: dict[str, Any]) -> Pipeline:
        """
        Merge `patch` (top-level replace) onto the stored pipeline.

        Raises:
            NotFoundError: unknown pipeline
            ValidationError: protected / unknown keys, or an invalid result
        """
        protected = sorted(PROTECTED_FIELDS & patch.keys())
        if protected:
            raise ValidationError(
                f"Fields {protected} cannot be updated",
                details={"fields": protected},
            )
        unknown = sorted(patch.keys() - _PATCHABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown fields {unknown}", details={"fields": unknown})

        current = await self.get(pipeline_id)
        document = current.to_document()
        document.update(patch)
        document["updated_at"] = utcnow()

        bumped = bool(VERSIONED_FIELDS & patch.keys())
        if bumped:
            version = next_version(current.version_history)
            document["version"] = version
            document["version_history"] = [*current.version_history, version]

        pipeline = _validate(document)
        await self._store.save(pipeline.id, pipeline.to_document())

        if bumped:
            logger.info(
                "Pipeline version bumped",
                pipeline_id=pipeline_id,
                from_version=current.version,
                to_version=pipeline.version,
            )
        return pipeline

    async def touch_last_run(self, pipeline_id: str, at: datetime) -> None:
        """Record a trigger time.  Only `last_run` is written; version and updated_at stay."""
        if not await self._store.patch(pipeline_id, {"last_run": at.isoformat()}):
            raise NotFoundError("Pipeline", pipeline_id)

    async def delete(self, pipeline_id: str) -> bool:
        """Remove a pipeline and all its executions.  False if absent."""
        deleted = await self._store.delete(pipeline_id)
        if not deleted:
            return False

        removed = 0
        if self._executions is not None:
            removed = await self._executions.delete_by_pipeline(pipeline_id)
        logger.info("Pipeline deleted", pipeline_id=pipeline_id, executions_removed=removed)
        return True

    async def rollback(self, pipeline_id: str, target_version: str) -> Pipeline:
        """Point the pipeline at an earlier version number."""
        current = await self.get(pipeline_id)
        if target_version not in current.version_history:
            raise ValidationError(
                f"Version '{target_version}' is not in the history of pipeline '{pipeline_id}'",
                details={"version": target_version, "history": current.version_history},
            )

        document = current.to_document()
        document["version"] = target_version
        document["updated_at"] = utcnow()
        pipeline = _validate(document)
        await self._store.save(pipeline.id, pipeline.to_document())

        logger.info(
            "Pipeline rolled back",
            pipeline_id=pipeline_id,
            from_version=current.version,
            to_version=target_version,
        )
        return pipeline

    async def get_version(self, pipeline_id: str) -> str:
        return (await self.get(pipeline_id)).version

    async def get_version_history(self, pipeline_id: str) -> list[str]:
        return list((await self.get(pipeline_id)).version_history)
