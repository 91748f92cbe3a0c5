"""
RunContext — mutable state carried through one pipeline run.

Holds the definition snapshot taken at trigger time, the Execution being
written, and the batch as it moves between phases.  Only the task
running the execution touches it, apart from `cancel_requested`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import structlog

from etlflow.core.constants import LogLevel
from etlflow.models.execution import Execution
from etlflow.models.pipeline import Pipeline, Record

_LOG_METHODS = {
    LogLevel.DEBUG: "debug",
    LogLevel.INFO: "info",
    LogLevel.WARN: "warning",
    LogLevel.ERROR: "error",
}


@dataclass
class RunContext:
    pipeline: Pipeline
    execution: Execution
    log: structlog.stdlib.BoundLogger
    batch: list[Record] = field(default_factory=list)
    cancel_requested: bool = False
    phase: str = "pending"

    @property
    def execution_id(self) -> str:
        return self.execution.id

    @property
    def pipeline_id(self) -> str:
        return self.pipeline.id

    def audit(self, level: LogLevel, message: str, **context: Any) -> None:
        """Append to the execution's audit log and mirror it to the process log."""
        self.execution.log(level, message, **context)
        getattr(self.log, _LOG_METHODS[level])(message, phase=self.phase, **context)
