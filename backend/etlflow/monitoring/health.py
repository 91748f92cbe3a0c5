"""
HealthMonitor — scores a pipeline from its recent executions.

    score = round(100 * (total - failed) / total)   over the trailing window

    score < 50  → critical
    score < 80  → warning
    score < 95  → degraded
    otherwise   → healthy

Running and cancelled executions count towards `total` but not `failed`.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable

from etlflow.core.clock import utcnow
from etlflow.core.config import settings
from etlflow.core.constants import ExecutionStatus, HealthStatus
from etlflow.core.logging import get_logger
from etlflow.repositories.executions import ExecutionStore
from etlflow.repositories.pipelines import PipelineRepository

logger = get_logger(__name__)

# Score reported when there is nothing to judge
NO_EXECUTIONS_SCORE = 50

# Success rate below which "Low success rate" is reported
LOW_SUCCESS_RATE = 0.8


@dataclass
class PipelineHealth:
    status: HealthStatus
    score: int
    issues: list[str] = field(default_factory=list)
    total_executions: int = 0
    failed_executions: int = 0

    def to_dict(self) -> dict:
        return {
            "status": str(self.status),
            "score": self.score,
            "issues": list(self.issues),
            "total_executions": self.total_executions,
            "failed_executions": self.failed_executions,
        }


def bucket(score: int) -> HealthStatus:
    if score < 50:
        return HealthStatus.CRITICAL
    if score < 80:
        return HealthStatus.WARNING
    if score < 95:
        return HealthStatus.DEGRADED
    return HealthStatus.HEALTHY


class HealthMonitor:
    def __init__(
        self,
        pipelines: PipelineRepository,
        executions: ExecutionStore,
        *,
        window_hours: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.pipelines = pipelines
        self.executions = executions
        self.window = timedelta(hours=window_hours or settings.HEALTH_WINDOW_HOURS)
        self._clock = clock

    async def get_health(self, pipeline_id: str) -> PipelineHealth:
        """
        Health of one pipeline over the trailing window.

        Raises:
            NotFoundError: unknown pipeline
        """
        await self.pipelines.get(pipeline_id)

        since = self._clock() - self.window
        recent = [
            e for e in await self.executions.list_by_pipeline(pipeline_id)
            if e.start_time >= since
        ]

        if not recent:
            return PipelineHealth(
                status=HealthStatus.NO_EXECUTIONS,
                score=NO_EXECUTIONS_SCORE,
                issues=["No recent executions"],
            )

        total = len(recent)
        failed = sum(1 for e in recent if e.status == ExecutionStatus.FAILED)
        success_rate = (total - failed) / total
        # Halves round up (5 of 8 succeeded → 63)
        score = math.floor(100 * success_rate + 0.5)

        issues: list[str] = []
        if success_rate < LOW_SUCCESS_RATE:
            issues.append("Low success rate")
        if failed:
            issues.append(f"{failed} failed executions")

        health = PipelineHealth(
            status=bucket(score),
            score=score,
            issues=issues,
            total_executions=total,
            failed_executions=failed,
        )
        logger.debug("Health computed", pipeline_id=pipeline_id, status=str(health.status), score=score)
        return health
