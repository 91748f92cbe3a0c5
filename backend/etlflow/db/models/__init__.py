"""
Models package — re-exports Base and all models.

Import models here so `Base.metadata.create_all` picks up every table.

When adding a new model:
    1. Create `etlflow/db/models/<table_name>.py`
    2. Import it here
"""

from etlflow.db.models.base import Base
from etlflow.db.models.execution import ExecutionRecord
from etlflow.db.models.pipeline import PipelineRecord

__all__ = [
    "Base",
    "ExecutionRecord",
    "PipelineRecord",
]
