"""Shared constants and enums used across the application."""

from enum import StrEnum


class PipelineStatus(StrEnum):
    """Lifecycle status of a pipeline definition."""

    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    FAILED = "failed"


class ExecutionStatus(StrEnum):
    """Status of a single pipeline execution."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_EXECUTION_STATUSES = frozenset({
    ExecutionStatus.COMPLETED,
    ExecutionStatus.FAILED,
    ExecutionStatus.CANCELLED,
})


class SourceType(StrEnum):
    """Where a pipeline extracts its records from."""

    DATA_SOURCE = "data_source"
    API = "api"
    FILE = "file"
    DATABASE = "database"
    STREAM = "stream"


class DestinationType(StrEnum):
    """Where a pipeline loads its records to."""

    DATA_SOURCE = "data_source"
    FILE = "file"
    DATABASE = "database"
    API = "api"


class WriteMode(StrEnum):
    """How a destination treats existing data."""

    APPEND = "append"
    REPLACE = "replace"
    UPSERT = "upsert"


class TransformationKind(StrEnum):
    """Kinds of transformation stage."""

    FILTER = "filter"
    MAP = "map"
    AGGREGATE = "aggregate"
    JOIN = "join"
    CUSTOM = "custom"


class FilterOperator(StrEnum):
    """Comparison operators accepted by filter conditions."""

    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    IN = "in"
    NOT_IN = "not_in"
    LIKE = "like"
    NOT_LIKE = "not_like"


class AggregateFunction(StrEnum):
    """Functions available to the aggregate stage."""

    SUM = "sum"
    AVG = "avg"
    MIN = "min"
    MAX = "max"
    COUNT = "count"
    DISTINCT = "distinct"


class JoinType(StrEnum):
    """Join flavours supported by the join stage."""

    INNER = "inner"
    LEFT = "left"
    RIGHT = "right"
    FULL = "full"


class ErrorKind(StrEnum):
    """Classification of errors captured on an execution."""

    VALIDATION = "validation"
    TRANSFORMATION = "transformation"
    DESTINATION = "destination"
    SYSTEM = "system"


class LogLevel(StrEnum):
    """Levels used in an execution's audit log."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class HealthStatus(StrEnum):
    """Health buckets derived from recent execution success rate."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    WARNING = "warning"
    CRITICAL = "critical"
    NO_EXECUTIONS = "no_executions"


class Environment(StrEnum):
    """Deployment environment a pipeline targets."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class ParameterType(StrEnum):
    """Value types a template parameter can declare."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    SELECT = "select"


class StorageBackend(StrEnum):
    """Storage implementations selectable from settings."""

    MEMORY = "memory"
    SQL = "sql"


INITIAL_VERSION = "1.0.0"
