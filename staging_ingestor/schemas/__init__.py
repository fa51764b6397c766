"""Schemas package initialization."""
from .progress import ProgressSnapshot
from .queue import (
    ActiveJobInfo,
    CleanupResult,
    FailedJobInfo,
    JobCounts,
    JobStats,
    QueueHealth,
)
from .registry import BUILTIN_SCHEMAS, GENERIC_SCHEMA, SchemaDescriptor, SchemaRegistry

__all__ = [
    "ProgressSnapshot",
    "ActiveJobInfo",
    "CleanupResult",
    "FailedJobInfo",
    "JobCounts",
    "JobStats",
    "QueueHealth",
    "BUILTIN_SCHEMAS",
    "GENERIC_SCHEMA",
    "SchemaDescriptor",
    "SchemaRegistry",
]
