"""Ingestion pipeline: upload lifecycle, row staging and progress."""

from __future__ import annotations

from .batch_writer import BatchWriter
from .dump_rows_job import CREATE_DUMP_TABLE_JOB, CreateDumpTableJob
from .lifecycle import ClaimedUpload, UploadLifecycle
from .progress import ProgressTracker
from .uploads import UploadService, detect_file_type

__all__ = [
    "CREATE_DUMP_TABLE_JOB",
    "BatchWriter",
    "ClaimedUpload",
    "CreateDumpTableJob",
    "ProgressTracker",
    "UploadLifecycle",
    "UploadService",
    "detect_file_type",
]
