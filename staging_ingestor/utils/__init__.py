"""Configuration, logging, date parsing and shutdown helpers."""
from .config import (
    GlobalSettings,
    IngestionSettings,
    QueueSettings,
    StorageSettings,
    ensure_runtime_configuration,
    get_settings,
    load_yaml_config,
)
from .dates import normalize_date
from .logging import StructuredLoggerAdapter, log_job_attempt, setup_logger
from .signals import GracefulShutdown

__all__ = [
    "GlobalSettings",
    "GracefulShutdown",
    "IngestionSettings",
    "QueueSettings",
    "StorageSettings",
    "StructuredLoggerAdapter",
    "ensure_runtime_configuration",
    "get_settings",
    "load_yaml_config",
    "log_job_attempt",
    "normalize_date",
    "setup_logger",
]
