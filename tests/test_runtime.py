"""Tests for process-level runtime wiring."""

from __future__ import annotations

from pathlib import Path

from staging_ingestor.runtime import LazyRuntime, Runtime, build_schema_registry
from staging_ingestor.utils.config import IngestionSettings

CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"


def test_build_schema_registry_from_yaml() -> None:
    registry = build_schema_registry(
        IngestionSettings(schemas_file=CONFIG_DIR / "schemas.yaml", strict_schemas=True)
    )

    assert registry.strict is True
    assert "BSE_SCHEME" in registry.names()


def test_build_schema_registry_defaults_to_builtins() -> None:
    registry = build_schema_registry(IngestionSettings())

    assert registry.names() == ["BSC200"]
    assert registry.strict is False


def test_runtime_registers_dump_job_and_monitors_queue(runtime: Runtime) -> None:
    assert runtime.registry.names() == ["create-dump-table"]
    assert runtime.monitor_for(runtime.queue.name) is runtime.monitor
    assert runtime.monitor_for("other").queue_name == "other"


def test_lazy_runtime_builds_once_and_closes(make_settings, database, object_store, dispatcher) -> None:
    lazy = LazyRuntime(
        make_settings(),
        database=database,
        object_store=object_store,
        dispatcher=dispatcher,
    )

    first = lazy.get()
    assert lazy.get() is first

    lazy.close()
    assert lazy.get() is not first
