"""Static registry of upload schemas and their field mappings."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from ..exceptions import ConfigurationError, SchemaNotConfiguredError
from ..utils.config import load_yaml_config

GENERIC_SCHEMA = "generic"


def _lower_strip(value: str) -> str:
    return value.strip().lower()


class SchemaDescriptor(BaseModel):
    """Typed description of how rows of one upload type are staged."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    field_mapping: dict[str, str] = Field(
        default_factory=dict,
        description="Destination field -> source header",
    )
    date_fields: tuple[str, ...] = ()
    strict: bool = False
    allowed_file_types: tuple[str, ...] = ("csv",)

    @field_validator("field_mapping", mode="after")
    @classmethod
    def _normalize_mapping(cls, value: dict[str, str]) -> dict[str, str]:
        return {destination: _lower_strip(source) for destination, source in value.items()}

    @field_validator("date_fields", "allowed_file_types", mode="after")
    @classmethod
    def _normalize_names(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(_lower_strip(item) for item in value)

    @property
    def has_mapping(self) -> bool:
        return bool(self.field_mapping)

    @property
    def expected_headers(self) -> list[str]:
        """Source headers the file must contain, in mapping order."""

        return list(dict.fromkeys(self.field_mapping.values()))

    def map_row(self, row: Mapping[str, Any]) -> dict[str, Any]:
        """Translate a parsed row into destination fields.

        Without a mapping the row passes through unchanged.
        """

        if not self.field_mapping:
            return dict(row)
        return {
            destination: row.get(source) for destination, source in self.field_mapping.items()
        }


BUILTIN_SCHEMAS: tuple[SchemaDescriptor, ...] = (
    SchemaDescriptor(
        name="BSC200",
        field_mapping={
            "broker_code": "brcode",
            "bsc_scheme_code": "scheme_code",
            "min_amount": "min_amount",
            "reg_date": "reg_date",
        },
        date_fields=("reg_date", "from_date", "to_date"),
        strict=True,
        allowed_file_types=("csv",),
    ),
)


class SchemaRegistry:
    """Resolves schema names to descriptors; immutable after construction."""

    def __init__(
        self,
        descriptors: Iterable[SchemaDescriptor] = BUILTIN_SCHEMAS,
        *,
        strict: bool = False,
        generic_file_types: Iterable[str] = ("csv", "excel", "dbf"),
    ) -> None:
        self._descriptors: dict[str, SchemaDescriptor] = {}
        for descriptor in descriptors:
            self._descriptors[descriptor.name] = descriptor
        self.strict = strict
        self._generic_file_types = tuple(_lower_strip(item) for item in generic_file_types)

    @classmethod
    def from_yaml(
        cls,
        path: str | Path,
        *,
        strict: bool = False,
        generic_file_types: Iterable[str] = ("csv", "excel", "dbf"),
        include_builtin: bool = True,
    ) -> SchemaRegistry:
        """Build a registry from a YAML document with a top-level ``schemas`` mapping."""

        document = load_yaml_config(path)
        raw_schemas = document.get("schemas") or {}
        if not isinstance(raw_schemas, dict):
            raise ConfigurationError(f"'schemas' in {path} must be a mapping of schema names")

        descriptors: list[SchemaDescriptor] = list(BUILTIN_SCHEMAS) if include_builtin else []
        for name, body in raw_schemas.items():
            body = body or {}
            if not isinstance(body, dict):
                raise ConfigurationError(f"Schema '{name}' in {path} must be a mapping")
            try:
                descriptors.append(
                    SchemaDescriptor(
                        name=str(name),
                        field_mapping=body.get("fields") or {},
                        date_fields=tuple(body.get("date_fields") or ()),
                        strict=bool(body.get("strict", False)),
                        allowed_file_types=tuple(body.get("allowed_file_types") or ("csv",)),
                    )
                )
            except PydanticValidationError as exc:
                raise ConfigurationError(f"Invalid schema '{name}' in {path}: {exc}") from exc

        return cls(descriptors, strict=strict, generic_file_types=generic_file_types)

    def names(self) -> list[str]:
        return sorted(self._descriptors)

    def get(self, schema_name: str | None) -> SchemaDescriptor | None:
        if schema_name is None:
            return None
        return self._descriptors.get(schema_name)

    def allowed_file_types(self, schema_name: str | None) -> tuple[str, ...]:
        """File types accepted for uploads declared under ``schema_name``."""

        descriptor = self.get(schema_name)
        if descriptor is None:
            return self._generic_file_types
        return descriptor.allowed_file_types

    def resolve(self, schema_name: str | None) -> SchemaDescriptor:
        """Return the descriptor for ``schema_name``.

        Unknown schemas resolve to a permissive pass-through descriptor unless
        the registry is strict, in which case they fail fast. A known strict
        schema without a mapping also fails fast.

        Raises:
            SchemaNotConfiguredError: when a required mapping is absent.
        """

        descriptor = self.get(schema_name)
        if descriptor is None:
            if self.strict:
                raise SchemaNotConfiguredError(schema_name)
            return SchemaDescriptor(
                name=schema_name or GENERIC_SCHEMA,
                allowed_file_types=self._generic_file_types,
            )
        if descriptor.strict and not descriptor.has_mapping:
            raise SchemaNotConfiguredError(schema_name)
        return descriptor
