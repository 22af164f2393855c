"""Declarative records backing the instance state schema.

Each record is a frozen dataclass listing its document fields in ``FIELDS``.
:meth:`Record.from_mapping` validates a raw mapping against that table and
:meth:`Record.to_dict` serialises it back using the on-disk (camelCase) keys.
Keys a record does not know are kept in ``extras`` and written back unchanged
so documents produced by newer releases survive a load/persist cycle.
"""
from __future__ import annotations

from collections.abc import Mapping
from copy import deepcopy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, TypeVar

from ..errors import SchemaValidationError

_MISSING: Any = object()

RecordT = TypeVar("RecordT", bound="Record")


class ProviderName(str, Enum):
    """Supported cloud providers."""

    AWS = "aws"
    AZURE = "azure"
    GCP = "gcp"
    PAPERSPACE = "paperspace"


class PublicIpType(str, Enum):
    """Public IP addressing mode requested for an instance."""

    STATIC = "static"
    DYNAMIC = "dynamic"


@dataclass(frozen=True, slots=True)
class FieldSpec:
    """Describe one document field of a record."""

    attr: str
    key: str
    kind: type
    optional: bool = False
    default: Any = _MISSING


def join_path(parent: str, key: str) -> str:
    """Return the dotted path of *key* below *parent*."""
    return f"{parent}.{key}" if parent else key


def expect_mapping(value: object, path: str) -> Mapping[str, object]:
    """Return *value* as a mapping or raise a validation error for *path*."""
    if not isinstance(value, Mapping):
        raise SchemaValidationError(path or "<root>", f"expected a mapping, got {_type_name(value)}")
    return value


def coerce_value(value: object, kind: type, path: str) -> object:
    """Check *value* against *kind*, converting enums and nested records."""
    if isinstance(kind, type) and issubclass(kind, Record):
        return kind.from_mapping(value, path)
    if isinstance(kind, type) and issubclass(kind, Enum):
        allowed = [member.value for member in kind]
        if value not in allowed:
            raise SchemaValidationError(
                path, f"expected one of {', '.join(map(str, allowed))}, got {value!r}"
            )
        return kind(value)
    if kind is bool:
        if not isinstance(value, bool):
            raise SchemaValidationError(path, f"expected a boolean, got {_type_name(value)}")
        return value
    if kind is int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise SchemaValidationError(path, f"expected an integer, got {_type_name(value)}")
        return value
    if kind is str:
        if not isinstance(value, str):
            raise SchemaValidationError(path, f"expected a string, got {_type_name(value)}")
        return value
    raise TypeError(f"Unsupported field kind {kind!r}")  # pragma: no cover - programming error


def _type_name(value: object) -> str:
    return "null" if value is None else type(value).__name__


def _dump_value(value: object) -> object:
    if isinstance(value, Record):
        return value.to_dict()
    if isinstance(value, Enum):
        return value.value
    return value


@dataclass(frozen=True, kw_only=True)
class Record:
    """Base class for schema records."""

    extras: Mapping[str, object] = field(default_factory=dict)

    FIELDS: ClassVar[tuple[FieldSpec, ...]] = ()

    @classmethod
    def known_keys(cls) -> frozenset[str]:
        """Document keys handled explicitly by this record."""
        return frozenset(spec.key for spec in cls.FIELDS)

    @classmethod
    def from_mapping(cls: type[RecordT], raw: object, path: str = "") -> RecordT:
        """Validate *raw* and build the record, naming *path* in errors."""
        mapping = expect_mapping(raw, path)
        values: dict[str, object] = {}
        for spec in cls.FIELDS:
            field_path = join_path(path, spec.key)
            value = mapping.get(spec.key)
            if value is None:
                if spec.default is not _MISSING:
                    values[spec.attr] = spec.default
                    continue
                if spec.optional:
                    values[spec.attr] = None
                    continue
                raise SchemaValidationError(field_path, "required field is missing")
            values[spec.attr] = coerce_value(value, spec.kind, field_path)
        known = cls.known_keys()
        extras = {key: deepcopy(value) for key, value in mapping.items() if key not in known}
        return cls(extras=extras, **values)

    def to_dict(self) -> dict[str, object]:
        """Return the document representation of this record."""
        payload: dict[str, object] = {}
        for spec in self.FIELDS:
            value = getattr(self, spec.attr)
            if value is None and spec.optional:
                continue
            payload[spec.key] = _dump_value(value)
        for key, value in self.extras.items():
            payload.setdefault(key, deepcopy(value))
        return payload


@dataclass(frozen=True, kw_only=True)
class SshConfig(Record):
    """SSH access configuration."""

    user: str
    private_key_path: str

    FIELDS: ClassVar[tuple[FieldSpec, ...]] = (
        FieldSpec("user", "user", str),
        FieldSpec("private_key_path", "privateKeyPath", str),
    )


@dataclass(frozen=True, kw_only=True)
class CommonProvisionInput(Record):
    """User supplied provisioning input shared by every provider."""

    ssh: SshConfig

    FIELDS: ClassVar[tuple[FieldSpec, ...]] = (FieldSpec("ssh", "ssh", SshConfig),)


@dataclass(frozen=True, kw_only=True)
class CommonProvisionOutput(Record):
    """Result of a successful provisioning shared by every provider."""

    host: str

    FIELDS: ClassVar[tuple[FieldSpec, ...]] = (FieldSpec("host", "host", str),)


@dataclass(frozen=True, kw_only=True)
class InstanceStatus(Record):
    """Markers tracking configuration and pairing progress."""

    configured: bool = False
    paired: bool = False
    provisioned_at: str | None = None
    configured_at: str | None = None
    paired_at: str | None = None

    FIELDS: ClassVar[tuple[FieldSpec, ...]] = (
        FieldSpec("configured", "configured", bool, default=False),
        FieldSpec("paired", "paired", bool, default=False),
        FieldSpec("provisioned_at", "provisionedAt", str, optional=True),
        FieldSpec("configured_at", "configuredAt", str, optional=True),
        FieldSpec("paired_at", "pairedAt", str, optional=True),
    )


__all__ = [
    "CommonProvisionInput",
    "CommonProvisionOutput",
    "FieldSpec",
    "InstanceStatus",
    "ProviderName",
    "PublicIpType",
    "Record",
    "SshConfig",
    "coerce_value",
    "expect_mapping",
    "join_path",
]
