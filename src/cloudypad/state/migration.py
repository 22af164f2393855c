"""Upgrade persisted instance documents to the current schema version.

Documents written before versioning was introduced carry no ``version`` key
and are treated as version ``"0"``. Each registered transform turns a document
of one version into the next; :func:`migrate` chains them and validates the
result. The source mapping is never modified.
"""
from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from copy import deepcopy
from datetime import UTC, datetime

from ..errors import (
    MigrationError,
    SchemaValidationError,
    UnknownProviderError,
    UnsupportedVersionError,
)
from .records import ProviderName, SshConfig, coerce_value, expect_mapping
from .schema import CURRENT_VERSION, InstanceState, validate_state
from .variants import schema_for

LOGGER = logging.getLogger(__name__)

LEGACY_VERSION = "0"

# Epoch values above this are milliseconds (year 5138 in seconds).
_EPOCH_MS_THRESHOLD = 1e11

Transform = Callable[[Mapping[str, object]], dict[str, object]]


def detect_version(raw: Mapping[str, object]) -> str:
    """Return the declared schema version of *raw* as a string."""
    version = raw.get("version")
    if version is None or version == "":
        return LEGACY_VERSION
    return str(version)


def migrate(raw: object) -> InstanceState:
    """Return the current-version state for *raw*, upgrading it when needed.

    Raises
    ------
    SchemaValidationError
        The (possibly migrated) document does not match the current schema.
    MigrationError
        A legacy document lacks a field the upgrade requires or holds an
        invalid value for it.
    UnknownProviderError
        A legacy document has zero or several populated provider blocks.
    UnsupportedVersionError
        The declared version is not known to this release.
    """
    document = expect_mapping(raw, "")
    version = detect_version(document)
    if version == CURRENT_VERSION:
        return validate_state(document)
    if version not in TRANSFORMS:
        raise UnsupportedVersionError(version)

    current: Mapping[str, object] = document
    while version != CURRENT_VERSION:
        transform, target = TRANSFORMS[version]
        LOGGER.debug("Migrating state document from version %s to %s", version, target)
        current = transform(current)
        version = target
    return validate_state(current)


# Version 0 -> 1 ------------------------------------------------------------
def _populated_providers(raw: Mapping[str, object]) -> list[ProviderName]:
    block = raw.get("provider")
    if not isinstance(block, Mapping):
        return []
    return [
        provider
        for provider in ProviderName
        if isinstance(block.get(provider.value), Mapping) and block[provider.value]
    ]


def _require(mapping: Mapping[str, object], key: str, path: str) -> object:
    value = mapping.get(key)
    if value is None or value == "":
        raise MigrationError(path, "required field is missing. Was the instance fully provisioned?")
    return value


def _require_mapping(mapping: Mapping[str, object], key: str, path: str) -> Mapping[str, object]:
    value = _require(mapping, key, path)
    if not isinstance(value, Mapping):
        raise MigrationError(path, f"expected a mapping, got {type(value).__name__}")
    return value


def _checked(value: object, kind: type, path: str) -> object:
    """Return a copy of legacy *value* after checking it against *kind*."""
    try:
        coerce_value(value, kind, path)
    except SchemaValidationError as exc:
        raise MigrationError(path, exc.reason) from exc
    return deepcopy(value)


def _epoch_to_iso(value: object) -> str | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    seconds = value / 1000 if value > _EPOCH_MS_THRESHOLD else value
    try:
        moment = datetime.fromtimestamp(seconds, tz=UTC)
    except (OverflowError, OSError, ValueError):
        return None
    return moment.isoformat(timespec="seconds").replace("+00:00", "Z")


def _legacy_status(raw: Mapping[str, object]) -> dict[str, object]:
    status = raw.get("status")
    if not isinstance(status, Mapping):
        return {}
    result: dict[str, object] = {"configured": False, "paired": False}
    provision = status.get("provision")
    if isinstance(provision, Mapping):
        provisioned_at = _epoch_to_iso(provision.get("lastUpdate"))
        if provisioned_at:
            result["provisionedAt"] = provisioned_at
    configuration = status.get("configuration")
    if isinstance(configuration, Mapping):
        result["configured"] = configuration.get("configured") is True
        configured_at = _epoch_to_iso(configuration.get("lastUpdate"))
        if configured_at:
            result["configuredAt"] = configured_at
    return result


def _migrate_v0_to_v1(raw: Mapping[str, object]) -> dict[str, object]:
    """Turn an unversioned document into a version 1 document."""
    providers = _populated_providers(raw)
    if len(providers) != 1:
        found = ", ".join(provider.value for provider in providers) or "none"
        raise UnknownProviderError(
            f"Cannot determine provider of legacy state, expected exactly one populated "
            f"provider block (found: {found})."
        )
    provider = providers[0]
    legacy_path = f"provider.{provider.value}"
    legacy = raw["provider"][provider.value]  # type: ignore[index]

    name = _checked(_require(raw, "name", "name"), str, "name")
    host = _checked(_require(raw, "host", "host"), str, "host")
    ssh = _require_mapping(raw, "ssh", "ssh")
    ssh_fields = {
        spec.key: _checked(_require(ssh, spec.key, f"ssh.{spec.key}"), spec.kind, f"ssh.{spec.key}")
        for spec in SshConfig.FIELDS
    }

    variant = schema_for(provider)
    output: dict[str, object] = {"host": host}
    for spec in variant.output_cls.FIELDS:
        if spec.key == "host":
            continue
        field_path = f"{legacy_path}.{spec.key}"
        output[spec.key] = _checked(_require(legacy, spec.key, field_path), spec.kind, field_path)

    provision_args = _require_mapping(legacy, "provisionArgs", f"{legacy_path}.provisionArgs")

    provision_input: dict[str, object] = {"ssh": ssh_fields}
    if provider is ProviderName.PAPERSPACE:
        key_path = f"{legacy_path}.apiKey"
        api_key = legacy.get("apiKey") or provision_args.get("apiKey")
        if not api_key:
            raise MigrationError(key_path, "required field is missing.")
        provision_input["apiKey"] = _checked(api_key, str, key_path)

    create_path = f"{legacy_path}.provisionArgs.create"
    create = _require_mapping(provision_args, "create", create_path)
    for spec in variant.input_cls.FIELDS:
        if spec.key in provision_input:
            continue
        field_path = f"{create_path}.{spec.key}"
        if create.get(spec.key) is None:
            raise MigrationError(field_path, "required field is missing.")
        provision_input[spec.key] = _checked(create[spec.key], spec.kind, field_path)

    document: dict[str, object] = {
        "version": "1",
        "name": name,
        "provision": {
            "provider": provider.value,
            "input": provision_input,
            "output": output,
        },
    }
    status = _legacy_status(raw)
    if status:
        document["status"] = status
    return document


# Maps a source version to its transform and the version it produces.
TRANSFORMS: dict[str, tuple[Transform, str]] = {
    LEGACY_VERSION: (_migrate_v0_to_v1, "1"),
}


__all__ = ["LEGACY_VERSION", "TRANSFORMS", "detect_version", "migrate"]
