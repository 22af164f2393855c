"""Current (version ``"1"``) instance state schema.

An instance document looks like::

    version: "1"
    name: box1
    provision:
      provider: aws
      input: {ssh: {user: ubuntu, privateKeyPath: ~/.ssh/id_ed25519}, instanceType: g4dn.xlarge, ...}
      output: {host: 1.2.3.4, instanceId: i-0123}
    status: {configured: true, paired: false, provisionedAt: ..., configuredAt: ...}

``output`` is absent until provisioning succeeds. ``status`` is optional and
defaults to an empty :class:`~cloudypad.state.records.InstanceStatus`.
"""
from __future__ import annotations

from collections.abc import Mapping
from copy import deepcopy
from dataclasses import dataclass, field, replace
from typing import ClassVar, cast

from ..errors import SchemaValidationError
from .records import (
    CommonProvisionInput,
    CommonProvisionOutput,
    FieldSpec,
    InstanceStatus,
    ProviderName,
    Record,
    coerce_value,
    expect_mapping,
)
from .variants import provider_for_input, schema_for

CURRENT_VERSION = "1"


def validate_instance_name(name: object, path: str = "name") -> str:
    """Return *name* when it is usable as an instance directory name."""
    if not isinstance(name, str) or not name.strip():
        raise SchemaValidationError(path, "instance name must be a non-empty string")
    if name in {".", ".."} or "/" in name or "\\" in name or "\x00" in name:
        raise SchemaValidationError(path, f"instance name {name!r} is not a valid directory name")
    return name


@dataclass(frozen=True, kw_only=True)
class ProvisionState(Record):
    """Provider discriminant with its typed input and optional output."""

    provider: ProviderName
    input: CommonProvisionInput
    output: CommonProvisionOutput | None = None

    FIELDS: ClassVar[tuple[FieldSpec, ...]] = (
        FieldSpec("provider", "provider", ProviderName),
        FieldSpec("input", "input", CommonProvisionInput),
        FieldSpec("output", "output", CommonProvisionOutput, optional=True),
    )

    @classmethod
    def from_mapping(cls, raw: object, path: str = "provision") -> ProvisionState:
        """Validate the provision block, dispatching on ``provider``."""
        mapping = expect_mapping(raw, path)
        if mapping.get("provider") is None:
            raise SchemaValidationError(f"{path}.provider", "required field is missing")
        provider = cast(
            ProviderName, coerce_value(mapping["provider"], ProviderName, f"{path}.provider")
        )
        variant = schema_for(provider)
        if mapping.get("input") is None:
            raise SchemaValidationError(f"{path}.input", "required field is missing")
        input_value = variant.input_cls.from_mapping(mapping["input"], f"{path}.input")
        output_value = None
        if mapping.get("output") is not None:
            output_value = variant.output_cls.from_mapping(mapping["output"], f"{path}.output")
        known = cls.known_keys()
        extras = {key: deepcopy(value) for key, value in mapping.items() if key not in known}
        return cls(provider=provider, input=input_value, output=output_value, extras=extras)


@dataclass(frozen=True, kw_only=True)
class InstanceState(Record):
    """Complete persisted description of one instance."""

    name: str
    provision: ProvisionState
    status: InstanceStatus = field(default_factory=InstanceStatus)
    version: str = CURRENT_VERSION

    FIELDS: ClassVar[tuple[FieldSpec, ...]] = (
        FieldSpec("version", "version", str),
        FieldSpec("name", "name", str),
        FieldSpec("provision", "provision", ProvisionState),
        FieldSpec("status", "status", InstanceStatus, default=None),
    )

    @classmethod
    def from_mapping(cls, raw: object, path: str = "") -> InstanceState:
        """Validate a complete current-version document."""
        mapping = expect_mapping(raw, path)
        version = mapping.get("version")
        if version is None:
            raise SchemaValidationError("version", "required field is missing")
        if str(version) != CURRENT_VERSION:
            raise SchemaValidationError(
                "version", f"expected version {CURRENT_VERSION!r}, got {version!r}"
            )
        name = validate_instance_name(mapping.get("name"))
        if mapping.get("provision") is None:
            raise SchemaValidationError("provision", "required field is missing")
        provision = ProvisionState.from_mapping(mapping["provision"], "provision")
        status = InstanceStatus()
        if mapping.get("status") is not None:
            status = InstanceStatus.from_mapping(mapping["status"], "status")
        known = cls.known_keys()
        extras = {key: deepcopy(value) for key, value in mapping.items() if key not in known}
        return cls(name=name, provision=provision, status=status, extras=extras)

    @property
    def provider(self) -> ProviderName:
        """Provider discriminant of this instance."""
        return self.provision.provider

    @property
    def output(self) -> CommonProvisionOutput | None:
        """Provision output, ``None`` while unprovisioned."""
        return self.provision.output

    def with_output(self, output: CommonProvisionOutput | None) -> InstanceState:
        """Return a copy carrying *output* (``None`` clears it)."""
        if output is not None:
            expected = schema_for(self.provider).output_cls
            if type(output) is not expected:
                raise SchemaValidationError(
                    "provision.output",
                    f"{type(output).__name__} does not match provider {self.provider.value}",
                )
        return replace(self, provision=replace(self.provision, output=output))

    def with_input(self, new_input: CommonProvisionInput) -> InstanceState:
        """Return a copy carrying *new_input*, which must belong to the same provider."""
        expected = schema_for(self.provider).input_cls
        if type(new_input) is not expected:
            raise SchemaValidationError(
                "provision.input",
                f"{type(new_input).__name__} does not match provider {self.provider.value}",
            )
        return replace(self, provision=replace(self.provision, input=new_input))

    def with_status(self, **changes: object) -> InstanceState:
        """Return a copy whose status has *changes* applied."""
        return replace(self, status=replace(self.status, **changes))


def validate_state(raw: Mapping[str, object]) -> InstanceState:
    """Validate *raw* against the current schema.

    Raises
    ------
    SchemaValidationError
        When a required field is missing or malformed. ``field`` names the
        dotted path of the offending key.
    """
    return InstanceState.from_mapping(raw)


def new_instance_state(name: str, provision_input: CommonProvisionInput) -> InstanceState:
    """Build a fresh, unprovisioned state for *name*."""
    validate_instance_name(name)
    provider = provider_for_input(provision_input)
    return InstanceState(
        name=name,
        provision=ProvisionState(provider=provider, input=provision_input),
    )


__all__ = [
    "CURRENT_VERSION",
    "InstanceState",
    "ProvisionState",
    "new_instance_state",
    "validate_instance_name",
    "validate_state",
]
