"""Provider specific provisioning input and output records."""
from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

from .records import (
    CommonProvisionInput,
    CommonProvisionOutput,
    FieldSpec,
    ProviderName,
    PublicIpType,
)


# AWS ---------------------------------------------------------------------
@dataclass(frozen=True, kw_only=True)
class AwsProvisionInput(CommonProvisionInput):
    """Input for an EC2 instance."""

    instance_type: str
    disk_size: int
    public_ip_type: PublicIpType
    region: str
    use_spot: bool

    FIELDS: ClassVar[tuple[FieldSpec, ...]] = CommonProvisionInput.FIELDS + (
        FieldSpec("instance_type", "instanceType", str),
        FieldSpec("disk_size", "diskSize", int),
        FieldSpec("public_ip_type", "publicIpType", PublicIpType),
        FieldSpec("region", "region", str),
        FieldSpec("use_spot", "useSpot", bool),
    )


@dataclass(frozen=True, kw_only=True)
class AwsProvisionOutput(CommonProvisionOutput):
    instance_id: str

    FIELDS: ClassVar[tuple[FieldSpec, ...]] = CommonProvisionOutput.FIELDS + (
        FieldSpec("instance_id", "instanceId", str),
    )


# Azure -------------------------------------------------------------------
@dataclass(frozen=True, kw_only=True)
class AzureProvisionInput(CommonProvisionInput):
    """Input for an Azure virtual machine."""

    vm_size: str
    disk_size: int
    public_ip_type: PublicIpType
    subscription_id: str
    location: str
    use_spot: bool

    FIELDS: ClassVar[tuple[FieldSpec, ...]] = CommonProvisionInput.FIELDS + (
        FieldSpec("vm_size", "vmSize", str),
        FieldSpec("disk_size", "diskSize", int),
        FieldSpec("public_ip_type", "publicIpType", PublicIpType),
        FieldSpec("subscription_id", "subscriptionId", str),
        FieldSpec("location", "location", str),
        FieldSpec("use_spot", "useSpot", bool),
    )


@dataclass(frozen=True, kw_only=True)
class AzureProvisionOutput(CommonProvisionOutput):
    vm_name: str
    resource_group_name: str

    FIELDS: ClassVar[tuple[FieldSpec, ...]] = CommonProvisionOutput.FIELDS + (
        FieldSpec("vm_name", "vmName", str),
        FieldSpec("resource_group_name", "resourceGroupName", str),
    )


# Google Cloud ------------------------------------------------------------
@dataclass(frozen=True, kw_only=True)
class GcpProvisionInput(CommonProvisionInput):
    """Input for a Compute Engine instance."""

    project_id: str
    machine_type: str
    accelerator_type: str
    disk_size: int
    public_ip_type: PublicIpType
    region: str
    zone: str
    use_spot: bool

    FIELDS: ClassVar[tuple[FieldSpec, ...]] = CommonProvisionInput.FIELDS + (
        FieldSpec("project_id", "projectId", str),
        FieldSpec("machine_type", "machineType", str),
        FieldSpec("accelerator_type", "acceleratorType", str),
        FieldSpec("disk_size", "diskSize", int),
        FieldSpec("public_ip_type", "publicIpType", PublicIpType),
        FieldSpec("region", "region", str),
        FieldSpec("zone", "zone", str),
        FieldSpec("use_spot", "useSpot", bool),
    )


@dataclass(frozen=True, kw_only=True)
class GcpProvisionOutput(CommonProvisionOutput):
    instance_name: str

    FIELDS: ClassVar[tuple[FieldSpec, ...]] = CommonProvisionOutput.FIELDS + (
        FieldSpec("instance_name", "instanceName", str),
    )


# Paperspace --------------------------------------------------------------
@dataclass(frozen=True, kw_only=True)
class PaperspaceProvisionInput(CommonProvisionInput):
    """Input for a Paperspace machine."""

    api_key: str
    machine_type: str
    disk_size: int
    public_ip_type: PublicIpType
    region: str

    FIELDS: ClassVar[tuple[FieldSpec, ...]] = CommonProvisionInput.FIELDS + (
        FieldSpec("api_key", "apiKey", str),
        FieldSpec("machine_type", "machineType", str),
        FieldSpec("disk_size", "diskSize", int),
        FieldSpec("public_ip_type", "publicIpType", PublicIpType),
        FieldSpec("region", "region", str),
    )


@dataclass(frozen=True, kw_only=True)
class PaperspaceProvisionOutput(CommonProvisionOutput):
    machine_id: str

    FIELDS: ClassVar[tuple[FieldSpec, ...]] = CommonProvisionOutput.FIELDS + (
        FieldSpec("machine_id", "machineId", str),
    )


@dataclass(frozen=True, slots=True)
class ProviderSchema:
    """Pair of record types describing one provider variant."""

    provider: ProviderName
    input_cls: type[CommonProvisionInput]
    output_cls: type[CommonProvisionOutput]


PROVIDER_SCHEMAS: dict[ProviderName, ProviderSchema] = {
    ProviderName.AWS: ProviderSchema(ProviderName.AWS, AwsProvisionInput, AwsProvisionOutput),
    ProviderName.AZURE: ProviderSchema(ProviderName.AZURE, AzureProvisionInput, AzureProvisionOutput),
    ProviderName.GCP: ProviderSchema(ProviderName.GCP, GcpProvisionInput, GcpProvisionOutput),
    ProviderName.PAPERSPACE: ProviderSchema(
        ProviderName.PAPERSPACE, PaperspaceProvisionInput, PaperspaceProvisionOutput
    ),
}


def schema_for(provider: ProviderName) -> ProviderSchema:
    """Return the registered schema for *provider*."""
    return PROVIDER_SCHEMAS[provider]


def provider_for_input(value: CommonProvisionInput) -> ProviderName:
    """Return the provider owning the concrete input record type of *value*."""
    for schema in PROVIDER_SCHEMAS.values():
        if type(value) is schema.input_cls:
            return schema.provider
    raise TypeError(f"{type(value).__name__} is not a registered provider input type")


__all__ = [
    "PROVIDER_SCHEMAS",
    "AwsProvisionInput",
    "AwsProvisionOutput",
    "AzureProvisionInput",
    "AzureProvisionOutput",
    "GcpProvisionInput",
    "GcpProvisionOutput",
    "PaperspaceProvisionInput",
    "PaperspaceProvisionOutput",
    "ProviderSchema",
    "provider_for_input",
    "schema_for",
]
