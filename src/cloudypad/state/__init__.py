"""Instance state schema, migration and persistence."""
from __future__ import annotations

from .migration import migrate
from .records import (
    CommonProvisionInput,
    CommonProvisionOutput,
    InstanceStatus,
    ProviderName,
    PublicIpType,
    SshConfig,
)
from .schema import (
    CURRENT_VERSION,
    InstanceState,
    ProvisionState,
    new_instance_state,
    validate_state,
)
from .store import StateStore, resolve_data_root
from .variants import (
    AwsProvisionInput,
    AwsProvisionOutput,
    AzureProvisionInput,
    AzureProvisionOutput,
    GcpProvisionInput,
    GcpProvisionOutput,
    PaperspaceProvisionInput,
    PaperspaceProvisionOutput,
)

__all__ = [
    "CURRENT_VERSION",
    "AwsProvisionInput",
    "AwsProvisionOutput",
    "AzureProvisionInput",
    "AzureProvisionOutput",
    "CommonProvisionInput",
    "CommonProvisionOutput",
    "GcpProvisionInput",
    "GcpProvisionOutput",
    "InstanceState",
    "InstanceStatus",
    "PaperspaceProvisionInput",
    "PaperspaceProvisionOutput",
    "ProviderName",
    "ProvisionState",
    "PublicIpType",
    "SshConfig",
    "StateStore",
    "migrate",
    "new_instance_state",
    "resolve_data_root",
    "validate_state",
]
