"""Azure backend: virtual machines managed by Pulumi and the ``az`` CLI."""
from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import cast

from ..config import AppConfig
from ..errors import RunnerError
from ..state import AzureProvisionInput, AzureProvisionOutput, InstanceState
from .base import InstanceProvisioner, ProviderBackend
from .moonlight import MoonlightPairer
from .process import CommandRunner, run_command
from .pulumi import PulumiProvisioner, require_output

LOGGER = logging.getLogger(__name__)

PULUMI_PROJECT = "azure"


def stack_config(provision_input: AzureProvisionInput, public_key: str) -> dict[str, object]:
    """Return the Pulumi configuration of an Azure VM stack."""
    return {
        "azure-native:subscriptionId": provision_input.subscription_id,
        "azure-native:location": provision_input.location,
        "vmSize": provision_input.vm_size,
        "rootDiskSizeGB": provision_input.disk_size,
        "publicIpType": provision_input.public_ip_type.value,
        "useSpot": provision_input.use_spot,
        "publicSshKeyContent": public_key,
    }


def build_output(outputs: Mapping[str, object], stack: str) -> AzureProvisionOutput:
    """Map Azure stack outputs to :class:`AzureProvisionOutput`."""
    return AzureProvisionOutput(
        host=require_output(outputs, "publicIp", stack),
        vm_name=require_output(outputs, "vmName", stack),
        resource_group_name=require_output(outputs, "resourceGroupName", stack),
    )


class AzureRunner:
    """Start and stop an Azure VM with the ``az`` CLI."""

    def __init__(
        self,
        provision_input: AzureProvisionInput,
        output: AzureProvisionOutput,
        *,
        az_bin: str = "az",
        pairer: MoonlightPairer | None = None,
        runner: CommandRunner = run_command,
    ) -> None:
        self.input = provision_input
        self.output = output
        self.az_bin = az_bin
        self.pairer = pairer or MoonlightPairer(output.host)
        self._runner = runner

    def _vm(self, action: str) -> None:
        LOGGER.info("Running az vm %s on %s", action, self.output.vm_name)
        self._runner(
            [
                self.az_bin,
                "vm",
                action,
                "--resource-group",
                self.output.resource_group_name,
                "--name",
                self.output.vm_name,
                "--subscription",
                self.input.subscription_id,
            ],
            error_cls=RunnerError,
            error_prefix=f"az vm {action} for {self.output.vm_name}",
        )

    def start(self) -> None:
        self._vm("start")

    def stop(self) -> None:
        # deallocate releases compute so a stopped VM is not billed
        self._vm("deallocate")

    def restart(self) -> None:
        self._vm("restart")

    def pair(self) -> None:
        self.pairer.pair()


def build_provisioner(state: InstanceState, config: AppConfig) -> InstanceProvisioner:
    return PulumiProvisioner.for_state(
        state, config, PULUMI_PROJECT, stack_config=stack_config, build_output=build_output
    )


def build_runner(state: InstanceState, config: AppConfig) -> AzureRunner:
    output = cast(AzureProvisionOutput, state.provision.output)
    return AzureRunner(
        cast(AzureProvisionInput, state.provision.input),
        output,
        az_bin=config.clouds.az_bin,
        pairer=MoonlightPairer(output.host, moonlight_bin=config.moonlight_bin),
    )


BACKEND = ProviderBackend(provisioner=build_provisioner, runner=build_runner)

__all__ = ["BACKEND", "AzureRunner", "build_output", "stack_config"]
