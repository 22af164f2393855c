"""Google Cloud backend: Compute Engine instances managed by Pulumi and ``gcloud``."""
from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import cast

from ..config import AppConfig
from ..errors import RunnerError
from ..state import GcpProvisionInput, GcpProvisionOutput, InstanceState
from .base import InstanceProvisioner, ProviderBackend
from .moonlight import MoonlightPairer
from .process import CommandRunner, run_command
from .pulumi import PulumiProvisioner, require_output

LOGGER = logging.getLogger(__name__)

PULUMI_PROJECT = "gcp"


def stack_config(provision_input: GcpProvisionInput, public_key: str) -> dict[str, object]:
    """Return the Pulumi configuration of a Compute Engine stack."""
    return {
        "gcp:project": provision_input.project_id,
        "gcp:region": provision_input.region,
        "gcp:zone": provision_input.zone,
        "machineType": provision_input.machine_type,
        "acceleratorType": provision_input.accelerator_type,
        "rootDiskSize": provision_input.disk_size,
        "publicIpType": provision_input.public_ip_type.value,
        "useSpot": provision_input.use_spot,
        "publicSshKeyContent": public_key,
    }


def build_output(outputs: Mapping[str, object], stack: str) -> GcpProvisionOutput:
    """Map Compute Engine stack outputs to :class:`GcpProvisionOutput`."""
    return GcpProvisionOutput(
        host=require_output(outputs, "publicIp", stack),
        instance_name=require_output(outputs, "instanceName", stack),
    )


class GcpRunner:
    """Start and stop a Compute Engine instance with ``gcloud``."""

    def __init__(
        self,
        provision_input: GcpProvisionInput,
        output: GcpProvisionOutput,
        *,
        gcloud_bin: str = "gcloud",
        pairer: MoonlightPairer | None = None,
        runner: CommandRunner = run_command,
    ) -> None:
        self.input = provision_input
        self.output = output
        self.gcloud_bin = gcloud_bin
        self.pairer = pairer or MoonlightPairer(output.host)
        self._runner = runner

    def _instances(self, action: str) -> None:
        LOGGER.info("Running gcloud compute instances %s on %s", action, self.output.instance_name)
        self._runner(
            [
                self.gcloud_bin,
                "compute",
                "instances",
                action,
                self.output.instance_name,
                "--zone",
                self.input.zone,
                "--project",
                self.input.project_id,
                "--quiet",
            ],
            error_cls=RunnerError,
            error_prefix=f"gcloud compute instances {action} for {self.output.instance_name}",
        )

    def start(self) -> None:
        self._instances("start")

    def stop(self) -> None:
        self._instances("stop")

    def restart(self) -> None:
        self._instances("reset")

    def pair(self) -> None:
        self.pairer.pair()


def build_provisioner(state: InstanceState, config: AppConfig) -> InstanceProvisioner:
    return PulumiProvisioner.for_state(
        state, config, PULUMI_PROJECT, stack_config=stack_config, build_output=build_output
    )


def build_runner(state: InstanceState, config: AppConfig) -> GcpRunner:
    output = cast(GcpProvisionOutput, state.provision.output)
    return GcpRunner(
        cast(GcpProvisionInput, state.provision.input),
        output,
        gcloud_bin=config.clouds.gcloud_bin,
        pairer=MoonlightPairer(output.host, moonlight_bin=config.moonlight_bin),
    )


BACKEND = ProviderBackend(provisioner=build_provisioner, runner=build_runner)

__all__ = ["BACKEND", "GcpRunner", "build_output", "stack_config"]
