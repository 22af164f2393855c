"""AWS backend: EC2 instances managed by Pulumi and powered through boto3."""
from __future__ import annotations

import logging
from collections.abc import Mapping
from functools import cached_property
from typing import Any, cast

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..config import AppConfig
from ..errors import RunnerError
from ..state import AwsProvisionInput, AwsProvisionOutput, InstanceState
from .base import InstanceProvisioner, ProviderBackend
from .moonlight import MoonlightPairer
from .pulumi import PulumiProvisioner, require_output

LOGGER = logging.getLogger(__name__)

PULUMI_PROJECT = "aws"


def stack_config(provision_input: AwsProvisionInput, public_key: str) -> dict[str, object]:
    """Return the Pulumi configuration of an EC2 stack."""
    return {
        "aws:region": provision_input.region,
        "instanceType": provision_input.instance_type,
        "rootVolumeSizeGB": provision_input.disk_size,
        "publicIpType": provision_input.public_ip_type.value,
        "useSpot": provision_input.use_spot,
        "publicSshKeyContent": public_key,
    }


def build_output(outputs: Mapping[str, object], stack: str) -> AwsProvisionOutput:
    """Map EC2 stack outputs to :class:`AwsProvisionOutput`."""
    return AwsProvisionOutput(
        host=require_output(outputs, "publicIp", stack),
        instance_id=require_output(outputs, "instanceId", stack),
    )


class AwsRunner:
    """Start and stop an EC2 instance through the EC2 API."""

    def __init__(
        self,
        provision_input: AwsProvisionInput,
        output: AwsProvisionOutput,
        *,
        pairer: MoonlightPairer | None = None,
        client: Any | None = None,
    ) -> None:
        self.input = provision_input
        self.output = output
        self.pairer = pairer or MoonlightPairer(output.host)
        self._client = client

    @cached_property
    def _ec2(self) -> Any:
        if self._client is not None:
            return self._client
        return boto3.client("ec2", region_name=self.input.region)

    def _call(self, action: str) -> None:
        instance_id = self.output.instance_id
        LOGGER.info("Running ec2 %s on %s", action, instance_id)
        try:
            getattr(self._ec2, action)(InstanceIds=[instance_id])
        except (BotoCoreError, ClientError) as exc:
            raise RunnerError(f"ec2 {action} for {instance_id} failed: {exc}") from exc

    def start(self) -> None:
        self._call("start_instances")

    def stop(self) -> None:
        self._call("stop_instances")

    def restart(self) -> None:
        self._call("reboot_instances")

    def pair(self) -> None:
        self.pairer.pair()


def build_provisioner(state: InstanceState, config: AppConfig) -> InstanceProvisioner:
    return PulumiProvisioner.for_state(
        state, config, PULUMI_PROJECT, stack_config=stack_config, build_output=build_output
    )


def build_runner(state: InstanceState, config: AppConfig) -> AwsRunner:
    output = cast(AwsProvisionOutput, state.provision.output)
    return AwsRunner(
        cast(AwsProvisionInput, state.provision.input),
        output,
        pairer=MoonlightPairer(output.host, moonlight_bin=config.moonlight_bin),
    )


BACKEND = ProviderBackend(provisioner=build_provisioner, runner=build_runner)

__all__ = ["BACKEND", "AwsRunner", "build_output", "stack_config"]
