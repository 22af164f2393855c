"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

import copy
import logging
import subprocess
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from cloudypad.config import AppConfig, load_config
from cloudypad.errors import CollaboratorError
from cloudypad.providers import ProviderBackend, ProvisionOptions, SubManagerFactory
from cloudypad.state import (
    AwsProvisionOutput,
    CommonProvisionOutput,
    InstanceState,
    ProviderName,
    StateStore,
    validate_state,
)

SSH = {"user": "ubuntu", "privateKeyPath": "/home/me/.ssh/id_ed25519"}

DOCUMENTS: dict[str, dict[str, object]] = {
    "aws": {
        "version": "1",
        "name": "box1",
        "provision": {
            "provider": "aws",
            "input": {
                "ssh": SSH,
                "instanceType": "g4dn.xlarge",
                "diskSize": 100,
                "publicIpType": "static",
                "region": "eu-central-1",
                "useSpot": False,
            },
            "output": {"host": "1.2.3.4", "instanceId": "i-1"},
        },
        "status": {"configured": False, "paired": False},
    },
    "azure": {
        "version": "1",
        "name": "azbox",
        "provision": {
            "provider": "azure",
            "input": {
                "ssh": SSH,
                "vmSize": "Standard_NC8as_T4_v3",
                "diskSize": 100,
                "publicIpType": "dynamic",
                "subscriptionId": "sub-123",
                "location": "francecentral",
                "useSpot": True,
            },
            "output": {"host": "5.6.7.8", "vmName": "vm-azbox", "resourceGroupName": "rg-azbox"},
        },
        "status": {"configured": True, "paired": False, "configuredAt": "2024-05-01T10:00:00Z"},
    },
    "gcp": {
        "version": "1",
        "name": "gbox",
        "provision": {
            "provider": "gcp",
            "input": {
                "ssh": SSH,
                "projectId": "my-project",
                "machineType": "n1-standard-8",
                "acceleratorType": "nvidia-tesla-p4",
                "diskSize": 200,
                "publicIpType": "static",
                "region": "europe-west4",
                "zone": "europe-west4-b",
                "useSpot": False,
            },
        },
        "status": {"configured": False, "paired": False},
    },
    "paperspace": {
        "version": "1",
        "name": "pbox",
        "provision": {
            "provider": "paperspace",
            "input": {
                "ssh": {"user": "paperspace", "privateKeyPath": "/home/me/.ssh/id_ed25519"},
                "apiKey": "secret-api-key",
                "machineType": "RTX4000",
                "diskSize": 100,
                "publicIpType": "static",
                "region": "East Coast (NY2)",
            },
            "output": {"host": "9.9.9.9", "machineId": "ps-123"},
        },
        "status": {"configured": True, "paired": True},
    },
}


@pytest.fixture
def documents() -> dict[str, dict[str, object]]:
    """Return fresh copies of valid current-version documents keyed by provider."""
    return copy.deepcopy(DOCUMENTS)


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    """Return a configuration rooted in the temporary directory."""
    return load_config(env={"CLOUDYPAD_HOME": str(tmp_path / "home")})


@pytest.fixture
def store(app_config: AppConfig) -> StateStore:
    """Return a state store using the temporary data root."""
    return StateStore(app_config.data_root)


@dataclass
class Stubs:
    """Recording collaborators shared by lifecycle and CLI tests."""

    calls: list[str] = field(default_factory=list)
    output: CommonProvisionOutput = field(
        default_factory=lambda: AwsProvisionOutput(host="1.2.3.4", instance_id="i-1")
    )
    failures: dict[str, BaseException] = field(default_factory=dict)

    def record(self, name: str) -> None:
        """Record a call and raise the configured failure, if any."""
        self.calls.append(name)
        failure = self.failures.get(name)
        if failure is not None:
            raise failure

    def backend(self) -> ProviderBackend:
        """Return a backend whose collaborators record into this object."""
        return ProviderBackend(
            provisioner=lambda state, config: _StubProvisioner(self),
            runner=lambda state, config: _StubRunner(self),
            configurator=lambda state, config: _StubConfigurator(self),
        )

    def factory(self, config: AppConfig) -> SubManagerFactory:
        """Return a factory with the stub backend registered for AWS."""
        return SubManagerFactory(config, {ProviderName.AWS: self.backend()})


class _StubProvisioner:
    def __init__(self, stubs: Stubs) -> None:
        self.stubs = stubs

    def verify_config(self) -> None:
        self.stubs.record("verify_config")

    def provision(self, options: ProvisionOptions) -> CommonProvisionOutput:
        self.stubs.record("provision")
        return self.stubs.output

    def destroy(self, options: ProvisionOptions) -> None:
        self.stubs.record("destroy")


class _StubRunner:
    def __init__(self, stubs: Stubs) -> None:
        self.stubs = stubs

    def start(self) -> None:
        self.stubs.record("start")

    def stop(self) -> None:
        self.stubs.record("stop")

    def restart(self) -> None:
        self.stubs.record("restart")

    def pair(self) -> None:
        self.stubs.record("pair")


class _StubConfigurator:
    def __init__(self, stubs: Stubs) -> None:
        self.stubs = stubs

    def configure(self) -> None:
        self.stubs.record("configure")


@pytest.fixture
def stubs() -> Stubs:
    """Return a fresh set of recording collaborators."""
    return Stubs()


@pytest.fixture
def factory(stubs: Stubs, app_config: AppConfig) -> SubManagerFactory:
    """Return a factory wired to the recording collaborators."""
    return stubs.factory(app_config)


@pytest.fixture
def unprovisioned_state(documents: dict[str, dict[str, object]]) -> InstanceState:
    """Return the AWS sample state without provision output."""
    document = copy.deepcopy(documents["aws"])
    del document["provision"]["output"]  # type: ignore[index]
    return validate_state(document)


@dataclass
class RecordingRunner:
    """Command runner double recording invocations instead of spawning processes."""

    calls: list[dict[str, object]] = field(default_factory=list)
    stdout: dict[str, str] = field(default_factory=dict)
    failures: dict[str, str] = field(default_factory=dict)

    def __call__(
        self,
        args: Sequence[str],
        *,
        error_cls: type[CollaboratorError],
        error_prefix: str,
        capture_output: bool = True,
        env: Mapping[str, str] | None = None,
        cwd: Path | None = None,
    ) -> subprocess.CompletedProcess[str]:
        command = list(args)
        self.calls.append(
            {"args": command, "capture_output": capture_output, "env": dict(env or {}), "cwd": cwd}
        )
        joined = " ".join(command)
        for fragment, message in self.failures.items():
            if fragment in joined:
                raise error_cls(f"{error_prefix} failed (exit 1): {message}")
        stdout = next((out for fragment, out in self.stdout.items() if fragment in joined), "")
        return subprocess.CompletedProcess(command, 0, stdout=stdout, stderr="")

    @property
    def commands(self) -> list[list[str]]:
        """Argument vectors of every recorded call."""
        return [call["args"] for call in self.calls]  # type: ignore[misc]


@pytest.fixture
def command_runner() -> RecordingRunner:
    """Return a command runner that records instead of executing."""
    return RecordingRunner()


@pytest.fixture(autouse=True)
def _reset_cloudypad_logging() -> Iterator[None]:
    """Drop handlers installed by CLI invocations so they never outlive their streams."""
    yield
    root = logging.getLogger("cloudypad")
    for handler in list(root.handlers):
        if getattr(handler, "_cloudypad_handler", False):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(logging.NOTSET)
