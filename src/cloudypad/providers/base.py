"""Collaborator contracts and the factory dispatching on the provider.

The lifecycle manager never talks to a cloud directly. For each instance it
asks :class:`SubManagerFactory` for three collaborators:

* an :class:`InstanceProvisioner` creating or removing cloud resources,
* an :class:`InstanceConfigurator` installing software on a reachable host,
* an :class:`InstanceRunner` starting, stopping and pairing the machine.

Each provider registers a :class:`ProviderBackend` holding the constructors of
its collaborators. The factory only dispatches; it holds no business logic.
"""
from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Protocol

from ..config import AppConfig
from ..errors import NotProvisionedError, UnsupportedProviderError
from ..state import CommonProvisionOutput, InstanceState, ProviderName
from .ansible import AnsibleConfigurator


@dataclass(frozen=True, slots=True)
class ProvisionOptions:
    """Options forwarded to provisioning and destroy calls."""

    auto_approve: bool = False


class InstanceProvisioner(Protocol):
    """Create and remove the cloud resources of an instance."""

    def verify_config(self) -> None:
        """Raise :class:`~cloudypad.errors.ProvisioningError` on unusable input."""

    def provision(self, options: ProvisionOptions) -> CommonProvisionOutput:
        """Create or update resources and return the resulting output."""

    def destroy(self, options: ProvisionOptions) -> None:
        """Remove every resource created for the instance."""


class InstanceConfigurator(Protocol):
    """Apply OS and software configuration to a provisioned host."""

    def configure(self) -> None:
        """Raise :class:`~cloudypad.errors.ConfigurationError` on failure."""


class InstanceRunner(Protocol):
    """Control the power state of a provisioned instance and pair clients."""

    def start(self) -> None:
        """Start the instance."""

    def stop(self) -> None:
        """Stop the instance."""

    def restart(self) -> None:
        """Restart the instance."""

    def pair(self) -> None:
        """Pair a Moonlight client with the instance."""


ProvisionerBuilder = Callable[[InstanceState, AppConfig], InstanceProvisioner]
RunnerBuilder = Callable[[InstanceState, AppConfig], InstanceRunner]
ConfiguratorBuilder = Callable[[InstanceState, AppConfig], InstanceConfigurator]


def _default_configurator(state: InstanceState, config: AppConfig) -> InstanceConfigurator:
    return AnsibleConfigurator.from_state(state, config)


@dataclass(frozen=True)
class ProviderBackend:
    """Constructors of the collaborators of one provider."""

    provisioner: ProvisionerBuilder
    runner: RunnerBuilder
    configurator: ConfiguratorBuilder = _default_configurator


class SubManagerFactory:
    """Build collaborators for an instance by dispatching on its provider."""

    def __init__(self, config: AppConfig, backends: Mapping[ProviderName, ProviderBackend]) -> None:
        """Keep the application *config* and the registered *backends*."""
        self._config = config
        self._backends = dict(backends)

    @property
    def providers(self) -> list[ProviderName]:
        """Providers with a registered backend."""
        return list(self._backends)

    def _backend(self, state: InstanceState) -> ProviderBackend:
        backend = self._backends.get(state.provision.provider)
        if backend is None:
            raise UnsupportedProviderError(str(state.provision.provider.value))
        return backend

    def build_provisioner(self, state: InstanceState) -> InstanceProvisioner:
        """Return the provisioner for *state*."""
        return self._backend(state).provisioner(state, self._config)

    def build_runner(self, state: InstanceState) -> InstanceRunner:
        """Return the runner for *state*; requires provision output."""
        backend = self._backend(state)
        if state.provision.output is None:
            raise NotProvisionedError(state.name, "build instance runner")
        return backend.runner(state, self._config)

    def build_configurator(self, state: InstanceState) -> InstanceConfigurator:
        """Return the configurator for *state*; requires provision output."""
        backend = self._backend(state)
        if state.provision.output is None:
            raise NotProvisionedError(state.name, "build instance configurator")
        return backend.configurator(state, self._config)


__all__ = [
    "ConfiguratorBuilder",
    "InstanceConfigurator",
    "InstanceProvisioner",
    "InstanceRunner",
    "ProviderBackend",
    "ProvisionOptions",
    "ProvisionerBuilder",
    "RunnerBuilder",
    "SubManagerFactory",
]
