"""Lifecycle manager sequencing provisioning, configuration and pairing.

:class:`InstanceManager` holds the current state of one instance. Every
operation builds the collaborator it needs, invokes it, derives a new state
snapshot, persists it and only then replaces the working copy, so the document
on disk is always the last successfully completed step.
"""
from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from enum import Enum

import typer

from .errors import (
    CloudyPadError,
    CollaboratorError,
    ConfigurationError,
    ProvisioningError,
    RunnerError,
)
from .providers.base import ProvisionOptions, SubManagerFactory
from .state import CommonProvisionInput, InstanceState, StateStore

LOGGER = logging.getLogger(__name__)

PAIR_PROMPT = "Your instance is almost ready! Do you want to pair Moonlight now?"

Confirm = Callable[[str, bool], bool]


class LifecyclePhase(str, Enum):
    """Phase of an instance derived from its state."""

    UNPROVISIONED = "unprovisioned"
    PROVISIONED = "provisioned"
    CONFIGURED = "configured"
    PAIRED = "paired"


def phase_of(state: InstanceState) -> LifecyclePhase:
    """Return the lifecycle phase of *state*."""
    if state.provision.output is None:
        return LifecyclePhase.UNPROVISIONED
    if state.status.paired:
        return LifecyclePhase.PAIRED
    if state.status.configured:
        return LifecyclePhase.CONFIGURED
    return LifecyclePhase.PROVISIONED


def _now_iso() -> str:
    return datetime.now(tz=UTC).isoformat(timespec="seconds").replace("+00:00", "Z")


class InstanceManager:
    """Drive the lifecycle of a single instance."""

    def __init__(
        self,
        state: InstanceState,
        factory: SubManagerFactory,
        store: StateStore,
        *,
        confirm: Confirm = typer.confirm,
    ) -> None:
        """Manage *state* using collaborators from *factory*, persisting through *store*."""
        self._state = state
        self._factory = factory
        self._store = store
        self._confirm = confirm

    @property
    def state(self) -> InstanceState:
        """Last persisted state of the instance."""
        return self._state

    @property
    def name(self) -> str:
        return self._state.name

    @property
    def phase(self) -> LifecyclePhase:
        return phase_of(self._state)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _commit(self, new_state: InstanceState) -> None:
        self._store.persist_state(new_state)
        self._state = new_state

    @contextmanager
    def _operation(self, operation: str, wrap: type[CollaboratorError]) -> Iterator[None]:
        """Annotate errors raised by *operation*, wrapping foreign ones in *wrap*."""
        LOGGER.debug("Starting %s of %s", operation, self.name)
        try:
            yield
        except CloudyPadError as exc:
            exc.annotate(instance=self.name, operation=operation)
            raise
        except Exception as exc:
            error = wrap(f"{type(exc).__name__}: {exc}")
            error.annotate(instance=self.name, operation=operation)
            raise error from exc
        LOGGER.debug("Finished %s of %s", operation, self.name)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    def persist(self) -> None:
        """Save the working copy, used when an instance is first created."""
        with self._operation("persist", ProvisioningError):
            self._commit(self._state)

    def update_input(self, new_input: CommonProvisionInput) -> None:
        """Replace the provisioning input with one of the same provider."""
        with self._operation("update", ProvisioningError):
            self._commit(self._state.with_input(new_input))

    def provision(self, options: ProvisionOptions | None = None) -> None:
        """Create or update cloud resources and record their output."""
        opts = options or ProvisionOptions()
        with self._operation("provision", ProvisioningError):
            provisioner = self._factory.build_provisioner(self._state)
            provisioner.verify_config()
            LOGGER.info("Provisioning %s", self.name)
            output = provisioner.provision(opts)
            self._commit(self._state.with_output(output).with_status(provisioned_at=_now_iso()))

    def configure(self) -> None:
        """Configure the provisioned host."""
        with self._operation("configure", ConfigurationError):
            configurator = self._factory.build_configurator(self._state)
            LOGGER.info("Configuring %s", self.name)
            configurator.configure()
            self._commit(self._state.with_status(configured=True, configured_at=_now_iso()))

    def start(self) -> None:
        with self._operation("start", RunnerError):
            self._factory.build_runner(self._state).start()
            self._commit(self._state)

    def stop(self) -> None:
        with self._operation("stop", RunnerError):
            self._factory.build_runner(self._state).stop()
            self._commit(self._state)

    def restart(self) -> None:
        with self._operation("restart", RunnerError):
            self._factory.build_runner(self._state).restart()
            self._commit(self._state)

    def pair(self) -> None:
        """Pair a Moonlight client and mark the instance as paired."""
        with self._operation("pair", RunnerError):
            self._factory.build_runner(self._state).pair()
            self._commit(self._state.with_status(paired=True, paired_at=_now_iso()))

    def destroy(self, options: ProvisionOptions | None = None) -> None:
        """Remove cloud resources, record the cleared state, then drop the directory.

        The cleared state is persisted before the directory is removed so an
        interruption in between leaves an unprovisioned document behind.
        """
        opts = options or ProvisionOptions()
        with self._operation("destroy", ProvisioningError):
            provisioner = self._factory.build_provisioner(self._state)
            LOGGER.info("Destroying %s", self.name)
            provisioner.destroy(opts)
            cleared = self._state.with_output(None).with_status(
                configured=False,
                paired=False,
                provisioned_at=None,
                configured_at=None,
                paired_at=None,
            )
            self._commit(cleared)
            self._store.remove_instance_dir(self.name)

    def initialize(self, options: ProvisionOptions | None = None) -> None:
        """Provision, configure and optionally pair, persisting after each step.

        Pairing needs an operator at the terminal, so it is skipped when
        ``options.auto_approve`` is set and otherwise asked for.
        """
        opts = options or ProvisionOptions()
        LOGGER.info("Initializing %s: provisioning", self.name)
        self.provision(opts)
        LOGGER.info("Initializing %s: configuring", self.name)
        self.configure()
        if opts.auto_approve:
            LOGGER.info("Initializing %s: pairing skipped (auto approve)", self.name)
            return
        if not self._confirm(PAIR_PROMPT, True):
            LOGGER.info("Initializing %s: pairing skipped", self.name)
            return
        LOGGER.info("Initializing %s: pairing", self.name)
        self.pair()


__all__ = ["PAIR_PROMPT", "InstanceManager", "LifecyclePhase", "phase_of"]
