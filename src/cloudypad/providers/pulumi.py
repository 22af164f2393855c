"""Drive Pulumi stacks through the ``pulumi`` command line.

Every instance owns one stack named after it inside the provider's Pulumi
project (``<pulumi.projects_dir>/<provider>``). State lives in the configured
backend, a local ``file://`` directory under the data root by default.

Interrupted runs leave the stack locked, so :meth:`PulumiStack.up` and
:meth:`PulumiStack.destroy` always issue a best-effort ``pulumi cancel`` first.
"""
from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Generic, TypeVar

from ..config import AppConfig, PulumiConfig
from ..errors import ProvisioningError
from ..state import CommonProvisionInput, CommonProvisionOutput, InstanceState
from .base import ProvisionOptions
from .process import CommandRunner, run_command
from .ssh import read_public_key

LOGGER = logging.getLogger(__name__)

FILE_BACKEND_PREFIX = "file://"

InputT = TypeVar("InputT", bound=CommonProvisionInput)
OutputT = TypeVar("OutputT", bound=CommonProvisionOutput)


def _config_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class PulumiStack:
    """One Pulumi stack in a project directory."""

    def __init__(
        self,
        project_dir: Path,
        stack_name: str,
        config: PulumiConfig,
        *,
        runner: CommandRunner = run_command,
    ) -> None:
        """Bind the stack *stack_name* of the project in *project_dir*."""
        self.project_dir = project_dir
        self.stack_name = stack_name
        self.config = config
        self._runner = runner

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _env(self) -> dict[str, str]:
        return {
            "PULUMI_BACKEND_URL": self.config.backend_url,
            "PULUMI_CONFIG_PASSPHRASE": self.config.config_passphrase,
        }

    def _run(self, *args: str, action: str, capture_output: bool = True) -> str:
        result = self._runner(
            [self.config.bin, *args, "--stack", self.stack_name, "--non-interactive"],
            error_cls=ProvisioningError,
            error_prefix=f"Pulumi {action} of stack {self.stack_name}",
            capture_output=capture_output,
            env=self._env(),
            cwd=self.project_dir,
        )
        return result.stdout or ""

    def ensure_backend(self) -> None:
        """Create the local backend directory when a ``file://`` backend is used."""
        url = self.config.backend_url
        if not url.startswith(FILE_BACKEND_PREFIX):
            return
        backend_dir = Path(url[len(FILE_BACKEND_PREFIX):]).expanduser()
        try:
            backend_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ProvisioningError(f"Cannot create Pulumi backend directory {backend_dir}: {exc}") from exc

    # ------------------------------------------------------------------
    # Stack operations
    # ------------------------------------------------------------------
    def select(self) -> None:
        """Select the stack, creating it if needed."""
        self.ensure_backend()
        self._run("stack", "select", "--create", action="stack select")

    def set_config(self, values: Mapping[str, object]) -> None:
        """Set each stack configuration value."""
        for key, value in values.items():
            self._run("config", "set", key, _config_value(value), action=f"config set {key}")

    def cancel(self) -> None:
        """Cancel a pending update; failures only mean nothing was running."""
        try:
            self._run("cancel", "--yes", action="cancel")
        except ProvisioningError as exc:
            LOGGER.debug("Pulumi cancel for %s ignored: %s", self.stack_name, exc)

    def outputs(self) -> dict[str, object]:
        """Return the stack outputs."""
        raw = self._run("stack", "output", "--json", "--show-secrets", action="stack output")
        try:
            outputs = json.loads(raw or "{}")
        except json.JSONDecodeError as exc:
            raise ProvisioningError(f"Invalid Pulumi outputs for stack {self.stack_name}: {exc}") from exc
        if not isinstance(outputs, dict):
            raise ProvisioningError(f"Pulumi outputs for stack {self.stack_name} are not a mapping.")
        return outputs

    def up(self, config: Mapping[str, object]) -> dict[str, object]:
        """Apply *config* and run ``pulumi up``, returning the stack outputs."""
        self.select()
        self.set_config(config)
        self.cancel()
        LOGGER.info("Running pulumi up for stack %s", self.stack_name)
        self._run("up", "--yes", "--skip-preview", "--refresh", action="up", capture_output=False)
        return self.outputs()

    def destroy(self) -> None:
        """Refresh then destroy the stack and remove it from the backend."""
        self.select()
        self.cancel()
        LOGGER.info("Destroying stack %s", self.stack_name)
        self._run("refresh", "--yes", action="refresh", capture_output=False)
        self._run("destroy", "--yes", "--remove", action="destroy", capture_output=False)


def require_output(outputs: Mapping[str, object], key: str, stack: str) -> str:
    """Return the string output *key* of *stack* or raise :class:`ProvisioningError`."""
    value = outputs.get(key)
    if not isinstance(value, str) or not value:
        raise ProvisioningError(f"Pulumi stack {stack} did not return output '{key}'.")
    return value


class PulumiProvisioner(Generic[InputT, OutputT]):
    """Provision an instance by applying a provider's Pulumi project.

    ``stack_config`` maps the typed input and the public SSH key to stack
    configuration; ``build_output`` maps stack outputs to the typed output.
    """

    def __init__(
        self,
        name: str,
        provision_input: InputT,
        stack: PulumiStack,
        *,
        stack_config: Callable[[InputT, str], Mapping[str, object]],
        build_output: Callable[[Mapping[str, object], str], OutputT],
        public_key_reader: Callable[[str], str] = read_public_key,
    ) -> None:
        self.name = name
        self.input = provision_input
        self.stack = stack
        self._stack_config = stack_config
        self._build_output = build_output
        self._read_public_key = public_key_reader

    @classmethod
    def for_state(
        cls,
        state: InstanceState,
        config: AppConfig,
        project: str,
        *,
        stack_config: Callable[[InputT, str], Mapping[str, object]],
        build_output: Callable[[Mapping[str, object], str], OutputT],
    ) -> PulumiProvisioner[InputT, OutputT]:
        """Build a provisioner using the project directory named *project*."""
        stack = PulumiStack(config.pulumi.projects_dir / project, state.name, config.pulumi)
        return cls(
            state.name,
            state.provision.input,  # type: ignore[arg-type]
            stack,
            stack_config=stack_config,
            build_output=build_output,
        )

    def verify_config(self) -> None:
        """Check the disk size, the SSH key and the Pulumi project."""
        disk_size = getattr(self.input, "disk_size", None)
        if isinstance(disk_size, int) and disk_size <= 0:
            raise ProvisioningError(f"Disk size must be positive, got {disk_size}.")
        key_path = Path(self.input.ssh.private_key_path).expanduser()
        if not key_path.is_file():
            raise ProvisioningError(f"Private SSH key {key_path} does not exist.")
        project_file = self.stack.project_dir / "Pulumi.yaml"
        if not project_file.is_file():
            raise ProvisioningError(f"Pulumi project {project_file} does not exist.")

    def provision(self, options: ProvisionOptions) -> OutputT:
        public_key = self._read_public_key(self.input.ssh.private_key_path)
        outputs = self.stack.up(self._stack_config(self.input, public_key))
        return self._build_output(outputs, self.stack.stack_name)

    def destroy(self, options: ProvisionOptions) -> None:
        self.stack.destroy()


__all__ = ["PulumiProvisioner", "PulumiStack", "require_output"]
