"""Configure provisioned hosts with ``ansible-playbook``."""
from __future__ import annotations

import logging
import tempfile
from pathlib import Path

import yaml

from ..config import AnsibleConfig, AppConfig
from ..errors import ConfigurationError
from ..state import InstanceState, SshConfig
from .process import CommandRunner, run_command

LOGGER = logging.getLogger(__name__)

# Hosts are recreated on every provisioning so their keys cannot be pinned.
SSH_COMMON_ARGS = 'ansible_ssh_common_args="-o StrictHostKeyChecking=no"'


def build_inventory(name: str, host: str, ssh: SshConfig) -> dict[str, object]:
    """Return an Ansible YAML inventory holding a single host."""
    return {
        "all": {
            "hosts": {
                name: {
                    "ansible_host": host,
                    "ansible_user": ssh.user,
                    "ansible_ssh_private_key_file": str(Path(ssh.private_key_path).expanduser()),
                }
            }
        }
    }


class AnsibleConfigurator:
    """Run the cloudypad playbook against one instance."""

    def __init__(
        self,
        name: str,
        host: str,
        ssh: SshConfig,
        config: AnsibleConfig,
        *,
        runner: CommandRunner = run_command,
    ) -> None:
        """Capture the target host and the playbook settings."""
        self.name = name
        self.host = host
        self.ssh = ssh
        self.config = config
        self._runner = runner

    @classmethod
    def from_state(
        cls,
        state: InstanceState,
        config: AppConfig,
        *,
        runner: CommandRunner = run_command,
    ) -> AnsibleConfigurator:
        """Build a configurator for a provisioned *state*."""
        output = state.provision.output
        if output is None:
            raise ConfigurationError(f"Instance {state.name} has no provision output.")
        return cls(state.name, output.host, state.provision.input.ssh, config.ansible, runner=runner)

    def command(self, inventory_path: Path) -> list[str]:
        """Return the ``ansible-playbook`` invocation for *inventory_path*."""
        return [
            self.config.playbook_bin,
            "-i",
            str(inventory_path),
            str(self.config.playbook),
            "-e",
            SSH_COMMON_ARGS,
            *self.config.extra_args,
        ]

    def configure(self) -> None:
        """Write a temporary inventory and run the playbook."""
        playbook = self.config.playbook.expanduser()
        if not playbook.is_file():
            raise ConfigurationError(f"Ansible playbook {playbook} does not exist.")

        inventory = build_inventory(self.name, self.host, self.ssh)
        with tempfile.TemporaryDirectory(prefix="cloudypad-ansible-") as work_dir:
            inventory_path = Path(work_dir) / "inventory.yml"
            try:
                inventory_path.write_text(yaml.safe_dump(inventory, sort_keys=False), encoding="utf-8")
            except OSError as exc:
                raise ConfigurationError(f"Cannot write Ansible inventory: {exc}") from exc
            LOGGER.info("Configuring %s (%s) with %s", self.name, self.host, playbook)
            self._runner(
                self.command(inventory_path),
                error_cls=ConfigurationError,
                error_prefix=f"Ansible configuration of {self.name}",
                capture_output=False,
            )


__all__ = ["AnsibleConfigurator", "SSH_COMMON_ARGS", "build_inventory"]
