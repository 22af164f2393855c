"""Persist instance state documents under the data root.

Layout::

    <data_root>/instances/<name>/config.yml

Documents are YAML, written atomically with owner-only permissions because
provisioning input may hold API keys. Loading always goes through
:func:`~cloudypad.state.migration.migrate` so callers only ever see
current-version state.
"""
from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path

import yaml

from ..config import resolve_data_root
from ..errors import InstanceNotFoundError, StateStoreError
from .migration import migrate
from .schema import InstanceState, validate_instance_name

LOGGER = logging.getLogger(__name__)

INSTANCES_DIR_NAME = "instances"
STATE_FILE_NAME = "config.yml"
STATE_FILE_MODE = 0o600


class StateStore:
    """Read and write instance documents below *data_root*."""

    def __init__(self, data_root: Path) -> None:
        """Remember the data root; nothing is created until the first write."""
        self._data_root = data_root.expanduser()

    @property
    def data_root(self) -> Path:
        """Root directory holding all cloudypad data."""
        return self._data_root

    @property
    def instances_dir(self) -> Path:
        """Directory holding one sub-directory per instance."""
        return self._data_root / INSTANCES_DIR_NAME

    def instance_dir(self, name: str) -> Path:
        """Return the directory of the instance named *name*."""
        return self.instances_dir / validate_instance_name(name)

    def state_path(self, name: str) -> Path:
        """Return the path of the state document of *name*."""
        return self.instance_dir(name) / STATE_FILE_NAME

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def list_instances(self) -> list[str]:
        """Return the sorted names of instances with a persisted document.

        Discovery is best effort: filesystem errors are logged and yield an
        empty list.
        """
        LOGGER.debug("Listing instances from %s", self.instances_dir)
        try:
            if not self.instances_dir.exists():
                return []
            return sorted(
                entry.name
                for entry in self.instances_dir.iterdir()
                if entry.is_dir() and (entry / STATE_FILE_NAME).is_file()
            )
        except OSError as exc:
            LOGGER.warning("Failed to read instances directory %s: %s", self.instances_dir, exc)
            return []

    def instance_exists(self, name: str) -> bool:
        """Return ``True`` when the directory of *name* exists."""
        return self.instance_dir(name).is_dir()

    def load_state(self, name: str) -> InstanceState:
        """Load, migrate and validate the document of *name*."""
        path = self.state_path(name)
        if not self.instance_exists(name):
            raise InstanceNotFoundError(name)
        if not path.is_file():
            raise InstanceNotFoundError(name, f"State file {path} is missing.")

        LOGGER.debug("Loading instance state %s from %s", name, path)
        try:
            raw = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            raise StateStoreError(f"Failed to parse state file {path}: {exc}") from exc
        except OSError as exc:
            raise StateStoreError(f"Failed to read state file {path}: {exc}") from exc
        if raw is None:
            raise StateStoreError(f"State file {path} is empty.")
        state = migrate(raw)
        if state.name != name:
            raise StateStoreError(
                f"State file {path} belongs to instance '{state.name}', not '{name}'."
            )
        return state

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def persist_state(self, state: InstanceState) -> Path:
        """Atomically overwrite the document of ``state.name`` and return its path."""
        directory = self.instance_dir(state.name)
        path = directory / STATE_FILE_NAME
        payload = state.to_dict()
        LOGGER.debug("Persisting state for %s at %s", state.name, path)

        try:
            directory.mkdir(parents=True, exist_ok=True)
            tmp_fd, tmp_name = tempfile.mkstemp(dir=str(directory), prefix=f".{STATE_FILE_NAME}.")
        except OSError as exc:
            raise StateStoreError(f"Failed to prepare state directory {directory}: {exc}") from exc

        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(tmp_fd, "w", encoding="utf-8") as handle:
                yaml.safe_dump(payload, handle, sort_keys=False)
            os.chmod(tmp_path, STATE_FILE_MODE)
            os.replace(tmp_path, path)
        except (OSError, yaml.YAMLError) as exc:
            raise StateStoreError(f"Failed to write state file {path}: {exc}") from exc
        finally:
            tmp_path.unlink(missing_ok=True)
        return path

    def remove_instance_dir(self, name: str) -> None:
        """Recursively delete the directory of *name*; a missing directory is fine."""
        directory = self.instance_dir(name)
        LOGGER.debug("Removing instance directory %s", directory)
        try:
            shutil.rmtree(directory)
        except FileNotFoundError:
            return
        except OSError as exc:
            raise StateStoreError(f"Failed to remove instance directory {directory}: {exc}") from exc


__all__ = [
    "INSTANCES_DIR_NAME",
    "STATE_FILE_NAME",
    "StateStore",
    "resolve_data_root",
]
