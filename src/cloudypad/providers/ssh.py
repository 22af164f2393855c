"""SSH key helpers."""
from __future__ import annotations

from pathlib import Path

from ..errors import ProvisioningError
from .process import CommandRunner, run_command


def read_public_key(private_key_path: str, *, runner: CommandRunner = run_command) -> str:
    """Return the public key matching *private_key_path*.

    ``<key>.pub`` is used when present, otherwise the key is derived with
    ``ssh-keygen -y``.
    """
    key_path = Path(private_key_path).expanduser()
    public_path = key_path.with_name(f"{key_path.name}.pub")
    if public_path.is_file():
        try:
            return public_path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise ProvisioningError(f"Cannot read public key {public_path}: {exc}") from exc
    if not key_path.is_file():
        raise ProvisioningError(f"Private SSH key {key_path} does not exist.")
    result = runner(
        ["ssh-keygen", "-y", "-f", str(key_path)],
        error_cls=ProvisioningError,
        error_prefix=f"Deriving public key from {key_path}",
    )
    return (result.stdout or "").strip()


__all__ = ["read_public_key"]
