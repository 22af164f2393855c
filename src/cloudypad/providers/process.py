"""Run external command line tools on behalf of provider adapters."""
from __future__ import annotations

import logging
import os
import subprocess
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Protocol

from ..errors import CollaboratorError

LOGGER = logging.getLogger(__name__)


class CommandRunner(Protocol):
    """Callable signature shared by :func:`run_command` and test doubles."""

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
        ...  # pragma: no cover - protocol


def run_command(
    args: Sequence[str],
    *,
    error_cls: type[CollaboratorError],
    error_prefix: str,
    capture_output: bool = True,
    env: Mapping[str, str] | None = None,
    cwd: Path | None = None,
) -> subprocess.CompletedProcess[str]:
    """Run *args* and return the completed process.

    A missing executable or a non-zero exit status raises *error_cls* with
    stderr (or stdout) of the command. With ``capture_output=False`` the
    command inherits the terminal, which interactive tools need.
    """
    command = list(args)
    merged_env = None
    if env:
        merged_env = dict(os.environ)
        merged_env.update(env)
    LOGGER.debug("Running %s", " ".join(command))
    try:
        result = subprocess.run(  # noqa: S603
            command,
            capture_output=capture_output,
            text=True,
            check=False,
            env=merged_env,
            cwd=str(cwd) if cwd is not None else None,
        )
    except FileNotFoundError as exc:
        raise error_cls(f"{command[0]} not found: {exc}") from exc
    except OSError as exc:
        raise error_cls(f"{error_prefix} failed to start: {exc}") from exc
    if result.returncode != 0:
        stdout = result.stdout or ""
        stderr = result.stderr or ""
        message = stderr.strip() or stdout.strip() or "no output"
        raise error_cls(f"{error_prefix} failed (exit {result.returncode}): {message}")
    return result


__all__ = ["CommandRunner", "run_command"]
