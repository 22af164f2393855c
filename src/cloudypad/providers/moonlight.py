"""Pair a local Moonlight client with an instance."""
from __future__ import annotations

import logging

from ..errors import RunnerError
from .process import CommandRunner, run_command

LOGGER = logging.getLogger(__name__)


class MoonlightPairer:
    """Run ``moonlight pair`` attached to the terminal so the PIN is shown."""

    def __init__(self, host: str, *, moonlight_bin: str = "moonlight", runner: CommandRunner = run_command) -> None:
        self.host = host
        self.moonlight_bin = moonlight_bin
        self._runner = runner

    def pair(self) -> None:
        LOGGER.info("Pairing Moonlight with %s", self.host)
        self._runner(
            [self.moonlight_bin, "pair", self.host],
            error_cls=RunnerError,
            error_prefix=f"Moonlight pairing with {self.host}",
            capture_output=False,
        )


__all__ = ["MoonlightPairer"]
