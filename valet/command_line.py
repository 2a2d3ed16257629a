"""Shell command runner used by the package/service backends.

Every call blocks until the subprocess exits. There is no retry and no
timeout: a hung package manager hangs the caller.
"""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Callable

logger = logging.getLogger(__name__)

ErrorCallback = Callable[[int, str], object]


class CommandLine:
    """Runs shell commands as the invoking user or through sudo."""

    def __init__(self, sudo: str = "sudo") -> None:
        self.sudo = sudo

    def run(self, command: str, on_error: ErrorCallback | None = None) -> str:
        """Run a command as the current user and return its stdout."""
        return self._run(command, on_error)

    def run_elevated(self, command: str, on_error: ErrorCallback | None = None) -> str:
        """Run a command with elevated privileges and return its stdout."""
        return self._run(f"{self.sudo} {command}", on_error)

    def quietly(self, command: str) -> None:
        self._run(command, None)

    def quietly_elevated(self, command: str) -> None:
        self._run(f"{self.sudo} {command}", None)

    def _run(self, command: str, on_error: ErrorCallback | None) -> str:
        logger.debug("Running: %s", command)
        try:
            result = subprocess.run(
                command,
                shell=True,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as e:
            exit_code, stdout, stderr = 127, "", f"Error: {type(e).__name__}: {e}"
        else:
            exit_code, stdout, stderr = result.returncode, result.stdout, result.stderr

        if exit_code != 0:
            if on_error is not None:
                on_error(exit_code, stderr)
            else:
                logger.debug("Command exited %d: %s\n%s", exit_code, command, stderr.strip())

        return stdout
