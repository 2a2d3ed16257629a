"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any
from unittest.mock import MagicMock

import pytest

from valet.command_line import CommandLine
from valet.filesystem import Filesystem

# A reply is either stdout text or an (exit_code, stderr) failure tuple.
Replies = dict[str, Any]


def _responder(replies: Replies) -> Callable[..., str]:
    """Answer a command with the reply of the first matching prefix ('' otherwise)."""

    def respond(command: str, on_error: Callable[[int, str], Any] | None = None) -> str:
        for prefix, reply in replies.items():
            if command.startswith(prefix):
                if isinstance(reply, tuple):
                    exit_code, error_output = reply
                    if on_error is not None:
                        on_error(exit_code, error_output)
                    return ""
                return reply
        return ""

    return respond


@pytest.fixture
def make_cli() -> Callable[..., MagicMock]:
    """Build a CommandLine double scripted by command prefix.

    `user` answers `run()`, `elevated` answers `run_elevated()` (without the
    sudo prefix).
    """

    def factory(user: Replies | None = None, elevated: Replies | None = None) -> MagicMock:
        cli = MagicMock(spec=CommandLine)
        cli.run.side_effect = _responder(user or {})
        cli.run_elevated.side_effect = _responder(elevated or {})
        return cli

    return factory


@pytest.fixture
def files() -> MagicMock:
    """Filesystem double where nothing exists until a test says so."""
    fs = MagicMock(spec=Filesystem)
    fs.exists.return_value = False
    fs.is_dir.return_value = False
    fs.is_link.return_value = False
    fs.realpath.side_effect = lambda path: str(path)
    return fs
