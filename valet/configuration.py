"""Access to the user's Valet config.json."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from .errors import ConfigurationError

REQUIRED_KEYS = ("tld", "loopback", "paths")


class Configuration:
    """Reads `<home>/config.json`. Writing is handled by the installer, not here."""

    def __init__(self, home: Path) -> None:
        self.home = Path(home)

    def path(self) -> Path:
        return self.home / "config.json"

    def read(self) -> dict[str, Any]:
        """Parse config.json. Raises ConfigurationError on malformed content."""
        try:
            data = json.loads(self.path().read_text(encoding="utf-8"))
        except UnicodeDecodeError as e:
            raise ConfigurationError(f"{self.path()} is not valid UTF-8: {e}") from e
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in {self.path()}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Expected a JSON object in {self.path()}")
        return data


def missing_keys(config: dict[str, Any]) -> list[str]:
    return [key for key in REQUIRED_KEYS if key not in config]
