from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # Install home (holds config.json, Drivers/, Sites/, Log/, Certificates/, valet.sock)
    valet_home_path: str = "~/.config/valet"

    # Service backend: "auto" | "brew" | "dnf"
    # auto = Homebrew on macOS, DNF + systemd everywhere else
    valet_backend: str = "auto"

    # Homebrew install prefix (/usr/local on Intel Macs)
    brew_prefix: str = "/opt/homebrew"

    # Directory holding the linked `php` binary on DNF systems
    php_bin_dir: str = "/usr/bin"

    # Logging
    log_level: str = "INFO"

    @property
    def home(self) -> Path:
        return Path(self.valet_home_path).expanduser()


settings = Settings()
