"""Error types raised by the package/service backends and the configuration reader."""

from __future__ import annotations


class ValetError(Exception):
    """Base class for fatal Valet errors."""


class PackageInstallError(ValetError):
    """Raised when the package manager fails to install a package."""

    def __init__(self, package: str, output: str = "") -> None:
        self.package = package
        self.output = output
        super().__init__(f"Unable to install [{package}].")


class LinkError(ValetError):
    """Raised when a PHP version cannot be linked or unlinked."""

    def __init__(self, package: str, output: str = "", action: str = "link") -> None:
        self.package = package
        self.output = output
        self.action = action
        super().__init__(f"Unable to {action} [{package}].")


class PhpResolutionError(ValetError):
    """Raised when the linked PHP cannot be matched to a supported version."""

    def __init__(self, value: str) -> None:
        self.value = value
        super().__init__(f"Unable to determine linked PHP when parsing '{value}'")


class ConfigurationError(ValetError):
    """Raised when config.json is not a valid JSON object."""
