"""Valet for Linux: environment health checks and package/service backends."""

__version__ = "0.4.0"
