"""CLI commands module."""

from . import compose, config

__all__ = ["compose", "config"]
