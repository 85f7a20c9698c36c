"""Utilities for broker_ssh."""

from broker_ssh.utils.console import ColorfulFormatter, configure_logging

__all__ = [
    "ColorfulFormatter",
    "configure_logging",
]
