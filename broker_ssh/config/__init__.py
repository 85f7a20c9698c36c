"""Configuration for broker_ssh."""

from broker_ssh.config.settings import Settings

__all__ = ["Settings"]
