"""Application settings from environment variables.

Centralized environment variable parsing and validation.
"""

import logging
import os
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

ENV_PREFIX = "BROKER_SSH_"


@dataclass
class Settings:
    """Application settings from environment.

    Handles parsing, validation, and defaults for all env vars.
    """

    # Credentials
    ssh_user: str = field(default="root")
    ssh_port: int = field(default=22)
    ssh_password: str | None = field(default=None)
    identity_file: str | None = field(default=None)

    # Host key verification
    known_hosts: str | None = field(default=None)
    strict_host_key_checking: bool = field(default=True)

    # Deadlines (milliseconds)
    connect_timeout_ms: int = field(default=5000)
    op_timeout_ms: int = field(default=10_000)
    borrow_timeout_ms: int = field(default=5000)

    # Connection pool
    max_per_host: int = field(default=8)
    max_pool_size: int = field(default=100)
    idle_timeout: int = field(default=60)

    # Worker pools
    open_workers: int = field(default=100)
    open_queue: int = field(default=100)
    run_workers: int = field(default=200)
    run_queue: int = field(default=1000)
    shutdown_grace: float = field(default=5.0)

    # Logging
    log_level: str = field(default="INFO")
    log_colors: bool = field(default=True)

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings from BROKER_SSH_* environment variables.

        Returns:
            Settings instance with values from environment
        """
        return cls(
            ssh_user=os.getenv(f"{ENV_PREFIX}SSH_USER", "root"),
            ssh_port=cls._get_int("SSH_PORT", 22),
            ssh_password=os.getenv(f"{ENV_PREFIX}SSH_PASSWORD") or None,
            identity_file=os.getenv(f"{ENV_PREFIX}IDENTITY_FILE") or None,
            known_hosts=cls._get_known_hosts(),
            strict_host_key_checking=cls._get_bool("STRICT_HOST_KEY_CHECKING", True),
            connect_timeout_ms=cls._get_int("CONNECT_TIMEOUT_MS", 5000),
            op_timeout_ms=cls._get_int("OP_TIMEOUT_MS", 10_000),
            borrow_timeout_ms=cls._get_int("BORROW_TIMEOUT_MS", 5000),
            max_per_host=cls._get_positive_int("MAX_PER_HOST", 8),
            max_pool_size=cls._get_positive_int("MAX_POOL_SIZE", 100),
            idle_timeout=cls._get_int("IDLE_TIMEOUT", 60),
            open_workers=cls._get_positive_int("OPEN_WORKERS", 100),
            open_queue=cls._get_int("OPEN_QUEUE", 100),
            run_workers=cls._get_positive_int("RUN_WORKERS", 200),
            run_queue=cls._get_int("RUN_QUEUE", 1000),
            shutdown_grace=cls._get_float("SHUTDOWN_GRACE", 5.0),
            log_level=os.getenv(f"{ENV_PREFIX}LOG_LEVEL", "INFO").upper(),
            log_colors=cls._get_bool("LOG_COLORS", True),
        )

    @staticmethod
    def _get_int(key: str, default: int) -> int:
        """Get integer from environment.

        Args:
            key: Environment variable key without prefix
            default: Default value if not set

        Returns:
            Integer value from environment or default
        """
        value = os.getenv(ENV_PREFIX + key)
        if value is None:
            return default

        try:
            return int(value)
        except ValueError:
            logger.warning(
                "Invalid int for %s%s: %s, using default %d", ENV_PREFIX, key, value, default
            )
            return default

    @classmethod
    def _get_positive_int(cls, key: str, default: int) -> int:
        value = cls._get_int(key, default)
        if value <= 0:
            logger.warning(
                "%s%s must be > 0, got %d. Using default: %d", ENV_PREFIX, key, value, default
            )
            return default
        return value

    @staticmethod
    def _get_float(key: str, default: float) -> float:
        value = os.getenv(ENV_PREFIX + key)
        if value is None:
            return default

        try:
            return float(value)
        except ValueError:
            logger.warning(
                "Invalid number for %s%s: %s, using default %s", ENV_PREFIX, key, value, default
            )
            return default

    @staticmethod
    def _get_bool(key: str, default: bool) -> bool:
        """Get boolean from environment.

        Args:
            key: Environment variable key without prefix
            default: Default value if not set

        Returns:
            Boolean value from environment or default
        """
        value = os.getenv(ENV_PREFIX + key)
        if value is None:
            return default
        return value.lower() in ("1", "true", "yes", "on")

    @staticmethod
    def _get_known_hosts() -> str | None:
        """Get known_hosts path; unset or "none" disables verification."""
        value = os.getenv(f"{ENV_PREFIX}KNOWN_HOSTS", "").strip()
        if not value or value.lower() == "none":
            return None
        return os.path.expanduser(value)
