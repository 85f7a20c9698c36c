"""SSH-related data models."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from broker_ssh.protocols import Connection


@dataclass
class SSHHost:
    """Connection parameters for one broker machine."""

    address: str
    user: str = "root"
    port: int = 22
    password: str | None = None
    identity_file: str | None = None

    @property
    def endpoint(self) -> str:
        """Return ``user@address:port`` for log messages."""
        return f"{self.user}@{self.address}:{self.port}"


@dataclass
class PooledConnection:
    """An idle pooled connection with last-used timestamp."""

    connection: "Connection"
    last_used: datetime = field(default_factory=datetime.now)

    @property
    def is_stale(self) -> bool:
        """Check if connection was closed."""
        return bool(self.connection.is_closed)
