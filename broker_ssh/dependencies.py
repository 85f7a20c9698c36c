"""Process-wide resources for broker_ssh.

The connection pool and both worker pools are built once at startup and
shut down explicitly with ``cleanup``.
"""

import logging
from dataclasses import dataclass
from typing import Any

from broker_ssh.config import Settings
from broker_ssh.services.pool import ConnectionPool
from broker_ssh.services.runner import SessionRunner
from broker_ssh.services.template import SSHTemplate
from broker_ssh.services.workers import BoundedWorkerPool

logger = logging.getLogger(__name__)


@dataclass
class Dependencies:
    """Container for broker_ssh resources.

    Example:
        async with Dependencies.create() as deps:
            ok = await deps.template.validate("10.0.0.12")
    """

    settings: Settings
    pool: ConnectionPool
    open_pool: BoundedWorkerPool
    run_pool: BoundedWorkerPool
    template: SSHTemplate

    @classmethod
    def create(cls) -> "Dependencies":
        """Create dependencies from environment settings."""
        return cls.from_settings(Settings.from_env())

    @classmethod
    def from_settings(cls, settings: Settings) -> "Dependencies":
        """Create dependencies with custom settings.

        Args:
            settings: Settings instance

        Returns:
            Dependencies with pools initialized from settings
        """
        pool = ConnectionPool(
            user=settings.ssh_user,
            port=settings.ssh_port,
            password=settings.ssh_password,
            identity_file=settings.identity_file,
            idle_timeout=settings.idle_timeout,
            max_size=settings.max_pool_size,
            max_per_host=settings.max_per_host,
            connect_timeout=settings.connect_timeout_ms / 1000,
            borrow_timeout=settings.borrow_timeout_ms / 1000,
            known_hosts=settings.known_hosts,
            strict_host_key_checking=settings.strict_host_key_checking,
        )
        open_pool = BoundedWorkerPool("open-ssh", settings.open_workers, settings.open_queue)
        run_pool = BoundedWorkerPool("ssh", settings.run_workers, settings.run_queue)
        template = SSHTemplate(
            pool,
            SessionRunner(open_pool, run_pool),
            op_timeout_ms=settings.op_timeout_ms,
        )
        return cls(
            settings=settings,
            pool=pool,
            open_pool=open_pool,
            run_pool=run_pool,
            template=template,
        )

    async def cleanup(self) -> None:
        """Drain the worker pools, then close all connections."""
        grace = self.settings.shutdown_grace
        logger.info("Shutting down broker_ssh resources (grace=%.1fs)", grace)
        await self.open_pool.shutdown(grace)
        await self.run_pool.shutdown(grace)
        await self.pool.close_all()

    async def __aenter__(self) -> "Dependencies":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.cleanup()
