"""Keyed SSH connection pool with exclusive borrow/release.

Locking Strategy:
- Per-host semaphores: Bound how many connections one host may lend at once
- `_meta_lock`: Protects the _idle OrderedDict and the _borrowed map
- Network I/O (connect, close) never happens while holding `_meta_lock`

LRU Eviction:
- `_idle` is an OrderedDict keyed by host, most recently released last
- When the pool holds max_size connections, the oldest idle connection of
  any host is closed before a new one is opened
"""

import asyncio
import logging
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Any

import asyncssh

from broker_ssh.errors import PoolAcquireFailure
from broker_ssh.models import PooledConnection, SSHHost
from broker_ssh.protocols import Connection
from broker_ssh.services.transport import AsyncSSHConnection

logger = logging.getLogger(__name__)


class ConnectionPool:
    """SSH connection pool keyed by host address."""

    def __init__(
        self,
        user: str = "root",
        port: int = 22,
        password: str | None = None,
        identity_file: str | None = None,
        idle_timeout: int = 60,
        max_size: int = 100,
        max_per_host: int = 8,
        connect_timeout: float = 10.0,
        borrow_timeout: float = 5.0,
        known_hosts: str | None = None,
        strict_host_key_checking: bool = True,
    ) -> None:
        """Initialize pool.

        Args:
            user: SSH user for every host
            port: SSH port for every host
            password: Password, or None for key authentication only
            identity_file: Private key path, or None for default keys
            idle_timeout: Seconds before idle connections are closed
            max_size: Maximum open connections across all hosts (must be > 0)
            max_per_host: Maximum connections lent per host (must be > 0)
            connect_timeout: Seconds allowed for the SSH handshake
            borrow_timeout: Default seconds to wait for a free connection
            known_hosts: Path to known_hosts file, or None to disable verification
            strict_host_key_checking: Whether to reject unknown host keys

        Raises:
            ValueError: If max_size or max_per_host is not positive
        """
        if max_size <= 0:
            raise ValueError(f"max_size must be > 0, got {max_size}")
        if max_per_host <= 0:
            raise ValueError(f"max_per_host must be > 0, got {max_per_host}")

        self.user = user
        self.port = port
        self.idle_timeout = idle_timeout
        self.max_size = max_size
        self.max_per_host = max_per_host
        self.connect_timeout = connect_timeout
        self.borrow_timeout = borrow_timeout
        self._password = password
        self._identity_file = identity_file
        self._idle: OrderedDict[str, list[PooledConnection]] = OrderedDict()
        self._borrowed: dict[Connection, str] = {}
        self._host_slots: dict[str, asyncio.Semaphore] = {}
        self._opening = 0
        self._meta_lock = asyncio.Lock()
        self._cleanup_task: asyncio.Task[Any] | None = None
        self._closed = False

        self._known_hosts = known_hosts
        self._strict_host_key = strict_host_key_checking

        if self._known_hosts is None:
            logger.warning(
                "SSH host key verification DISABLED - vulnerable to MITM attacks. "
                "Set BROKER_SSH_KNOWN_HOSTS to a valid known_hosts file path."
            )
        else:
            logger.info(
                "SSH host key verification enabled (known_hosts=%s, strict=%s)",
                self._known_hosts,
                self._strict_host_key,
            )

        logger.info(
            "ConnectionPool initialized (idle_timeout=%ds, max_size=%d, max_per_host=%d)",
            idle_timeout,
            max_size,
            max_per_host,
        )

    def _get_host_slots(self, host: str) -> asyncio.Semaphore:
        slots = self._host_slots.get(host)
        if slots is None:
            slots = self._host_slots[host] = asyncio.Semaphore(self.max_per_host)
        return slots

    def _host_config(self, host: str) -> SSHHost:
        return SSHHost(
            address=host,
            user=self.user,
            port=self.port,
            password=self._password,
            identity_file=self._identity_file,
        )

    async def borrow(self, host: str, timeout: float | None = None) -> Connection:
        """Borrow an exclusive connection to ``host``.

        Args:
            host: Host address
            timeout: Seconds to wait for a free per-host slot; defaults to
                borrow_timeout

        Returns:
            Connection that must be handed back with ``release``

        Raises:
            PoolAcquireFailure: On timeout, exhaustion or connect failure
        """
        if self._closed:
            raise PoolAcquireFailure("Connection pool is closed", host=host)

        wait = self.borrow_timeout if timeout is None else timeout
        slots = self._get_host_slots(host)
        try:
            await asyncio.wait_for(slots.acquire(), timeout=wait)
        except asyncio.TimeoutError:
            logger.error(
                "Timed out after %.1fs waiting for a connection to %s (max_per_host=%d)",
                wait,
                host,
                self.max_per_host,
            )
            raise PoolAcquireFailure(
                f"Timed out after {wait:.1f}s waiting for a connection to {host}",
                host=host,
            ) from None

        try:
            return await self._checkout(host)
        except PoolAcquireFailure:
            slots.release()
            raise
        except asyncio.CancelledError:
            slots.release()
            raise
        except Exception as e:
            slots.release()
            logger.error("Cannot connect to %s: %s", host, e)
            raise PoolAcquireFailure(
                f"Cannot connect to {host}: {e}", host=host, original_error=e
            ) from e

    async def _checkout(self, host: str) -> Connection:
        async with self._meta_lock:
            idle = self._idle.get(host, [])
            while idle:
                pooled = idle.pop()
                if pooled.is_stale:
                    logger.info("Discarding stale connection to %s", host)
                    continue
                self._borrowed[pooled.connection] = host
                logger.debug(
                    "Reusing existing connection to %s (pool_size=%d)",
                    host,
                    self.pool_size,
                )
                return pooled.connection
            self._idle.pop(host, None)

            to_close = self._evict_lru_locked()
            exhausted = self.pool_size >= self.max_size
            if not exhausted:
                self._opening += 1

        for pooled in to_close:
            pooled.connection.close()

        if exhausted:
            logger.error(
                "Pool exhausted (pool_size=%d/%d), cannot open connection to %s",
                self.pool_size,
                self.max_size,
                host,
            )
            raise PoolAcquireFailure(
                f"Connection pool exhausted ({self.max_size} connections in use)",
                host=host,
            )

        try:
            connection = await self._connect(self._host_config(host))
        finally:
            self._opening -= 1

        async with self._meta_lock:
            self._borrowed[connection] = host

        logger.info(
            "SSH connection established to %s (pool_size=%d/%d)",
            host,
            self.pool_size,
            self.max_size,
        )

        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())
            logger.debug("Started connection cleanup task")

        return connection

    def _evict_lru_locked(self) -> list[PooledConnection]:
        """Pop LRU idle connections until there is room. Caller holds _meta_lock."""
        to_close: list[PooledConnection] = []
        while self.pool_size >= self.max_size and self._idle:
            oldest_host = next(iter(self._idle))
            idle = self._idle[oldest_host]
            logger.info(
                "Pool at capacity (%d/%d), evicting LRU: %s",
                self.pool_size,
                self.max_size,
                oldest_host,
            )
            to_close.append(idle.pop(0))
            if not idle:
                del self._idle[oldest_host]
        return to_close

    async def _connect(self, host: SSHHost) -> AsyncSSHConnection:
        logger.info("Opening SSH connection to %s", host.endpoint)

        options: dict[str, Any] = {
            "port": host.port,
            "username": host.user,
            "connect_timeout": self.connect_timeout,
        }
        if host.password is not None:
            options["password"] = host.password
        if host.identity_file:
            options["client_keys"] = [host.identity_file]

        try:
            conn = await asyncssh.connect(
                host.address, known_hosts=self._known_hosts, **options
            )
        except asyncssh.HostKeyNotVerifiable as e:
            if self._strict_host_key:
                logger.error(
                    "Host key verification failed for %s: %s. "
                    "Add the host key to %s or set "
                    "BROKER_SSH_STRICT_HOST_KEY_CHECKING=false",
                    host.address,
                    e,
                    self._known_hosts,
                )
                raise
            logger.warning(
                "Host key not verified for %s (strict mode disabled): %s",
                host.address,
                e,
            )
            conn = await asyncssh.connect(host.address, known_hosts=None, **options)

        return AsyncSSHConnection(conn, host)

    async def release(self, host: str, connection: Connection) -> None:
        """Return a borrowed connection.

        Releasing a connection that is not currently borrowed is logged and
        ignored, so a per-host slot is never freed twice.
        """
        async with self._meta_lock:
            owner = self._borrowed.pop(connection, None)
            if owner is None:
                logger.warning(
                    "Ignoring release of connection to %s that is not borrowed", host
                )
                return
            if owner != host:
                logger.warning(
                    "Connection borrowed for %s was released as %s", owner, host
                )

            discard = self._closed or connection.is_closed
            if not discard:
                self._idle.setdefault(owner, []).append(PooledConnection(connection))
                self._idle.move_to_end(owner)

        try:
            if discard:
                logger.info("Closing connection to %s on release", owner)
                connection.close()
            else:
                logger.debug(
                    "Returned connection to %s (pool_size=%d)", owner, self.pool_size
                )
        finally:
            self._host_slots[owner].release()

    async def _cleanup_loop(self) -> None:
        """Periodically clean up idle connections."""
        interval = max(self.idle_timeout // 2, 1)
        logger.debug("Cleanup loop started (interval=%ds)", interval)
        while True:
            await asyncio.sleep(interval)
            await self._cleanup_idle()

            if self.pool_size == 0:
                logger.debug("Cleanup loop stopped - no connections remaining")
                break

    async def _cleanup_idle(self) -> None:
        """Close connections that have been idle too long."""
        cutoff = datetime.now() - timedelta(seconds=self.idle_timeout)
        to_close: list[tuple[str, PooledConnection]] = []

        async with self._meta_lock:
            for host in list(self._idle):
                keep = []
                for pooled in self._idle[host]:
                    if pooled.last_used < cutoff or pooled.is_stale:
                        to_close.append((host, pooled))
                    else:
                        keep.append(pooled)
                if keep:
                    self._idle[host] = keep
                else:
                    del self._idle[host]

        for host, pooled in to_close:
            reason = "stale" if pooled.is_stale else "idle"
            logger.info("Closing %s connection to %s", reason, host)
            pooled.connection.close()

        if to_close:
            logger.debug(
                "Cleanup complete: removed %d connection(s), %d remaining",
                len(to_close),
                self.pool_size,
            )

    async def close_all(self) -> None:
        """Close idle connections and stop lending.

        Connections still borrowed are closed when they are released.
        """
        async with self._meta_lock:
            self._closed = True
            to_close = [pooled for idle in self._idle.values() for pooled in idle]
            self._idle.clear()

        if to_close:
            logger.info("Closing all %d idle connection(s)", len(to_close))
        for pooled in to_close:
            pooled.connection.close()

        if self._cleanup_task and not self._cleanup_task.done():
            self._cleanup_task.cancel()
            logger.debug("Cleanup task cancelled")

    def idle_count(self, host: str | None = None) -> int:
        """Return the number of idle connections, for one host or all."""
        if host is not None:
            return len(self._idle.get(host, []))
        return sum(len(idle) for idle in self._idle.values())

    @property
    def borrowed_count(self) -> int:
        """Return the number of connections currently lent out."""
        return len(self._borrowed)

    @property
    def pool_size(self) -> int:
        """Return the number of open connections (idle, borrowed and opening)."""
        return self.idle_count() + len(self._borrowed) + self._opening
