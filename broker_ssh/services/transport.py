"""asyncssh adapters for the connection, channel and transfer protocols."""

import logging
import posixpath
from collections.abc import AsyncIterator, Sequence

import asyncssh

from broker_ssh.models import SSHHost

logger = logging.getLogger(__name__)


def _remote_path(remote_dir: str, name: str) -> str:
    return posixpath.join(remote_dir, name) if remote_dir else name


async def _read_lines(reader: "asyncssh.SSHReader[str]") -> AsyncIterator[str]:
    # readline() returns "" only at EOF; a blank line arrives as "\n".
    try:
        while True:
            line = await reader.readline()
            if not line:
                break
            yield line.rstrip("\r\n")
    except asyncssh.Error as e:
        raise ConnectionError(f"SSH stream error: {e}") from e


class AsyncSSHChannel:
    """A session channel running the remote login shell.

    ``run`` feeds the command to the shell's stdin and sends EOF, so the shell
    exits once the command finishes.
    """

    def __init__(self, process: asyncssh.SSHClientProcess) -> None:
        self._process = process
        self._closed = False

    async def run(self, command: str) -> None:
        self._process.stdin.write(command + "\n")
        await self._process.stdin.drain()
        self._process.stdin.write_eof()

    def stdout(self) -> AsyncIterator[str]:
        return _read_lines(self._process.stdout)

    def stderr(self) -> AsyncIterator[str]:
        return _read_lines(self._process.stderr)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._process.close()


class SFTPTransferClient:
    """Uploads files and buffers over an SFTP subsystem channel."""

    def __init__(self, conn: asyncssh.SSHClientConnection) -> None:
        self._conn = conn

    async def put_files(
        self,
        local_paths: Sequence[str],
        remote_names: Sequence[str] | None,
        remote_dir: str,
        mode: str,
    ) -> None:
        permissions = int(mode, 8)
        names = remote_names or [posixpath.basename(p) for p in local_paths]

        async with self._conn.start_sftp_client() as sftp:
            for local_path, name in zip(local_paths, names):
                remote_path = _remote_path(remote_dir, name)
                await sftp.put(local_path, remote_path)
                await sftp.chmod(remote_path, permissions)
                logger.debug("Uploaded %s -> %s (mode=%s)", local_path, remote_path, mode)

    async def put_bytes(
        self, data: bytes, remote_name: str, remote_dir: str, mode: str = "0644"
    ) -> None:
        remote_path = _remote_path(remote_dir, remote_name)
        async with self._conn.start_sftp_client() as sftp:
            async with sftp.open(remote_path, "wb") as remote_file:
                await remote_file.write(data)
            await sftp.chmod(remote_path, int(mode, 8))
        logger.debug("Wrote %d byte(s) -> %s (mode=%s)", len(data), remote_path, mode)


class AsyncSSHConnection:
    """Pooled asyncssh client connection to one broker host."""

    def __init__(self, conn: asyncssh.SSHClientConnection, host: SSHHost) -> None:
        self._conn = conn
        self.host = host

    @property
    def is_closed(self) -> bool:
        return self._conn.is_closed()

    async def open_channel(self) -> AsyncSSHChannel:
        process = await self._conn.create_process(encoding="utf-8", errors="replace")
        return AsyncSSHChannel(process)

    def create_transfer_client(self) -> SFTPTransferClient:
        return SFTPTransferClient(self._conn)

    def close(self) -> None:
        self._conn.close()

    def __repr__(self) -> str:
        return f"AsyncSSHConnection({self.host.endpoint})"
