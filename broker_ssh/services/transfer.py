"""File transfer operations over a borrowed connection.

Every function returns an ``SSHResult``; failures are captured as
``TransferFailure`` with the underlying error attached and never raised.
"""

import logging
import re
from collections.abc import Sequence

from broker_ssh.errors import TransferFailure
from broker_ssh.models import SSHResult
from broker_ssh.protocols import Connection

logger = logging.getLogger(__name__)

DEFAULT_MODE = "0744"
DEFAULT_BYTES_MODE = "0644"

_MODE_PATTERN = re.compile(r"^[0-7]{4}$")


def _failure(host: str, message: str, error: Exception | None = None) -> SSHResult:
    return SSHResult.fail(TransferFailure(message, host=host, original_error=error))


async def copy_files(
    conn: Connection,
    host: str,
    local_paths: Sequence[str],
    remote_dir: str,
    remote_names: Sequence[str] | None = None,
    mode: str = DEFAULT_MODE,
) -> SSHResult:
    """Copy local files into a remote directory.

    Args:
        conn: Borrowed connection to ``host``
        host: Host address, for errors and logging
        local_paths: Paths of the local files
        remote_dir: Remote target directory ("" for the remote default)
        remote_names: Remote file names, one per local path; None keeps
            the local file names
        mode: Four digit octal permission string, e.g. "0644"

    Returns:
        SSHResult with success, or failure carrying ``TransferFailure``.
    """
    local_paths = list(local_paths)
    if remote_names is not None and len(remote_names) != len(local_paths):
        message = (
            f"Got {len(remote_names)} remote name(s) for "
            f"{len(local_paths)} local file(s)"
        )
        logger.error("Copy to %s:%s rejected: %s", host, remote_dir, message)
        return _failure(host, message)
    if not _MODE_PATTERN.match(mode):
        message = f"Invalid mode {mode!r}, expected four octal digits"
        logger.error("Copy to %s:%s rejected: %s", host, remote_dir, message)
        return _failure(host, message)

    try:
        client = conn.create_transfer_client()
        await client.put_files(
            local_paths,
            list(remote_names) if remote_names is not None else None,
            remote_dir,
            mode,
        )
    except Exception as e:
        logger.error(
            "Copy %s to %s:%s (remote=%s) failed: %s",
            local_paths,
            host,
            remote_dir,
            remote_names,
            e,
        )
        return _failure(host, f"Copy to {remote_dir} failed: {e}", e)

    logger.debug("Copied %d file(s) to %s:%s", len(local_paths), host, remote_dir)
    return SSHResult.ok()


async def copy_bytes(
    conn: Connection,
    host: str,
    data: bytes,
    remote_file_name: str,
    remote_dir: str,
    mode: str = DEFAULT_BYTES_MODE,
) -> SSHResult:
    """Write an in-memory buffer to ``remote_dir/remote_file_name``."""
    if not _MODE_PATTERN.match(mode):
        message = f"Invalid mode {mode!r}, expected four octal digits"
        logger.error("Copy to %s:%s/%s rejected: %s", host, remote_dir, remote_file_name, message)
        return _failure(host, message)

    try:
        client = conn.create_transfer_client()
        await client.put_bytes(data, remote_file_name, remote_dir, mode)
    except Exception as e:
        logger.error(
            "Copy %d byte(s) to %s:%s/%s failed: %s",
            len(data),
            host,
            remote_dir,
            remote_file_name,
            e,
        )
        return _failure(host, f"Copy to {remote_dir}/{remote_file_name} failed: {e}", e)

    logger.debug("Copied %d byte(s) to %s:%s/%s", len(data), host, remote_dir, remote_file_name)
    return SSHResult.ok()


async def copy_to_directory(
    conn: Connection,
    host: str,
    local_paths: str | Sequence[str],
    remote_dir: str,
    mode: str = DEFAULT_MODE,
) -> SSHResult:
    """Copy one or more local files into ``remote_dir`` keeping their names."""
    if isinstance(local_paths, str):
        local_paths = [local_paths]
    return await copy_files(conn, host, local_paths, remote_dir, mode=mode)


async def copy_to_file(
    conn: Connection,
    host: str,
    local_path: str,
    remote_file_name: str,
    remote_dir: str,
    mode: str = DEFAULT_MODE,
) -> SSHResult:
    """Copy one local file to ``remote_dir/remote_file_name``."""
    return await copy_files(
        conn, host, [local_path], remote_dir, remote_names=[remote_file_name], mode=mode
    )
