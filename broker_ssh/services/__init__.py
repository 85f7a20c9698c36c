"""Services for broker_ssh."""

from broker_ssh.services.pool import ConnectionPool
from broker_ssh.services.processors import (
    BaseLineProcessor,
    BufferingLineProcessor,
    CallbackLineProcessor,
    process_stream,
)
from broker_ssh.services.runner import SessionRunner
from broker_ssh.services.template import SSHSession, SSHTemplate
from broker_ssh.services.transfer import (
    copy_bytes,
    copy_files,
    copy_to_directory,
    copy_to_file,
)
from broker_ssh.services.workers import BoundedWorkerPool

__all__ = [
    "BaseLineProcessor",
    "BoundedWorkerPool",
    "BufferingLineProcessor",
    "CallbackLineProcessor",
    "ConnectionPool",
    "SSHSession",
    "SSHTemplate",
    "SessionRunner",
    "copy_bytes",
    "copy_files",
    "copy_to_directory",
    "copy_to_file",
    "process_stream",
]
