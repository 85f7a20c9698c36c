"""Shared fixtures."""

import pytest

from broker_ssh.services.runner import SessionRunner
from broker_ssh.services.template import SSHTemplate
from broker_ssh.services.workers import BoundedWorkerPool
from fakes import FakePool


@pytest.fixture
def open_pool() -> BoundedWorkerPool:
    return BoundedWorkerPool("open-test", max_workers=4, max_queue=4)


@pytest.fixture
def run_pool() -> BoundedWorkerPool:
    return BoundedWorkerPool("run-test", max_workers=8, max_queue=8)


@pytest.fixture
def runner(open_pool: BoundedWorkerPool, run_pool: BoundedWorkerPool) -> SessionRunner:
    return SessionRunner(open_pool, run_pool)


@pytest.fixture
def make_template(runner: SessionRunner):
    """Build an SSHTemplate over a FakePool."""

    def _make(pool: FakePool, op_timeout_ms: int = 5000) -> SSHTemplate:
        return SSHTemplate(pool, runner, op_timeout_ms=op_timeout_ms)

    return _make
