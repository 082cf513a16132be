"""
Pytest configuration for runtime tests.

Every test gets its own executor so tasks, workers and counters never leak
between tests.
"""

from collections.abc import Iterator

import pytest

from dotask import Executor, RuntimeConfig


@pytest.fixture
def config() -> RuntimeConfig:
    return RuntimeConfig(max_workers=8, idle_wait=0.01, shutdown_timeout=2.0)


@pytest.fixture
def executor(config: RuntimeConfig) -> Iterator[Executor]:
    """Fixture providing an isolated executor that is shut down afterwards."""
    with Executor(config) as ex:
        yield ex
