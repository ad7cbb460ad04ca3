"""
Pytest configuration and fixtures
"""

import asyncio

import pytest

from logship.core.config import DockerInputSettings
from logship.inputs.docker import ContainerMatcher, DockerInputContext, SinceDB

from fakes import FakeRuntimeClient


@pytest.fixture
def runtime() -> FakeRuntimeClient:
    return FakeRuntimeClient()


@pytest.fixture
def sincedb(tmp_path) -> SinceDB:
    return SinceDB(tmp_path / "sincedb")


@pytest.fixture
def settings(tmp_path) -> DockerInputSettings:
    return DockerInputSettings(
        sincepath=str(tmp_path / "sincedb"),
        exclude_patterns=["logship"],
        connection_retry_interval=0.01,
        sincedb_flush_interval=0.01,
    )


@pytest.fixture
def context(runtime, sincedb) -> DockerInputContext:
    return DockerInputContext(
        runtime=runtime,
        sincedb=sincedb,
        matcher=ContainerMatcher.from_patterns(excludes=["logship"]),
        hostname="test-host"
    )


@pytest.fixture
def wait_until():
    """Poll a predicate until it holds or the timeout expires"""
    async def _wait_until(predicate, timeout: float = 2.0):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not reached in time")
            await asyncio.sleep(0.005)
    return _wait_until
