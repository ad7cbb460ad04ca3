"""
Container runtime client.

Defines the capability the docker input consumes (list, inspect, lifecycle
events, log streams) and its implementation on top of aiodocker, so every
container is followed by a coroutine instead of a blocking thread.
"""

from abc import ABC, abstractmethod
import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
import json
import re
import time
from typing import Any, AsyncContextManager, AsyncIterator, Dict, List, Optional, TYPE_CHECKING

import aiohttp
from aiodocker.exceptions import DockerError

if TYPE_CHECKING:
    import aiodocker

from logship.core.exceptions import (
    ContainerNotFoundError,
    DockerConnectionError,
    DockerOperationError,
    LogStreamError,
)
from logship.core.logging import logger

NANOSECONDS = 1_000_000_000

# Docker prefixes every line with an RFC3339Nano timestamp when asked to
_TIMESTAMP_PATTERN = re.compile(
    r'^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(\d{1,9}))?(Z|[+-]\d{2}:\d{2}) ?(.*)$',
    re.DOTALL
)

_TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, OSError)


@dataclass(frozen=True)
class ContainerDescriptor:
    """Identity of a container as reported by the runtime"""
    id: str
    names: List[str] = field(default_factory=list)
    running: bool = True

    @property
    def short_id(self) -> str:
        return self.id[:12]

    @property
    def name(self) -> str:
        # Remove leading slash from name
        return self.names[0].lstrip('/') if self.names else self.short_id


@dataclass(frozen=True)
class LifecycleEvent:
    """Container state change notification"""
    container_id: str
    status: str


@dataclass(frozen=True)
class LogLine:
    """
    One line of container output.

    position is the line's timestamp in nanoseconds since the epoch, or None
    when the line carried no timestamp.
    """
    timestamp: datetime
    message: str
    position: Optional[int] = None


class RuntimeClient(ABC):
    """
    Abstract container runtime capability.

    Implementations raise RuntimeClientError subclasses only:
    DockerConnectionError when the daemon is unreachable,
    ContainerNotFoundError for unknown ids, LogStreamError for failed
    log streams and DockerOperationError for anything else.
    """

    @abstractmethod
    async def ping(self) -> Dict[str, Any]:
        """Check connectivity and return the runtime's version info."""
        pass

    @abstractmethod
    async def list_containers(self) -> List[ContainerDescriptor]:
        """List running containers."""
        pass

    @abstractmethod
    async def inspect_container(self, container_id: str) -> ContainerDescriptor:
        """Inspect one container by id."""
        pass

    @abstractmethod
    def subscribe_events(self) -> AsyncContextManager[AsyncIterator[LifecycleEvent]]:
        """
        Subscribe to container lifecycle events.

        The subscription is live once the context is entered, so events that
        happen while the caller does other work are buffered. Iteration ends
        when the runtime closes the stream.
        """
        pass

    @abstractmethod
    def open_log_stream(self, container_id: str, since: int) -> AsyncIterator[LogLine]:
        """
        Follow a container's stdout and stderr.

        Args:
            container_id: Container to follow
            since: Position in nanoseconds; lines from the containing second
                on are returned, callers drop the ones already consumed

        Yields:
            LogLine objects in the order the container produced them
        """
        pass

    async def close(self) -> None:
        """Release connections held by the client."""
        pass


def parse_log_line(line: str) -> LogLine:
    """Split a timestamped docker log line into a LogLine."""
    match = _TIMESTAMP_PATTERN.match(line)
    if not match:
        return LogLine(timestamp=datetime.now(timezone.utc), message=line)

    seconds_str, fraction, offset, message = match.groups()
    try:
        timestamp = datetime.fromisoformat(
            seconds_str + ("+00:00" if offset == "Z" else offset)
        )
    except ValueError:
        return LogLine(timestamp=datetime.now(timezone.utc), message=line)

    nanos = int((fraction or "").ljust(9, "0"))
    position = int(timestamp.timestamp()) * NANOSECONDS + nanos
    timestamp = timestamp.astimezone(timezone.utc) + timedelta(microseconds=nanos // 1000)
    return LogLine(timestamp=timestamp, message=message, position=position)


class LineSplitter:
    """Reassemble lines from stream chunks that may split or join lines"""

    def __init__(self):
        self._buffer = ""

    def feed(self, chunk: Any) -> List[str]:
        if isinstance(chunk, bytes):
            chunk = chunk.decode('utf-8', errors='replace')
        self._buffer += chunk
        *lines, self._buffer = self._buffer.split("\n")
        return [line.rstrip("\r") for line in lines]

    def flush(self) -> Optional[str]:
        rest, self._buffer = self._buffer.rstrip("\r"), ""
        return rest or None


class DockerRuntimeClient(RuntimeClient):
    """
    Runtime client for the Docker Engine API using aiodocker.
    """

    def __init__(self, host: str):
        """
        Initialize the client.

        Args:
            host: Docker endpoint, e.g. unix:///var/run/docker.sock or tcp://host:2375
        """
        self.host = host
        self._docker: Optional['aiodocker.Docker'] = None

    @property
    def docker(self) -> 'aiodocker.Docker':
        # Created lazily: aiodocker needs a running event loop
        if self._docker is None:
            import aiodocker
            self._docker = aiodocker.Docker(url=self.host)
        return self._docker

    async def ping(self) -> Dict[str, Any]:
        try:
            version_info = await self.docker.version()
        except (DockerError, *_TRANSPORT_ERRORS) as e:
            raise DockerConnectionError(f"Failed to connect to Docker daemon at {self.host}: {e}")
        logger.info(f"Connected to Docker {version_info.get('Version', 'Unknown')} at {self.host}")
        return version_info

    async def list_containers(self) -> List[ContainerDescriptor]:
        try:
            containers = await self.docker.containers.list()
        except DockerError as e:
            raise DockerOperationError("list_containers", str(e))
        except _TRANSPORT_ERRORS as e:
            raise DockerConnectionError(f"Failed to list containers: {e}")

        result = []
        for container in containers:
            data = container._container  # Raw container data
            result.append(ContainerDescriptor(
                id=data['Id'],
                names=list(data.get('Names') or []),
                running=True
            ))
        return result

    async def inspect_container(self, container_id: str) -> ContainerDescriptor:
        try:
            container = await self.docker.containers.get(container_id)
        except DockerError as e:
            if e.status == 404:
                raise ContainerNotFoundError(container_id)
            raise DockerOperationError("inspect_container", str(e))
        except _TRANSPORT_ERRORS as e:
            raise DockerConnectionError(f"Failed to inspect container {container_id[:12]}: {e}")

        data = container._container
        state = data.get('State') or {}
        name = data.get('Name')
        return ContainerDescriptor(
            id=data.get('Id', container_id),
            names=[name] if name else [],
            running=bool(state.get('Running', False)) if isinstance(state, dict) else False
        )

    @asynccontextmanager
    async def subscribe_events(self) -> AsyncIterator[AsyncIterator[LifecycleEvent]]:
        from aiodocker.events import DockerEvents

        # A fresh DockerEvents per subscription; replaying from the current
        # second covers containers started while the request is in flight
        events = DockerEvents(self.docker)
        subscriber = events.subscribe(
            since=str(int(time.time())),
            filters=json.dumps({"type": ["container"]})
        )
        try:
            yield self._iter_events(subscriber)
        finally:
            try:
                await events.stop()
            except _TRANSPORT_ERRORS as e:
                logger.debug(f"Error closing event stream: {e}")

    async def _iter_events(self, subscriber) -> AsyncIterator[LifecycleEvent]:
        while True:
            data = await subscriber.get()
            if data is None:
                # Publisher signals termination of the stream with None
                return
            event = self._to_lifecycle_event(data)
            if event is not None:
                yield event

    @staticmethod
    def _to_lifecycle_event(data: Dict[str, Any]) -> Optional[LifecycleEvent]:
        if data.get('Type', 'container') != 'container':
            return None
        actor = data.get('Actor') or {}
        container_id = data.get('id') or actor.get('ID')
        status = data.get('status') or data.get('Action') or ''
        if not container_id:
            return None
        return LifecycleEvent(container_id=container_id, status=status)

    async def open_log_stream(self, container_id: str, since: int) -> AsyncIterator[LogLine]:
        splitter = LineSplitter()
        try:
            container = await self.docker.containers.get(container_id)
            stream = container.log(
                stdout=True,
                stderr=True,
                follow=True,
                timestamps=True,
                since=since // NANOSECONDS
            )
            async for chunk in stream:
                for line in splitter.feed(chunk):
                    yield parse_log_line(line)
        except DockerError as e:
            if e.status == 404:
                raise ContainerNotFoundError(container_id)
            raise LogStreamError(container_id, str(e))
        except _TRANSPORT_ERRORS as e:
            raise LogStreamError(container_id, str(e) or e.__class__.__name__)

        rest = splitter.flush()
        if rest:
            yield parse_log_line(rest)

    async def close(self) -> None:
        if self._docker is not None:
            await self._docker.close()
            self._docker = None
