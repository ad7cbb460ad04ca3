"""
Per-container log tailer.

Follows one container's output from its resume position, publishes every line
as a LogEvent and records progress in the sincedb. Transient stream failures
are retried after the reconnect interval; a stopped container ends the tailer.
"""

import asyncio
from typing import Optional

from logship.core.exceptions import ContainerNotFoundError, RuntimeClientError
from logship.core.logging import logger
from logship.inputs.base import LogEvent
from .context import DockerInputContext
from .runtime import ContainerDescriptor, LogLine

EVENT_TYPE = "docker"


class ContainerTailer:
    """
    Follows the log of a single container.

    One tailer runs per monitored container as its own asyncio task. It is
    the only writer of its container's sincedb entry.
    """

    def __init__(
        self,
        container: ContainerDescriptor,
        context: DockerInputContext,
        event_queue: "asyncio.Queue[LogEvent]",
        retry_interval: float = 10
    ):
        """
        Initialize the tailer.

        Args:
            container: Container to follow
            context: Runtime client, sincedb and hostname
            event_queue: Outbound queue for LogEvents
            retry_interval: Seconds to wait before reopening a failed stream
        """
        self.container = container
        self.context = context
        self.event_queue = event_queue
        self.retry_interval = retry_interval
        self.position: Optional[int] = None
        self.line_count = 0

    async def run(self, position: int) -> None:
        """
        Follow the container from position until it stops.

        Args:
            position: Resume position; lines at or before it are not emitted
        """
        self.position = position
        container_id = self.container.id
        logger.info(f"Tailing container {self.container.name} ({self.container.short_id}) from position {position}")

        while True:
            try:
                emitted = await self._follow()
                if not await self._is_running():
                    logger.info(f"Log stream for container {self.container.name} ended")
                    return
                if emitted:
                    # Restarted before we noticed the stream closing
                    logger.info(f"Container {self.container.name} is running again, reopening log stream")
                    continue
            except ContainerNotFoundError:
                # Container ids are never reused, so the position is dead
                self.context.sincedb.remove(container_id)
                logger.info(f"Container {self.container.name} ({self.container.short_id}) is gone, stop tailing")
                return
            except RuntimeClientError as e:
                logger.warning(
                    f"Log stream for container {self.container.name} failed: {e.message}, "
                    f"retrying in {self.retry_interval}s"
                )

            await asyncio.sleep(self.retry_interval)
            logger.debug(f"Reopening log stream for {container_id[:12]} at position {self.position}")

    async def _follow(self) -> int:
        """Read one stream until it ends; returns the number of lines published"""
        floor = self.position
        emitted = 0
        stream = self.context.runtime.open_log_stream(self.container.id, floor)
        async for line in stream:
            if line.position is not None and line.position <= floor:
                # Already consumed before this stream was opened
                continue
            await self.event_queue.put(self.build_event(line))
            emitted += 1
            self.line_count += 1
            if line.position is not None:
                self.position = line.position
                self.context.sincedb.set(self.container.id, line.position)
            logger.debug(
                f"Read line {self.line_count} from {self.container.short_id}",
                extra={"container_id": self.container.id, "per_line": True}
            )
        return emitted

    async def _is_running(self) -> bool:
        """
        Raises:
            ContainerNotFoundError: If the container was removed
        """
        return (await self.context.runtime.inspect_container(self.container.id)).running

    def build_event(self, line: LogLine) -> LogEvent:
        """Build the outbound event for a log line"""
        return LogEvent(
            timestamp=line.timestamp,
            message=line.message,
            type=EVENT_TYPE,
            extra={
                "host": self.context.hostname,
                "containerid": self.container.id,
                "containername": self.container.name,
            }
        )
