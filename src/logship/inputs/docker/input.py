"""
Docker input.

Discovers running containers, selects them with the name matcher and runs one
ContainerTailer task per selected container. Containers started later are
picked up from the Docker event stream; when the stream breaks the input
reconnects and re-enumerates.
"""

import asyncio
from functools import partial
from typing import Any, Dict, List, Optional

from logship.core.config import DockerInputSettings, build_docker_settings
from logship.core.exceptions import ContainerNotFoundError, RuntimeClientError, SinceDBError
from logship.core.logging import logger
from logship.inputs.base import InputSource, LogEvent
from .context import DockerInputContext
from .runtime import ContainerDescriptor, LifecycleEvent
from .tailer import ContainerTailer

START_STATUS = "start"


class DockerInput(InputSource):
    """
    Discovery loop of the docker input.

    Features:
    - Enumerates running containers on every (re)connection
    - Launches tailers for containers started later
    - Keeps at most one tailer per container
    - Isolates failures to the affected container
    - Flushes the sincedb periodically and on shutdown
    """

    def __init__(self, settings: DockerInputSettings, context: Optional[DockerInputContext] = None):
        """
        Initialize the input.

        Args:
            settings: Declarative settings
            context: Live resources; built from settings when omitted
        """
        super().__init__()
        self.settings = settings
        self.context = context or DockerInputContext.from_settings(settings)
        self.tailers: Dict[str, asyncio.Task] = {}

    @classmethod
    def from_config(cls, raw: Dict[str, Any]) -> "DockerInput":
        """
        Build the input from a raw configuration mapping.

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        return cls(build_docker_settings(raw))

    @property
    def type(self) -> str:
        return self.settings.type

    @property
    def active_tailers(self) -> List[str]:
        """Ids of containers currently being tailed"""
        return [container_id for container_id, task in self.tailers.items() if not task.done()]

    async def run(self, event_queue: "asyncio.Queue[LogEvent]") -> None:
        """
        Run discovery until cancelled.

        Raises:
            DockerConnectionError: If the Docker daemon is unreachable at startup
        """
        try:
            await self.context.runtime.ping()
        except RuntimeClientError:
            await self.context.runtime.close()
            raise

        flusher = asyncio.create_task(self._flush_loop(), name="sincedb-flush")
        try:
            while True:
                try:
                    await self._discover(event_queue)
                    logger.warning("Docker event stream closed")
                except RuntimeClientError as e:
                    logger.error(f"Container discovery failed: {e.message}")

                logger.info(f"Reconnecting to Docker in {self.settings.connection_retry_interval}s")
                await asyncio.sleep(self.settings.connection_retry_interval)
        finally:
            flusher.cancel()
            await asyncio.gather(flusher, return_exceptions=True)
            await self._stop_tailers()
            self.context.sincedb.close()
            await self.context.runtime.close()
            logger.info("Docker input stopped")

    async def _discover(self, event_queue: "asyncio.Queue[LogEvent]") -> None:
        """One connection cycle: subscribe, enumerate, then listen until the stream ends"""
        async with self.context.runtime.subscribe_events() as events:
            await self._enumerate(event_queue)
            async for event in events:
                await self.handle_event(event, event_queue)

    async def _enumerate(self, event_queue: "asyncio.Queue[LogEvent]") -> None:
        containers = await self.context.runtime.list_containers()
        logger.info(f"Found {len(containers)} running containers")

        for container in containers:
            if not self.context.matcher.is_monitored(container.names):
                logger.debug(f"Skipping container {container.name} ({container.short_id})")
                continue
            self.launch(container, event_queue)

    async def handle_event(self, event: LifecycleEvent, event_queue: "asyncio.Queue[LogEvent]") -> None:
        """Launch a tailer for a started container the matcher selects"""
        if event.status != START_STATUS:
            return

        try:
            container = await self.context.runtime.inspect_container(event.container_id)
        except ContainerNotFoundError:
            logger.warning(f"Started container {event.container_id[:12]} disappeared before inspection")
            return
        except RuntimeClientError as e:
            logger.error(f"Failed to inspect started container {event.container_id[:12]}: {e.message}")
            return

        if not self.context.matcher.is_monitored(container.names):
            logger.debug(f"Skipping started container {container.name} ({container.short_id})")
            return

        self.launch(container, event_queue)

    def launch(
        self,
        container: ContainerDescriptor,
        event_queue: "asyncio.Queue[LogEvent]"
    ) -> Optional[asyncio.Task]:
        """
        Start a tailer for a container unless one is already active.

        Returns:
            The tailer task, or None if the container is already tailed
        """
        existing = self.tailers.get(container.id)
        if existing is not None and not existing.done():
            logger.debug(f"Container {container.name} ({container.short_id}) is already tailed")
            return None

        position = self.context.sincedb.get_or_create(container.id)
        tailer = ContainerTailer(
            container,
            self.context,
            event_queue,
            retry_interval=self.settings.connection_retry_interval
        )
        task = asyncio.create_task(tailer.run(position), name=f"tail-{container.short_id}")
        self.tailers[container.id] = task
        task.add_done_callback(partial(self._on_tailer_done, container.id))
        return task

    def _on_tailer_done(self, container_id: str, task: asyncio.Task) -> None:
        if self.tailers.get(container_id) is task:
            del self.tailers[container_id]

        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Tailer for container {container_id[:12]} crashed: {exc!r}")

    async def _flush_loop(self) -> None:
        """Persist positions every sincedb_flush_interval seconds"""
        while True:
            await asyncio.sleep(self.settings.sincedb_flush_interval)
            try:
                self.context.sincedb.flush()
            except SinceDBError as e:
                logger.error(f"Failed to save positions: {e.message}")

    async def _stop_tailers(self) -> None:
        """Cancel all tailers and wait for them to finish"""
        tasks = list(self.tailers.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info(f"Stopped {len(tasks)} tailers")
        self.tailers.clear()
