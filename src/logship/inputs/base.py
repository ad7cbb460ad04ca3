"""
Base classes and interfaces for pipeline inputs.

This module defines the event record every input publishes and the
interface every input must implement, so the pipeline can start and stop
inputs without knowing where their events come from.
"""

from abc import ABC, abstractmethod
import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from logship.core.exceptions import InputAlreadyStartedError


@dataclass(frozen=True)
class LogEvent:
    """
    Structured log record published to the outbound queue.

    Immutable once emitted; downstream consumers must not modify it.
    """
    timestamp: datetime
    message: str
    type: str
    tags: List[str] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Render the event for JSON output"""
        data: Dict[str, Any] = {
            "@timestamp": self.timestamp.isoformat(),
            "message": self.message,
            "type": self.type,
        }
        if self.tags:
            data["tags"] = list(self.tags)
        data.update(self.extra)
        return data


class InputSource(ABC):
    """
    Abstract base class for all inputs.

    An input publishes LogEvents into a shared asyncio.Queue until it is
    stopped or fails fatally.
    """

    def __init__(self):
        self.event_queue: Optional["asyncio.Queue[LogEvent]"] = None
        self._task: Optional[asyncio.Task] = None

    @property
    @abstractmethod
    def type(self) -> str:
        """Input type name used in configuration."""
        pass

    @abstractmethod
    async def run(self, event_queue: "asyncio.Queue[LogEvent]") -> None:
        """
        Publish events into the queue until cancelled.

        Args:
            event_queue: Outbound queue shared by all inputs

        Raises:
            LogshipError: On a fatal failure of this input
        """
        pass

    def start(self, event_queue: "asyncio.Queue[LogEvent]") -> asyncio.Task:
        """
        Start the input as a background task.

        Raises:
            InputAlreadyStartedError: If the input was already started
        """
        if self.event_queue is not None:
            raise InputAlreadyStartedError(self.type)
        self.event_queue = event_queue
        self._task = asyncio.create_task(self.run(event_queue), name=f"input-{self.type}")
        return self._task

    async def stop(self) -> None:
        """Cancel the background task and wait for it to finish."""
        if self._task is None or self._task.done():
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
