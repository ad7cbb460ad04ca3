"""
Docker container log input.

Discovers running containers, selects them by name and tails their logs into
the event queue with per-container resume positions kept in a sincedb.
"""

from .context import DockerInputContext
from .input import DockerInput
from .matcher import ContainerMatcher, MatchDecision
from .runtime import (
    ContainerDescriptor,
    DockerRuntimeClient,
    LifecycleEvent,
    LogLine,
    RuntimeClient,
)
from .sincedb import SinceDB
from .tailer import ContainerTailer

__all__ = [
    'DockerInput',
    'DockerInputContext',
    'ContainerMatcher',
    'MatchDecision',
    'ContainerDescriptor',
    'DockerRuntimeClient',
    'LifecycleEvent',
    'LogLine',
    'RuntimeClient',
    'SinceDB',
    'ContainerTailer',
]
