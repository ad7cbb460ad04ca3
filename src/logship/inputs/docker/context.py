"""
Runtime context of the docker input.

Holds the live resources built from DockerInputSettings: the runtime client,
the offset store, the compiled matcher and the local hostname. The discovery
loop and every tailer receive it explicitly.
"""

from dataclasses import dataclass
import socket

from logship.core.config import DockerInputSettings
from .matcher import ContainerMatcher
from .runtime import DockerRuntimeClient, RuntimeClient
from .sincedb import SinceDB


@dataclass
class DockerInputContext:
    """Live resources shared by the discovery loop and its tailers"""
    runtime: RuntimeClient
    sincedb: SinceDB
    matcher: ContainerMatcher
    hostname: str

    @classmethod
    def from_settings(cls, settings: DockerInputSettings) -> "DockerInputContext":
        """
        Build the live resources for the given settings.

        Raises:
            InvalidPatternError: If a name pattern does not compile
        """
        matcher = ContainerMatcher.from_patterns(
            settings.include_patterns,
            settings.exclude_patterns
        )
        sincedb = SinceDB(settings.sincepath, start_position=settings.start_position)
        return cls(
            runtime=DockerRuntimeClient(settings.host),
            sincedb=sincedb,
            matcher=matcher,
            hostname=socket.gethostname()
        )
