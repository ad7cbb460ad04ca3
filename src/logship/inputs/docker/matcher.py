"""
Container name matcher.

Decides from a container's names whether its logs are collected, using the
configured include and exclude regular expressions.
"""

from enum import Enum
import re
from typing import Iterable, Pattern, Sequence, Tuple

from logship.core.exceptions import InvalidPatternError


class MatchDecision(str, Enum):
    """Outcome of matching a container"""
    MONITOR = "monitor"
    SKIP = "skip"


class ContainerMatcher:
    """
    Include/exclude policy over container names.

    Excludes always win. A non-empty include list turns the policy from
    opt-out into opt-in: containers matching no include are skipped.
    Patterns are searched anywhere in the name, and all names of a
    container are considered together.
    """

    def __init__(self, includes: Sequence[Pattern] = (), excludes: Sequence[Pattern] = ()):
        self.includes: Tuple[Pattern, ...] = tuple(includes)
        self.excludes: Tuple[Pattern, ...] = tuple(excludes)

    @classmethod
    def from_patterns(cls, includes: Iterable[str] = (), excludes: Iterable[str] = ()) -> "ContainerMatcher":
        """
        Compile string patterns into a matcher.

        Raises:
            InvalidPatternError: If a pattern is not a valid regular expression
        """
        return cls(_compile(includes), _compile(excludes))

    def decide(self, names: Sequence[str]) -> MatchDecision:
        """Return whether a container with these names is monitored."""
        if any(p.search(name) for name in names for p in self.excludes):
            return MatchDecision.SKIP
        if any(p.search(name) for name in names for p in self.includes):
            return MatchDecision.MONITOR
        if self.includes:
            return MatchDecision.SKIP
        return MatchDecision.MONITOR

    def is_monitored(self, names: Sequence[str]) -> bool:
        return self.decide(names) is MatchDecision.MONITOR


def _compile(patterns: Iterable[str]) -> Tuple[Pattern, ...]:
    compiled = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern))
        except re.error as e:
            raise InvalidPatternError(pattern, str(e))
    return tuple(compiled)
