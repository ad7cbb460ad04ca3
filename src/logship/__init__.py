"""
logship - Docker container log input.

Discovers containers on a Docker host, selects them by name and streams their
logs into an event queue with resumable per-container offsets.
"""

__version__ = "0.1.0"
