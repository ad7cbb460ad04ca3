"""Persistent per-container log positions ("sincedb").

Positions are integer nanoseconds since the epoch of the last consumed log
line. They are kept in memory and written to a JSON file with file locking,
through a temporary file that atomically replaces the previous one.
"""

from __future__ import annotations

import fcntl
import json
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from logship.core.exceptions import SinceDBError
from logship.core.logging import logger

START_BEGINNING = "beginning"
START_END = "end"


class SinceDB:
    """Offset store mapping container id to last consumed position.

    ``set`` only touches memory; ``flush`` persists the positions when they
    changed. Each container id is written by its own tailer only.

    Attributes:
        path: JSON file holding all positions.
        start_position: Where a never-seen container starts, "beginning" or "end".
    """

    def __init__(self, path: str | Path, start_position: str = START_BEGINNING):
        self.path = Path(path)
        self.start_position = start_position
        self._positions: Dict[str, int] = {}
        self._updated_at: Dict[str, str] = {}
        self._dirty = False

        self._load()

    def _load(self) -> None:
        """Load positions from disk with a shared lock.

        A missing file starts an empty store; a corrupt file is logged and
        replaced by an empty store on the next flush.
        """
        if not self.path.exists():
            logger.info(f"sincedb {self.path} does not exist, starting fresh")
            return

        try:
            with self.path.open("r") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    data = json.load(f)
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse sincedb {self.path}: {e}, starting fresh")
            return
        except OSError as e:
            logger.error(f"Failed to read sincedb {self.path}: {e}, starting fresh")
            return

        if not isinstance(data, dict):
            logger.error(f"Unexpected sincedb content in {self.path}, starting fresh")
            return

        for container_id, entry in data.items():
            try:
                self._positions[container_id] = int(entry["position"])
                self._updated_at[container_id] = entry.get("updated_at", "")
            except (KeyError, TypeError, ValueError):
                logger.warning(f"Ignoring malformed sincedb entry for {container_id}")
        logger.info(f"Loaded {len(self._positions)} positions from {self.path}")

    def get(self, container_id: str) -> Optional[int]:
        """Get the last consumed position of a container, or None if never seen."""
        return self._positions.get(container_id)

    def get_or_create(self, container_id: str) -> int:
        """Get the position of a container, creating it on first observation.

        A new container starts at 0 (its whole log) or at the current time,
        depending on ``start_position``.
        """
        position = self._positions.get(container_id)
        if position is None:
            position = time.time_ns() if self.start_position == START_END else 0
            self.set(container_id, position)
            logger.debug(f"Created position {position} for container {container_id[:12]}")
        return position

    def set(self, container_id: str, position: int) -> None:
        self._positions[container_id] = position
        self._updated_at[container_id] = datetime.now(timezone.utc).isoformat()
        self._dirty = True

    def remove(self, container_id: str) -> None:
        if self._positions.pop(container_id, None) is not None:
            self._updated_at.pop(container_id, None)
            self._dirty = True
            logger.info(f"Removed position for container {container_id[:12]}")

    def __len__(self) -> int:
        return len(self._positions)

    def __contains__(self, container_id: object) -> bool:
        return container_id in self._positions

    @property
    def dirty(self) -> bool:
        return self._dirty

    def flush(self) -> bool:
        """Write positions to disk if they changed since the last flush.

        Returns:
            True if the file was written.

        Raises:
            SinceDBError: If the file could not be written; the store stays
                dirty so the next flush retries.
        """
        if not self._dirty:
            return False

        data: Dict[str, Any] = {
            container_id: {
                "position": position,
                "updated_at": self._updated_at.get(container_id, ""),
            }
            for container_id, position in self._positions.items()
        }
        # Entries set from here on belong to the next flush
        self._dirty = False

        try:
            if self.path.parent and not self.path.parent.exists():
                self.path.parent.mkdir(parents=True, exist_ok=True)

            temp_file = self.path.with_name(self.path.name + ".tmp")
            with temp_file.open("w") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_EX)
                try:
                    json.dump(data, f, indent=2)
                    f.flush()
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)

            temp_file.replace(self.path)
        except OSError as e:
            self._dirty = True
            raise SinceDBError(str(self.path), f"write failed: {e}")

        logger.debug(f"Saved {len(data)} positions to {self.path}")
        return True

    def close(self) -> None:
        """Flush outstanding positions, logging instead of raising."""
        try:
            self.flush()
        except SinceDBError as e:
            logger.error(f"Failed to save positions on close: {e}")
