"""
Snapshot Store: the last-known state of every tracked incident.

The map is only reachable through the operations below, so the locking
discipline cannot be bypassed:
  - writes (initialize, upsert, retention) take the exclusive side
  - reads (snapshot, get, len) take the shared side

The lock is writer-preferring: once a writer is waiting, new readers
queue behind it. Writes are short in-memory mutations, so nothing waits long.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from incident_relay.models import Incident

log = logging.getLogger(__name__)


class ReadWriteLock:
    """Many concurrent readers or one writer."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._waiting_writers:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._waiting_writers += 1
            while self._writer or self._readers:
                self._cond.wait()
            self._waiting_writers -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


def newest_first(incidents: Iterable[Incident]) -> List[Incident]:
    """Order by ``created_at`` descending, ties by ascending id."""
    # Two stable passes: secondary key first, then primary.
    ordered = sorted(incidents, key=lambda inc: inc.id)
    ordered.sort(key=lambda inc: inc.created_at, reverse=True)
    return ordered


class SnapshotStore:
    """In-memory map of incident id -> last-known Incident."""

    def __init__(self) -> None:
        self._lock = ReadWriteLock()
        self._incidents: Dict[str, Incident] = {}
        self._initialized = False

    @property
    def initialized(self) -> bool:
        with self._lock.read():
            return self._initialized

    def initialize_if_empty(
        self, incidents: Iterable[Incident]
    ) -> Tuple[bool, List[Incident]]:
        """
        Adopt ``incidents`` as the baseline if the store was never populated.

        Returns:
            (True, stored incidents) on the first call, (False, []) afterwards.
        """
        with self._lock.write():
            if self._initialized:
                return False, []
            stored = list(incidents)
            self._incidents = {inc.id: inc for inc in stored}
            self._initialized = True
            return True, stored

    def upsert(self, incident: Incident) -> Optional[Incident]:
        """Insert or overwrite ``incident``; return what was there before."""
        with self._lock.write():
            prior = self._incidents.get(incident.id)
            self._incidents[incident.id] = incident
            return prior

    def enforce_retention(self, max_count: int) -> List[Incident]:
        """
        Keep only the ``max_count`` most recently created incidents.

        Returns:
            The evicted incidents, newest first.
        """
        with self._lock.write():
            if len(self._incidents) <= max_count:
                return []
            ordered = newest_first(self._incidents.values())
            kept, evicted = ordered[:max_count], ordered[max_count:]
            self._incidents = {inc.id: inc for inc in kept}
        for inc in evicted:
            log.debug("Evicted incident %s (%s)", inc.id, inc.name)
        return evicted

    def get(self, incident_id: str) -> Optional[Incident]:
        with self._lock.read():
            return self._incidents.get(incident_id)

    def snapshot(self) -> List[Incident]:
        """A point-in-time copy of the store, newest first."""
        with self._lock.read():
            return newest_first(self._incidents.values())

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._incidents)
