"""
Reconciler: the core diff engine.

Each poll cycle hands a freshly fetched, newest-first incident list to
``Reconciler.reconcile``, which:
  1. Truncates the batch to the retention cap
  2. Adopts it wholesale the very first time (initialization)
  3. Otherwise classifies active incidents as new / updated / unchanged
  4. Prunes the store back down to the retention cap
  5. Returns the change-set describing the delta

Change detection is timestamp based: upstream bumps ``updated_at`` whenever
an incident changes, so a status difference alone is only logged.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Sequence

from incident_relay.models import (
    DEFAULT_ACTIVE_WINDOW,
    Change,
    ChangeKind,
    ChangeSet,
    ChangeSetKind,
    Incident,
)
from incident_relay.store import SnapshotStore

log = logging.getLogger(__name__)


class Reconciler:
    """Diffs fetched batches against a SnapshotStore."""

    def __init__(self, store: SnapshotStore) -> None:
        self.store = store

    def reconcile(
        self,
        fetched: Sequence[Incident],
        now: datetime,
        max_incidents: int,
        active_window: timedelta = DEFAULT_ACTIVE_WINDOW,
    ) -> ChangeSet:
        if len(fetched) > max_incidents:
            log.info(
                "Fetched %d incidents, only the newest %d are considered",
                len(fetched),
                max_incidents,
            )
        candidates = list(fetched[:max_incidents])

        initialized, stored = self.store.initialize_if_empty(candidates)
        if initialized:
            log.info("Snapshot initialized with %d incident(s)", len(stored))
            return ChangeSet(
                kind=ChangeSetKind.INITIALIZATION,
                changes=[Change(ChangeKind.NEW, inc) for inc in stored],
            )

        changes = []
        for incident in candidates:
            if not incident.is_active_within(now, active_window):
                log.debug(
                    "Skipping incident %s created %s, outside the active window",
                    incident.id,
                    incident.created_at.isoformat(),
                )
                continue

            prior = self.store.upsert(incident)

            if prior is None:
                log.info("New incident %s: %s", incident.id, incident.name)
                changes.append(Change(ChangeKind.NEW, incident))
            elif incident.changed_since(prior):
                log.info(
                    "Incident %s updated: %s (status %s)",
                    incident.id,
                    incident.name,
                    incident.status,
                )
                if prior.status != incident.status:
                    log.info(
                        "Incident %s status changed: %s -> %s",
                        incident.id,
                        prior.status,
                        incident.status,
                    )
                changes.append(Change(ChangeKind.UPDATED, incident))
            else:
                if prior.status != incident.status:
                    log.warning(
                        "Incident %s status changed %s -> %s without an update "
                        "timestamp bump, not reported",
                        incident.id,
                        prior.status,
                        incident.status,
                    )
                log.debug("Incident %s unchanged", incident.id)

        evicted = self.store.enforce_retention(max_incidents)
        if evicted:
            log.info(
                "Evicted %d incident(s), %d retained",
                len(evicted),
                len(self.store),
            )

        log.info("Reconciliation found %d change(s)", len(changes))
        return ChangeSet(kind=ChangeSetKind.DELTA, changes=changes)
