"""
Relay scheduler: one tick per poll interval.

Every tick runs, in order:
  1. fetch → reconcile → notify (when the change-set is reportable)
  2. the daily-report gate, piggybacking on the same tick

Ticks never overlap and never raise for collaborator failures: a failed
fetch, decode or notification is logged and the next tick starts fresh.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, timezone
from typing import Awaitable, Callable, List, Optional

from incident_relay.errors import FetchFailed, NotificationFailed
from incident_relay.formatter import Formatter
from incident_relay.models import ChangeSet, Incident, RelaySettings
from incident_relay.reconciler import Reconciler
from incident_relay.store import SnapshotStore

log = logging.getLogger(__name__)

FetchFn = Callable[[], Awaitable[Optional[List[Incident]]]]
SendFn = Callable[[str, str], Awaitable[None]]
Clock = Callable[[], datetime]
SleepFn = Callable[[float], Awaitable[None]]

# One send plus at most one retry per day.
MAX_DAILY_REPORT_ATTEMPTS = 2


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RelayService:
    """
    Wires fetch, reconciliation, formatting and notification together.

    Attributes:
        settings: Validated relay settings.
        store: The snapshot store (shared with the health-check endpoint).
        last_report_at: When the daily report was last delivered, if ever.
    """

    def __init__(
        self,
        settings: RelaySettings,
        fetch: FetchFn,
        send: SendFn,
        formatter: Formatter,
        store: Optional[SnapshotStore] = None,
        clock: Clock = utc_now,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self._fetch = fetch
        self._send = send
        self.formatter = formatter
        self.store = store if store is not None else SnapshotStore()
        self.reconciler = Reconciler(self.store)
        self._clock = clock
        self._sleep = sleep
        self.last_report_at: Optional[datetime] = None
        self._report_attempt_date: Optional[date] = None
        self._report_attempts = 0

    async def run(self) -> None:
        """Tick now, then every poll interval until cancelled."""
        interval = self.settings.poll_interval_minutes * 60
        log.info(
            "Relay running: every %d min, daily report at %02d:00 UTC, retaining %d incidents",
            self.settings.poll_interval_minutes,
            self.settings.daily_report_hour_utc,
            self.settings.max_incidents,
        )
        while True:
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception:
                log.exception("Unexpected error during tick")
            await self._sleep(interval)

    async def tick(self, now: Optional[datetime] = None) -> Optional[ChangeSet]:
        """
        Run one poll cycle.

        Returns:
            The change-set produced, or None if nothing was reconciled.
        """
        now = now or self._clock()
        try:
            change_set = await self._poll(now)
        except Exception:
            log.exception("Unexpected error while polling, skipping this cycle")
            change_set = None
        await self._maybe_send_daily_report(now)
        return change_set

    async def _poll(self, now: datetime) -> Optional[ChangeSet]:
        try:
            incidents = await self._fetch()
        except FetchFailed as exc:
            log.error("Fetch failed, skipping this cycle: %s", exc)
            return None

        if incidents is None:
            log.info("Status page unchanged since last fetch")
            return None

        change_set = self.reconciler.reconcile(
            incidents,
            now=now,
            max_incidents=self.settings.max_incidents,
            active_window=self.settings.active_window,
        )

        if not change_set.should_notify:
            log.info("No changes, skipping notification")
            return change_set

        title, body = self.formatter.render_change_set(change_set, now)
        try:
            await self._send(title, body)
        except NotificationFailed as exc:
            log.error("Sending %r failed: %s", title, exc)
        return change_set

    def daily_report_due(self, now: datetime) -> bool:
        """True at the configured UTC hour unless today's report was sent or its attempts are spent."""
        now = now.astimezone(timezone.utc)
        if now.hour != self.settings.daily_report_hour_utc:
            return False
        if (
            self._report_attempt_date == now.date()
            and self._report_attempts >= MAX_DAILY_REPORT_ATTEMPTS
        ):
            return False
        if self.last_report_at is None:
            return True
        return self.last_report_at.astimezone(timezone.utc).date() != now.date()

    async def _maybe_send_daily_report(self, now: datetime) -> None:
        if not self.daily_report_due(now):
            return

        today = now.astimezone(timezone.utc).date()
        if self._report_attempt_date != today:
            self._report_attempt_date = today
            self._report_attempts = 0
        self._report_attempts += 1

        log.info("Daily report due, building digest")
        title, body = self.formatter.render_daily_report(
            self.store.snapshot(), now, self.settings.active_window
        )
        try:
            await self._send(title, body)
        except NotificationFailed as exc:
            log.error(
                "Daily report failed (attempt %d of %d): %s",
                self._report_attempts,
                MAX_DAILY_REPORT_ATTEMPTS,
                exc,
            )
            return
        self.last_report_at = now
        log.info("Daily report sent")
