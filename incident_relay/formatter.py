"""
Notification Formatter: markdown report bodies.

Renders incidents, change-sets and the daily digest into single text
blocks for the webhook. Formatting is pure: no I/O, no clock reads
(callers pass ``now``).
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Tuple

from incident_relay.models import ChangeKind, ChangeSet, Incident

_TS_FORMAT = "%Y-%m-%d %H:%M:%S"

_SECTION_HEADINGS = {
    ChangeKind.NEW: "New Incident",
    ChangeKind.UPDATED: "Incident Update",
}


def _ts(value: datetime) -> str:
    """Render a timestamp in UTC."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime(_TS_FORMAT)


def render_incident(incident: Incident) -> str:
    """
    Render one incident as a markdown section:
    header, fields, optional phase timestamps, update history, link.
    """
    lines: List[str] = [
        f"### Incident: {incident.name}",
        f"- ID: {incident.id}",
        f"- Status: {incident.status}",
        f"- Impact: {incident.impact}",
        f"- Created: {_ts(incident.created_at)}",
        f"- Updated: {_ts(incident.updated_at)}",
    ]
    if incident.monitoring_at is not None:
        lines.append(f"- Monitoring since: {_ts(incident.monitoring_at)}")
    if incident.resolved_at is not None:
        lines.append(f"- Resolved: {_ts(incident.resolved_at)}")

    if incident.updates:
        lines.append("")
        lines.append("Update history:")
        for update in incident.updates:
            lines.append(f"- {_ts(update.created_at)} [{update.status}]: {update.body}")

    if incident.shortlink:
        lines.append("")
        lines.append(f"Incident link: {incident.shortlink}")

    return "\n".join(lines) + "\n\n"


class Formatter:
    """
    Builds complete (title, body) reports for one status page.

    Attributes:
        page_name: Display name of the status page, e.g. "Cloudflare".
        page_url: Public status page URL used in the footer.
    """

    def __init__(self, page_name: str, page_url: str) -> None:
        self.page_name = page_name
        self.page_url = page_url

    def _footer(self) -> str:
        return f"\n---\nFull status: {self.page_url}"

    def render_change_set(
        self, change_set: ChangeSet, now: datetime
    ) -> Tuple[str, str]:
        if change_set.is_initialization:
            return self._render_initialization(change_set, now)

        title = f"{self.page_name} Status Update"
        sections = [
            f"## {_SECTION_HEADINGS[change.kind]}\n{render_incident(change.incident)}"
            for change in change_set.changes
        ]
        body = (
            f"# {title}\n\n"
            f"Time: {_ts(now)}\n\n"
            + "\n".join(sections)
            + "\n"
            + self._footer()
        )
        return title, body

    def _render_initialization(
        self, change_set: ChangeSet, now: datetime
    ) -> Tuple[str, str]:
        title = f"{self.page_name} Status Monitor Started"
        parts = [f"# {title}\n\n", f"Initialized at: {_ts(now)}\n\n"]
        if change_set.changes:
            parts.append("## Active incidents\n\n")
            parts.extend(render_incident(inc) for inc in change_set.incidents)
        else:
            parts.append("There are no active incidents.\n")
        parts.append(self._footer())
        return title, "".join(parts)

    def render_daily_report(
        self,
        incidents: Iterable[Incident],
        now: datetime,
        active_window: timedelta,
    ) -> Tuple[str, str]:
        """Digest of every stored incident created within ``active_window`` of ``now``."""
        title = f"{self.page_name} Daily Status Report"
        parts = [f"# {title}\n\n", f"Report time: {_ts(now)}\n\n"]

        active = [inc for inc in incidents if inc.is_active_within(now, active_window)]
        if active:
            parts.extend(render_incident(inc) for inc in active)
        else:
            parts.append(f"No incidents in the last {_describe(active_window)}.\n")

        parts.append(self._footer())
        return title, "".join(parts)


def _describe(window: timedelta) -> str:
    """Human phrasing of a window, e.g. "3 days" or "12 hours"."""
    if window.days and not window.seconds:
        return f"{window.days} day" + ("s" if window.days != 1 else "")
    hours = int(window.total_seconds() // 3600)
    return f"{hours} hour" + ("s" if hours != 1 else "")
