"""
Data models for the incident relay.

Defines structured representations for incidents, their update log,
reconciliation change-sets and the runtime settings: keeping the
codebase type-safe and clean.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

DEFAULT_ACTIVE_WINDOW = timedelta(days=3)


@dataclass(frozen=True)
class Update:
    """A single entry in an incident's update log."""

    id: str
    status: str  # e.g. "investigating", "identified", "resolved"
    body: str
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class Incident:
    """
    Represents a single incident from the status page API.

    Attributes:
        id: Unique identifier assigned by the status page.
        name: Human-readable incident title.
        status: Current status, as reported upstream (not validated).
        created_at: When the incident was opened.
        updated_at: When the incident last changed. Drives change detection.
        monitoring_at: When monitoring started, if reached.
        resolved_at: When the incident was resolved, if reached.
        impact: Impact classification (none, minor, major, critical).
        shortlink: URL to the incident page, may be empty.
        updates: Update log in upstream order.
    """

    id: str
    name: str
    status: str
    created_at: datetime
    updated_at: datetime
    monitoring_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    impact: str = ""
    shortlink: str = ""
    updates: Tuple[Update, ...] = ()

    def is_active_within(self, reference_time: datetime, window: timedelta) -> bool:
        """True if the incident was created strictly after ``reference_time - window``."""
        return self.created_at > reference_time - window

    def changed_since(self, other: Incident) -> bool:
        """True iff the upstream update timestamp moved."""
        return self.updated_at != other.updated_at


class ChangeKind(enum.Enum):
    NEW = "new"
    UPDATED = "updated"


class ChangeSetKind(enum.Enum):
    INITIALIZATION = "initialization"
    DELTA = "delta"


@dataclass(frozen=True)
class Change:
    kind: ChangeKind
    incident: Incident


@dataclass
class ChangeSet:
    """
    Outcome of one reconciliation pass.

    An initialization change-set carries every adopted incident and is
    reportable even when empty. A delta change-set only carries incidents
    classified as new or updated.
    """

    kind: ChangeSetKind
    changes: List[Change] = field(default_factory=list)

    @property
    def is_initialization(self) -> bool:
        return self.kind is ChangeSetKind.INITIALIZATION

    @property
    def incidents(self) -> List[Incident]:
        return [c.incident for c in self.changes]

    @property
    def should_notify(self) -> bool:
        return self.is_initialization or bool(self.changes)

    def __len__(self) -> int:
        return len(self.changes)


@dataclass
class StatusPageConfig:
    """The status page being relayed."""

    name: str = "Cloudflare"
    url: str = "https://www.cloudflarestatus.com/"

    @property
    def incidents_url(self) -> str:
        return self.url.rstrip("/") + "/api/v2/incidents.json"


@dataclass
class WebhookConfig:
    """DingTalk robot credentials."""

    webhook_token: str = ""
    secret: str = ""
    endpoint: str = "https://oapi.dingtalk.com/robot/send"


@dataclass
class RelaySettings:
    """Global relay settings."""

    poll_interval_minutes: int = 5
    daily_report_hour_utc: int = 1
    max_incidents: int = 20
    active_window_days: int = 3
    log_level: str = "INFO"
    health_port: int = 10000

    @property
    def active_window(self) -> timedelta:
        return timedelta(days=self.active_window_days)


@dataclass
class Config:
    """Everything loaded from config.yaml."""

    status_page: StatusPageConfig = field(default_factory=StatusPageConfig)
    webhook: WebhookConfig = field(default_factory=WebhookConfig)
    settings: RelaySettings = field(default_factory=RelaySettings)
