"""Shared fixtures: a fixed clock and an incident factory."""

from datetime import datetime, timedelta, timezone

import pytest

from incident_relay.models import Incident, Update

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def incident(
    id="inc-a",
    created=None,
    updated=None,
    status="investigating",
    name=None,
    **kwargs,
) -> Incident:
    created = created or NOW - timedelta(hours=1)
    kwargs.setdefault("impact", "minor")
    return Incident(
        id=id,
        name=name or f"Incident {id}",
        status=status,
        created_at=created,
        updated_at=updated or created,
        **kwargs,
    )


def update(id="upd-1", status="investigating", body="Looking into it.", at=None) -> Update:
    at = at or NOW - timedelta(minutes=30)
    return Update(id=id, status=status, body=body, created_at=at, updated_at=at)


@pytest.fixture
def now():
    return NOW
