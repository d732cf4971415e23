"""
Statuspage Incidents Parser.

Decodes the ``/api/v2/incidents.json`` payload into structured Incident
objects, extracting:
  - Incident id, name, status, impact and shortlink
  - Lifecycle timestamps (created, updated, monitoring, resolved)
  - The ordered incident update log

Incidents are returned newest first by creation time, which is the order
the reconciler expects.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional

from dateutil import parser as dateutil_parser

from incident_relay.errors import DecodeFailed
from incident_relay.models import Incident, Update


def _parse_datetime(value: Any, field_name: str) -> datetime:
    """Parse a required timestamp; naive values are taken as UTC."""
    parsed = _parse_optional_datetime(value, field_name)
    if parsed is None:
        raise DecodeFailed(f"missing required timestamp {field_name!r}")
    return parsed


def _parse_optional_datetime(value: Any, field_name: str) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise DecodeFailed(f"timestamp {field_name!r} is not a string: {value!r}")
    try:
        parsed = dateutil_parser.parse(value)
    except (ValueError, OverflowError) as exc:
        raise DecodeFailed(f"bad timestamp {field_name!r}: {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _text(raw: Mapping[str, Any], key: str) -> str:
    value = raw.get(key)
    return "" if value is None else str(value)


def _require_mapping(raw: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(raw, Mapping):
        raise DecodeFailed(f"{what} is not an object: {type(raw).__name__}")
    return raw


def parse_update(raw: Any) -> Update:
    """Decode a single ``incident_updates`` entry."""
    raw = _require_mapping(raw, "incident update")
    created_at = _parse_datetime(raw.get("created_at"), "created_at")
    return Update(
        id=_text(raw, "id"),
        status=_text(raw, "status"),
        body=_text(raw, "body"),
        created_at=created_at,
        updated_at=_parse_optional_datetime(raw.get("updated_at"), "updated_at") or created_at,
    )


def parse_incident(raw: Any) -> Incident:
    """Decode a single incident object."""
    raw = _require_mapping(raw, "incident")

    incident_id = _text(raw, "id")
    if not incident_id:
        raise DecodeFailed("incident without an id")

    updates = raw.get("incident_updates")
    if updates is None:
        updates = []
    if not isinstance(updates, list):
        raise DecodeFailed(f"incident {incident_id}: incident_updates is not a list")

    created_at = _parse_datetime(raw.get("created_at"), "created_at")
    return Incident(
        id=incident_id,
        name=_text(raw, "name"),
        status=_text(raw, "status"),
        created_at=created_at,
        updated_at=_parse_optional_datetime(raw.get("updated_at"), "updated_at") or created_at,
        monitoring_at=_parse_optional_datetime(raw.get("monitoring_at"), "monitoring_at"),
        resolved_at=_parse_optional_datetime(raw.get("resolved_at"), "resolved_at"),
        impact=_text(raw, "impact"),
        shortlink=_text(raw, "shortlink"),
        updates=tuple(parse_update(u) for u in updates),
    )


# ─── Public API ───────────────────────────────────────────────


def parse_incidents(payload: Any) -> List[Incident]:
    """
    Decode an incidents.json payload.

    Args:
        payload: The already JSON-decoded response body.

    Returns:
        List of Incident objects, newest first by ``created_at``.

    Raises:
        DecodeFailed: if the payload does not have the expected shape.
    """
    payload = _require_mapping(payload, "incidents payload")
    raw_incidents = payload.get("incidents")
    if not isinstance(raw_incidents, list):
        raise DecodeFailed("payload has no 'incidents' list")

    incidents = [parse_incident(raw) for raw in raw_incidents]
    incidents.sort(key=lambda inc: inc.created_at, reverse=True)
    return incidents
