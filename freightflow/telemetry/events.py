"""Event recording helpers for pipeline telemetry."""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import delete, select

from freightflow.logging import get_message_id, get_request_id
from freightflow.storage.database import session_scope
from freightflow.storage.models import PipelineEvent

logger = logging.getLogger("freightflow.events")

_EVENTS_ENABLED = os.getenv("EVENTS_ENABLED", "true").lower() in {"1", "true", "yes"}


_RETENTION_DAYS = 2  # keep today + yesterday
_MAX_MESSAGE_LENGTH = 512


def _current_retention_cutoff() -> datetime:
    """Return the UTC timestamp cutoff for events to retain."""
    now_utc = datetime.now(timezone.utc)
    start_of_today = datetime(now_utc.year, now_utc.month, now_utc.day, tzinfo=timezone.utc)
    return start_of_today - timedelta(days=_RETENTION_DAYS - 1)


def _prune_old_events(session) -> None:
    """Remove events older than the retention window."""
    cutoff = _current_retention_cutoff()
    session.execute(delete(PipelineEvent).where(PipelineEvent.ts < cutoff))


def _as_label(value: Any) -> str | None:
    return None if value is None else str(value)


def _decode_meta(raw: str | None) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def _serialize(row: PipelineEvent) -> dict[str, Any]:
    return {
        "id": row.id,
        "timestamp": row.ts.isoformat() if row.ts else None,
        "level": row.level,
        "kind": row.kind,
        "request_id": row.request_id,
        "message_id": row.message_id,
        "credential_from": row.credential_from,
        "credential_to": row.credential_to,
        "provider": row.provider,
        "error_code": row.error_code,
        "message": row.message,
        "meta": _decode_meta(row.meta),
    }


def record_event(
    kind: str,
    level: str,
    *,
    message: str | None = None,
    request_id: str | None = None,
    meta: dict[str, Any] | None = None,
    **fields: Any,
) -> None:
    """Persist a high-value event for later inspection."""
    if not _EVENTS_ENABLED:
        return

    event = PipelineEvent(
        ts=datetime.now(timezone.utc),
        level=level.upper(),
        kind=kind,
        request_id=request_id or get_request_id(),
        message_id=fields.get("message_id") or get_message_id(),
        message=message[:_MAX_MESSAGE_LENGTH] if message else None,
        credential_from=_as_label(fields.get("credential_from")),
        credential_to=_as_label(fields.get("credential_to")),
        provider=fields.get("provider"),
        error_code=fields.get("error_code"),
        meta=json.dumps(meta, ensure_ascii=True, default=str) if meta else None,
    )

    try:
        with session_scope() as session:
            session.add(event)
            _prune_old_events(session)
    except Exception:
        logger.exception(
            "Failed to record event", extra={"event": "event_persist_error", "kind": kind}
        )


def list_recent_events(limit: int = 50) -> list[dict[str, Any]]:
    """Return recent events ordered newest first."""
    if not _EVENTS_ENABLED:
        return []

    cutoff = _current_retention_cutoff()

    with session_scope() as session:
        _prune_old_events(session)

        stmt = (
            select(PipelineEvent)
            .where(PipelineEvent.ts >= cutoff)
            .order_by(PipelineEvent.ts.desc())
            .limit(limit)
        )
        return [_serialize(row) for row in session.scalars(stmt).all()]


__all__ = ["list_recent_events", "record_event"]
