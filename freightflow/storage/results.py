"""Processing result storage helpers."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select

from .database import session_scope
from .models import ProcessingResult

logger = logging.getLogger("freightflow.results")


def _start_of_today() -> datetime:
    now = datetime.now(timezone.utc)
    return datetime(now.year, now.month, now.day, tzinfo=timezone.utc)


def _decode_ids(serialized: str | None) -> list[str]:
    if not serialized:
        return []
    try:
        value = json.loads(serialized)
    except json.JSONDecodeError:
        return []
    return [str(item) for item in value] if isinstance(value, list) else []


def save_result(
    *,
    message_id: str,
    chat_id: str,
    content: str,
    sender_id: str,
    real_identity: str,
    ai_response: str | None,
    status: str,
    outcome: str,
    error_message: str | None,
    record_ids: list[str],
    processed_at: datetime,
) -> int:
    """Persist one processing attempt. Rows are never updated afterwards."""
    row = ProcessingResult(
        message_id=message_id,
        chat_id=chat_id,
        content=content,
        sender_id=sender_id,
        real_identity=real_identity,
        ai_response=ai_response,
        status=status,
        outcome=outcome,
        error_message=error_message,
        record_ids=json.dumps(record_ids, ensure_ascii=True),
        processed_at=processed_at,
    )
    with session_scope() as session:
        session.add(row)
        session.flush()
        return row.id


def _serialize(row: ProcessingResult) -> dict[str, Any]:
    return {
        "id": row.id,
        "message_id": row.message_id,
        "chat_id": row.chat_id,
        "content": row.content,
        "sender_id": row.sender_id,
        "real_identity": row.real_identity,
        "ai_response": row.ai_response,
        "status": row.status,
        "outcome": row.outcome,
        "error_message": row.error_message,
        "record_ids": _decode_ids(row.record_ids),
        "processed_at": row.processed_at.isoformat() if row.processed_at else None,
    }


def list_results(
    limit: int = 50, *, status: str | None = None, today_only: bool = False
) -> list[dict[str, Any]]:
    """Return recent processing results, newest first."""
    stmt = select(ProcessingResult)
    if status:
        stmt = stmt.where(ProcessingResult.status == status)
    if today_only:
        stmt = stmt.where(ProcessingResult.processed_at >= _start_of_today())
    stmt = stmt.order_by(ProcessingResult.processed_at.desc(), ProcessingResult.id.desc()).limit(limit)
    with session_scope() as session:
        return [_serialize(row) for row in session.scalars(stmt).all()]


def processing_stats_today() -> dict[str, int]:
    """Count today's attempts by status and the records they created."""
    cutoff = _start_of_today()
    with session_scope() as session:
        rows = session.execute(
            select(ProcessingResult.status, func.count())
            .where(ProcessingResult.processed_at >= cutoff)
            .group_by(ProcessingResult.status)
        ).all()
        created = session.scalars(
            select(ProcessingResult.record_ids)
            .where(ProcessingResult.processed_at >= cutoff)
            .where(ProcessingResult.status == "success")
        ).all()

    counts = {status: int(count) for status, count in rows}
    return {
        "success_count": counts.get("success", 0),
        "error_count": counts.get("error", 0),
        "total_processed_today": counts.get("success", 0) + counts.get("error", 0),
        "total_records": sum(len(_decode_ids(value)) for value in created),
    }


__all__ = ["list_results", "processing_stats_today", "save_result"]
