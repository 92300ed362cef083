"""Storage helpers for inbound messages and sender reputation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, or_, select, update

from .database import session_scope
from .models import Message, SenderReputation

logger = logging.getLogger("freightflow.messages")

DEFAULT_DEDUP_WINDOW = timedelta(hours=24)
FAILED_AFTER_RETRIES_NOTE = "too many failed processing attempts"

CATEGORY_UNKNOWN = "unknown"
CATEGORY_PRODUCER = "producer"
CATEGORY_CONSUMER = "consumer"


@dataclass(frozen=True)
class ProcessableMessage:
    id: str
    chat_id: str
    sender_id: str
    sender_name: str | None
    real_identity: str
    content: str
    media_type: str | None
    timestamp: datetime
    processing_attempts: int


def as_utc(value: datetime) -> datetime:
    """Treat naive timestamps as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_processable(row: Message) -> ProcessableMessage:
    return ProcessableMessage(
        id=row.id,
        chat_id=row.chat_id,
        sender_id=row.sender_id,
        sender_name=row.sender_name,
        real_identity=row.real_identity or "",
        content=row.content or "",
        media_type=row.media_type,
        timestamp=row.timestamp,
        processing_attempts=row.processing_attempts or 0,
    )


def store_message(
    message_id: str,
    chat_id: str,
    sender_id: str,
    content: str,
    timestamp: datetime,
    *,
    real_identity: str | None = None,
    sender_name: str | None = None,
    media_type: str | None = None,
    dedup_window: timedelta = DEFAULT_DEDUP_WINDOW,
) -> bool:
    """Store a message unless it duplicates a recent one from the same sender.

    A duplicate is a message from the same sender with byte-identical content whose
    timestamp lies within ``dedup_window`` on either side of the new one, in any chat.
    Returns ``True`` when the message was stored.
    """

    if not content and not media_type:
        return False

    ts = as_utc(timestamp)
    with session_scope() as session:
        duplicates = session.scalar(
            select(func.count())
            .select_from(Message)
            .where(Message.sender_id == sender_id)
            .where(Message.content == content)
            .where(Message.timestamp >= ts - dedup_window)
            .where(Message.timestamp <= ts + dedup_window)
        )
        if duplicates:
            logger.info(
                "Duplicate message discarded",
                extra={"event": "message_duplicate", "sender_id": sender_id, "message_id": message_id},
            )
            return False

        if session.get(Message, (message_id, chat_id)) is not None:
            return False

        session.add(
            Message(
                id=message_id,
                chat_id=chat_id,
                sender_id=sender_id,
                sender_name=sender_name,
                real_identity=real_identity or None,
                content=content,
                media_type=media_type or None,
                timestamp=ts,
                processed=False,
                processing_attempts=0,
            )
        )
    return True


def _processable_filter(stmt, max_attempts: int, min_text_length: int):
    has_media = (Message.media_type.is_not(None)) & (Message.media_type != "")
    return (
        stmt.where(Message.processed.is_(False))
        .where(Message.content != "")
        .where(Message.real_identity.is_not(None))
        .where(Message.real_identity != "")
        .where(Message.processing_attempts < max_attempts)
        .where(or_(has_media, func.length(Message.content) >= min_text_length))
    )


def get_processable_messages(
    limit: int, *, max_attempts: int = 3, min_text_length: int = 20
) -> list[ProcessableMessage]:
    """Return unprocessed messages eligible for AI extraction, oldest first."""
    stmt = _processable_filter(select(Message), max_attempts, min_text_length)
    stmt = stmt.order_by(Message.timestamp.asc()).limit(limit)
    with session_scope() as session:
        return [_to_processable(row) for row in session.scalars(stmt).all()]


def count_processable_messages(*, max_attempts: int = 3, min_text_length: int = 20) -> int:
    stmt = _processable_filter(select(func.count()).select_from(Message), max_attempts, min_text_length)
    with session_scope() as session:
        return int(session.scalar(stmt) or 0)


def get_message(message_id: str, chat_id: str) -> ProcessableMessage | None:
    """Return a message with a resolved identity regardless of its processing state."""
    with session_scope() as session:
        row = session.get(Message, (message_id, chat_id))
        if row is None or not row.real_identity or not row.content:
            return None
        return _to_processable(row)


def mark_processed(message_id: str, chat_id: str) -> None:
    with session_scope() as session:
        session.execute(
            update(Message)
            .where(Message.id == message_id, Message.chat_id == chat_id)
            .values(processed=True)
        )


def record_failed_attempt(
    message_id: str, chat_id: str, error_message: str, *, max_attempts: int = 3
) -> int:
    """Increment the attempt counter; the message is closed once the ceiling is reached.

    Returns the new attempt count.
    """

    with session_scope() as session:
        row = session.get(Message, (message_id, chat_id))
        if row is None:
            return 0
        row.processing_attempts = (row.processing_attempts or 0) + 1
        row.last_processing_error = error_message
        row.last_processing_attempt = datetime.now(timezone.utc)
        if row.processing_attempts >= max_attempts:
            row.processed = True
            row.last_processing_error = f"{FAILED_AFTER_RETRIES_NOTE}: {error_message}"
        return row.processing_attempts


def reset_processing_attempts(message_id: str, chat_id: str) -> bool:
    """Make a message eligible for processing again."""
    with session_scope() as session:
        result = session.execute(
            update(Message)
            .where(Message.id == message_id, Message.chat_id == chat_id)
            .values(
                processing_attempts=0,
                processed=False,
                last_processing_error=None,
                last_processing_attempt=None,
            )
        )
        return bool(result.rowcount)


def category_for(confidence: int) -> str:
    """Derive the sender category from the sign of its confidence."""
    if confidence > 0:
        return CATEGORY_PRODUCER
    if confidence < 0:
        return CATEGORY_CONSUMER
    return CATEGORY_UNKNOWN


def update_reputation(real_identity: str, produced: bool) -> SenderReputation:
    """Adjust a sender's confidence by +1 (records produced) or -1 (empty result)."""
    delta = 1 if produced else -1
    with session_scope() as session:
        reputation = session.scalar(
            select(SenderReputation).where(SenderReputation.real_identity == real_identity)
        )
        if reputation is None:
            reputation = SenderReputation(real_identity=real_identity, confidence=0)
            session.add(reputation)
        reputation.confidence = (reputation.confidence or 0) + delta
        reputation.category = category_for(reputation.confidence)
        session.flush()
        return reputation


def get_reputation(real_identity: str) -> SenderReputation | None:
    with session_scope() as session:
        return session.scalar(
            select(SenderReputation).where(SenderReputation.real_identity == real_identity)
        )


def get_message_stats() -> dict[str, int]:
    with session_scope() as session:
        total = session.scalar(select(func.count()).select_from(Message)) or 0
        processed = (
            session.scalar(
                select(func.count()).select_from(Message).where(Message.processed.is_(True))
            )
            or 0
        )
    return {"total": int(total), "processed": int(processed), "unprocessed": int(total - processed)}


__all__ = [
    "ProcessableMessage",
    "category_for",
    "count_processable_messages",
    "get_message",
    "get_message_stats",
    "get_processable_messages",
    "get_reputation",
    "mark_processed",
    "record_failed_attempt",
    "reset_processing_attempts",
    "store_message",
    "update_reputation",
]
