from __future__ import annotations

from datetime import datetime, timedelta, timezone

from freightflow.storage import messages

BASE_TS = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)
TEXT = "Cargo 30 tn de soja de Rosario a Córdoba, pago efectivo"


def _store(message_id: str, ts: datetime, *, sender: str = "5491111", chat: str = "chat-1", **kwargs) -> bool:
    kwargs.setdefault("real_identity", "+5491111")
    return messages.store_message(message_id, chat, sender, kwargs.pop("content", TEXT), ts, **kwargs)


def test_duplicate_within_window_is_discarded(db):
    assert _store("m1", BASE_TS) is True
    assert _store("m2", BASE_TS + timedelta(hours=10), chat="chat-2") is False


def test_same_text_after_window_is_stored(db):
    assert _store("m1", BASE_TS) is True
    assert _store("m2", BASE_TS + timedelta(hours=30)) is True


def test_window_bound_is_inclusive(db):
    assert _store("m1", BASE_TS) is True
    assert _store("m2", BASE_TS - timedelta(hours=24)) is False


def test_other_sender_is_not_a_duplicate(db):
    assert _store("m1", BASE_TS) is True
    assert _store("m2", BASE_TS, sender="5492222") is True


def test_processable_messages_filter(db):
    _store("ok", BASE_TS)
    _store("short", BASE_TS, content="hola")
    _store("media", BASE_TS + timedelta(minutes=1), content="foto", media_type="image")
    _store("anon", BASE_TS, sender="5493333", real_identity=None)

    pending = messages.get_processable_messages(10)

    assert [item.id for item in pending] == ["ok", "media"]
    assert messages.count_processable_messages() == 2


def test_failed_attempts_close_message_at_ceiling(db):
    _store("m1", BASE_TS)

    assert messages.record_failed_attempt("m1", "chat-1", "boom") == 1
    assert messages.record_failed_attempt("m1", "chat-1", "boom") == 2
    assert [item.id for item in messages.get_processable_messages(10)] == ["m1"]
    assert messages.record_failed_attempt("m1", "chat-1", "boom") == 3

    assert messages.get_processable_messages(10) == []
    assert messages.get_message_stats() == {"total": 1, "processed": 1, "unprocessed": 0}

    assert messages.reset_processing_attempts("m1", "chat-1") is True
    assert [item.id for item in messages.get_processable_messages(10)] == ["m1"]


def test_trust_scoring_producer_stays_producer(db):
    for _ in range(3):
        reputation = messages.update_reputation("+5491111", True)
    assert reputation.confidence == 3
    assert reputation.category == messages.CATEGORY_PRODUCER

    reputation = messages.update_reputation("+5491111", False)

    assert reputation.confidence == 2
    assert reputation.category == messages.CATEGORY_PRODUCER


def test_trust_scoring_negative_is_consumer(db):
    reputation = messages.update_reputation("+5499999", False)

    assert reputation.confidence == -1
    assert reputation.category == messages.CATEGORY_CONSUMER
    assert messages.category_for(0) == messages.CATEGORY_UNKNOWN
