from __future__ import annotations

from datetime import datetime, timedelta, timezone

from freightflow.storage import results


def _save(status: str, outcome: str, record_ids: list[str], processed_at: datetime) -> int:
    return results.save_result(
        message_id=f"m-{outcome}",
        chat_id="chat",
        content="texto",
        sender_id="549",
        real_identity="+549",
        ai_response="[]",
        status=status,
        outcome=outcome,
        error_message=None if status == "success" else "boom",
        record_ids=record_ids,
        processed_at=processed_at,
    )


def test_stats_only_count_today(db):
    now = datetime.now(timezone.utc)
    _save("success", "created", ["a", "b"], now)
    _save("success", "empty", [], now)
    _save("error", "failed", [], now)
    _save("success", "created", ["old"], now - timedelta(days=2))

    stats = results.processing_stats_today()

    assert stats == {
        "success_count": 2,
        "error_count": 1,
        "total_processed_today": 3,
        "total_records": 2,
    }


def test_list_results_filters_by_status(db):
    now = datetime.now(timezone.utc)
    _save("success", "created", ["a"], now)
    _save("error", "invalid", [], now)

    errors = results.list_results(10, status="error")

    assert [item["outcome"] for item in errors] == ["invalid"]
    assert [item["status"] for item in results.list_results(10)] == ["error", "success"]
