"""Message ingestion and processing endpoints."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException

from freightflow.core.services import get_services
from freightflow.pipeline.processor import InboundMessage
from freightflow.storage.messages import get_message_stats, reset_processing_attempts
from freightflow.storage.results import list_results, processing_stats_today

router = APIRouter(prefix="/messages")

MAX_LIMIT = 200


def _clamp(limit: int) -> int:
    return max(1, min(limit, MAX_LIMIT))


@router.post("")
def ingest_message(body: InboundMessage) -> dict:
    outcome = get_services().processor.ingest(body)
    return {"outcome": outcome.value}


@router.post("/process")
async def process_pending(limit: int | None = None) -> dict:
    processor = get_services().processor
    reports = await processor.process_pending(_clamp(limit) if limit else None)
    return {
        "results": [report.as_dict() for report in reports],
        "remaining": processor.pending_count(),
    }


@router.post("/{message_id}/process")
async def process_message(message_id: str, chat_id: str) -> dict:
    report = await get_services().processor.process_single(message_id, chat_id)
    if report is None:
        raise HTTPException(status_code=404, detail="Message not found")
    return {"result": report.as_dict()}


@router.post("/{message_id}/reset")
def reset_message(message_id: str, chat_id: str) -> dict:
    if not reset_processing_attempts(message_id, chat_id):
        raise HTTPException(status_code=404, detail="Message not found")
    return {"status": "ok"}


@router.get("/results")
def get_results(limit: int = 50) -> dict:
    return {"results": list_results(_clamp(limit))}


@router.get("/results/today")
def get_results_today(limit: int = 50) -> dict:
    return {"results": list_results(_clamp(limit), status="success", today_only=True)}


@router.get("/results/errors")
def get_errors(limit: int = 50) -> dict:
    return {"results": list_results(_clamp(limit), status="error")}


@router.get("/stats")
def get_stats() -> dict:
    stats = dict(processing_stats_today())
    stats.update({f"messages_{key}": value for key, value in get_message_stats().items()})
    stats["pending"] = get_services().processor.pending_count()
    return stats
