"""Message ingestion and AI extraction orchestration."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from freightflow.core.config import GeofenceSettings, ProcessingSettings
from freightflow.core.exceptions import (
    ConfigurationError,
    PayloadValidationError,
    ProviderCallError,
    RateLimitExhaustedError,
    ResponseFormatError,
    SinkError,
)
from freightflow.logging import reset_message_id, set_message_id
from freightflow.router.selector import FailoverExecutor
from freightflow.sink.supabase import ListingSink
from freightflow.storage import messages, results
from freightflow.storage.messages import ProcessableMessage
from freightflow.telemetry.events import record_event

from .normalizer import normalize
from .prompt import BASIC_PROMPT, build_user_content
from .validation import ListingValidator

logger = logging.getLogger("freightflow.processor")

STATUS_SUCCESS = "success"
STATUS_ERROR = "error"


class IngestOutcome(str, Enum):
    IGNORED = "ignored"
    DUPLICATE = "duplicate"
    STORED = "stored"


class ProcessingOutcome(str, Enum):
    CREATED = "created"
    EMPTY = "empty"
    RATE_LIMITED = "rate_limited"
    INVALID = "invalid"
    FAILED = "failed"


class InboundMessage(BaseModel):
    message_id: str
    chat_id: str
    sender_id: str
    real_identity: str | None = None
    text: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    media_type: str | None = None
    sender_name: str | None = None


@dataclass
class ProcessingReport:
    message_id: str
    chat_id: str
    status: str
    outcome: ProcessingOutcome
    error_message: str | None = None
    ai_response: str | None = None
    record_ids: list[str] = field(default_factory=list)
    invalid_index: int | None = None
    invalid_field: str | None = None
    processed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def succeeded(self) -> bool:
        return self.status == STATUS_SUCCESS

    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["outcome"] = self.outcome.value
        data["processed_at"] = self.processed_at.isoformat()
        return data


class MessageProcessor:
    """Turns stored chat messages into freight listings.

    Each message is handled by its own task; at most ``settings.workers`` run at once
    and launches are spaced by ``settings.pause_seconds``. Every attempt is recorded
    as a processing result, successful or not.
    """

    def __init__(
        self,
        executor: FailoverExecutor,
        sink: ListingSink | None = None,
        *,
        settings: ProcessingSettings | None = None,
        geofence: GeofenceSettings | None = None,
        system_prompt: str = BASIC_PROMPT,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._executor = executor
        self._sink = sink
        self._settings = settings or ProcessingSettings()
        self._validator = ListingValidator(geofence)
        self._system_prompt = system_prompt
        self._sleep = sleep

    @property
    def settings(self) -> ProcessingSettings:
        return self._settings

    def ingest(self, inbound: InboundMessage) -> IngestOutcome:
        real_identity = (inbound.real_identity or "").strip()
        text = inbound.text or ""
        if not real_identity or not text:
            return IngestOutcome.IGNORED
        if len(text) < self._settings.min_text_length and not inbound.media_type:
            return IngestOutcome.IGNORED

        stored = messages.store_message(
            inbound.message_id,
            inbound.chat_id,
            inbound.sender_id,
            text,
            inbound.timestamp,
            real_identity=real_identity,
            sender_name=inbound.sender_name,
            media_type=inbound.media_type,
            dedup_window=timedelta(hours=self._settings.dedup_window_hours),
        )
        return IngestOutcome.STORED if stored else IngestOutcome.DUPLICATE

    def pending_count(self) -> int:
        return messages.count_processable_messages(
            max_attempts=self._settings.max_attempts,
            min_text_length=self._settings.min_text_length,
        )

    async def process_pending(self, limit: int | None = None) -> list[ProcessingReport]:
        batch = messages.get_processable_messages(
            limit or self._settings.batch_size,
            max_attempts=self._settings.max_attempts,
            min_text_length=self._settings.min_text_length,
        )
        if not batch:
            logger.info("No processable messages", extra={"event": "batch_empty"})
            return []

        logger.info(
            "Processing batch",
            extra={"event": "batch_started", "batch_size": len(batch)},
        )
        semaphore = asyncio.Semaphore(self._settings.workers)

        async def _run(message: ProcessableMessage) -> ProcessingReport:
            async with semaphore:
                return await self._handle(message)

        tasks: list[asyncio.Task[ProcessingReport]] = []
        for position, message in enumerate(batch):
            if position:
                await self._sleep(self._settings.pause_seconds)
            tasks.append(asyncio.create_task(_run(message)))
        return list(await asyncio.gather(*tasks))

    async def process_single(self, message_id: str, chat_id: str) -> ProcessingReport | None:
        """Process one message regardless of its state; ``None`` when it does not exist."""
        message = messages.get_message(message_id, chat_id)
        if message is None:
            return None
        return await self._handle(message)

    async def _handle(self, message: ProcessableMessage) -> ProcessingReport:
        token = set_message_id(message.id)
        try:
            try:
                report = await self._process_message(message)
            except Exception as exc:
                logger.exception(
                    "Unexpected processing error",
                    extra={"event": "message_error", "error_type": type(exc).__name__},
                )
                report = ProcessingReport(
                    message_id=message.id,
                    chat_id=message.chat_id,
                    status=STATUS_ERROR,
                    outcome=ProcessingOutcome.FAILED,
                    error_message=f"Processing failed: {type(exc).__name__}: {exc}",
                )
            self._finalize(message, report)
            return report
        finally:
            reset_message_id(token)

    async def _process_message(self, message: ProcessableMessage) -> ProcessingReport:
        def _error(outcome: ProcessingOutcome, error: str, **extra: Any) -> ProcessingReport:
            return ProcessingReport(
                message_id=message.id,
                chat_id=message.chat_id,
                status=STATUS_ERROR,
                outcome=outcome,
                error_message=error,
                **extra,
            )

        user_content = build_user_content(message.real_identity, message.content)
        try:
            raw = await self._executor.process(self._system_prompt, user_content)
        except RateLimitExhaustedError as exc:
            return _error(ProcessingOutcome.RATE_LIMITED, f"AI processing failed: {exc.message}")
        except (ConfigurationError, ProviderCallError) as exc:
            return _error(ProcessingOutcome.FAILED, f"AI processing failed: {exc.message}")

        try:
            canonical = normalize(raw)
        except ResponseFormatError as exc:
            return _error(
                ProcessingOutcome.INVALID, f"Invalid AI response: {exc.message}", ai_response=raw
            )

        try:
            records = self._validator.validate(canonical)
        except PayloadValidationError as exc:
            return _error(
                ProcessingOutcome.INVALID,
                f"Invalid locations: {exc.message}",
                ai_response=canonical,
                invalid_index=exc.index,
                invalid_field=exc.field,
            )

        if not records:
            messages.update_reputation(message.real_identity, False)
            return ProcessingReport(
                message_id=message.id,
                chat_id=message.chat_id,
                status=STATUS_SUCCESS,
                outcome=ProcessingOutcome.EMPTY,
                error_message="no freight listing found in the message",
                ai_response=canonical,
            )

        record_ids: list[str] = []
        if self._sink is not None:
            try:
                record_ids = await self._sink.create_listings(records)
            except SinkError as exc:
                return _error(
                    ProcessingOutcome.FAILED,
                    f"Supabase upload failed: {exc.message}",
                    ai_response=canonical,
                )

        messages.update_reputation(message.real_identity, True)
        return ProcessingReport(
            message_id=message.id,
            chat_id=message.chat_id,
            status=STATUS_SUCCESS,
            outcome=ProcessingOutcome.CREATED,
            ai_response=canonical,
            record_ids=record_ids,
        )

    def _finalize(self, message: ProcessableMessage, report: ProcessingReport) -> None:
        results.save_result(
            message_id=message.id,
            chat_id=message.chat_id,
            content=message.content,
            sender_id=message.sender_id,
            real_identity=message.real_identity,
            ai_response=report.ai_response,
            status=report.status,
            outcome=report.outcome.value,
            error_message=report.error_message,
            record_ids=report.record_ids,
            processed_at=report.processed_at,
        )

        if report.succeeded:
            messages.mark_processed(message.id, message.chat_id)
            logger.info(
                "Message processed",
                extra={
                    "event": "message_processed",
                    "outcome": report.outcome.value,
                    "records": len(report.record_ids),
                },
            )
            record_event(
                "message_processed",
                "INFO",
                message_id=message.id,
                message=f"{report.outcome.value}: {len(report.record_ids)} listing(s)",
                meta={"record_ids": report.record_ids},
            )
            return

        attempts = messages.record_failed_attempt(
            message.id,
            message.chat_id,
            report.error_message or report.outcome.value,
            max_attempts=self._settings.max_attempts,
        )
        logger.warning(
            "Message processing failed",
            extra={
                "event": "message_failed",
                "outcome": report.outcome.value,
                "attempt": attempts,
                "error_message": report.error_message,
            },
        )
        meta: dict[str, Any] = {"attempts": attempts}
        if report.invalid_field:
            meta.update(index=report.invalid_index, field=report.invalid_field)
        record_event(
            "message_failed",
            "WARNING",
            message_id=message.id,
            error_code=report.outcome.value,
            message=report.error_message,
            meta=meta,
        )


__all__ = [
    "InboundMessage",
    "IngestOutcome",
    "MessageProcessor",
    "ProcessingOutcome",
    "ProcessingReport",
]
