"""ORM models for AI configuration, inbound messages, results and telemetry events."""

from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)

from .database import Base


class AIProvider(Base):
    __tablename__ = "ai_providers"
    __table_args__ = (UniqueConstraint("name", name="uq_ai_providers_name"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    display_name = Column(String(255), nullable=False)
    base_url = Column(String(512), nullable=False, default="")
    is_enabled = Column(Boolean, nullable=False, default=True)
    priority = Column(Integer, nullable=False, default=100)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class AIModel(Base):
    __tablename__ = "ai_models"
    __table_args__ = (UniqueConstraint("provider_id", "name", name="uq_ai_models_provider_name"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    provider_id = Column(Integer, ForeignKey("ai_providers.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(200), nullable=False)
    display_name = Column(String(255), nullable=False)
    max_tokens = Column(Integer, nullable=False, default=8192)
    context_window = Column(Integer, nullable=False, default=131072)
    is_enabled = Column(Boolean, nullable=False, default=True)
    is_default = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class AICredential(Base):
    __tablename__ = "ai_credentials"

    id = Column(Integer, primary_key=True, autoincrement=True)
    provider_id = Column(Integer, ForeignKey("ai_providers.id", ondelete="CASCADE"), nullable=False)
    model_id = Column(Integer, ForeignKey("ai_models.id", ondelete="CASCADE"), nullable=False)
    api_key = Column(String(512), nullable=False)
    name = Column(String(255), nullable=False)
    is_active = Column(Boolean, nullable=False, default=False)
    is_enabled = Column(Boolean, nullable=False, default=True)
    error_count = Column(Integer, nullable=False, default=0)
    last_error = Column(Text)
    last_used_at = Column(DateTime(timezone=True))
    last_success_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (Index("ix_ai_credentials_active", "is_active"),)


class Message(Base):
    __tablename__ = "messages"

    id = Column(String(255), primary_key=True)
    chat_id = Column(String(255), primary_key=True)
    sender_id = Column(String(100), nullable=False)
    sender_name = Column(String(500))
    real_identity = Column(String(100))
    content = Column(Text, nullable=False, default="")
    media_type = Column(String(100))
    timestamp = Column(DateTime(timezone=True), nullable=False)
    processed = Column(Boolean, nullable=False, default=False)
    processing_attempts = Column(Integer, nullable=False, default=0)
    last_processing_error = Column(Text)
    last_processing_attempt = Column(DateTime(timezone=True))

    __table_args__ = (
        Index("ix_messages_duplicate_sender", "sender_id", "timestamp"),
        Index("ix_messages_processed", "processed", "timestamp"),
    )


class ProcessingResult(Base):
    __tablename__ = "processing_results"

    id = Column(Integer, primary_key=True, autoincrement=True)
    message_id = Column(String(255), nullable=False)
    chat_id = Column(String(255), nullable=False)
    content = Column(Text)
    sender_id = Column(String(100))
    real_identity = Column(String(100))
    ai_response = Column(Text)
    status = Column(String(32), nullable=False)
    outcome = Column(String(32), nullable=False)
    error_message = Column(Text)
    record_ids = Column(Text)
    processed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_processing_results_message", "message_id", "chat_id"),
        Index("ix_processing_results_status", "status", "processed_at"),
    )


class SenderReputation(Base):
    __tablename__ = "sender_reputations"
    __table_args__ = (UniqueConstraint("real_identity", name="uq_sender_reputations_identity"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    real_identity = Column(String(100), nullable=False)
    confidence = Column(Integer, nullable=False, default=0)
    category = Column(String(16), nullable=False, default="unknown")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class PipelineEvent(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ts = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    level = Column(String(16), nullable=False)
    kind = Column(String(64), nullable=False)
    request_id = Column(String(64))
    message_id = Column(String(255))
    credential_from = Column(String(100))
    credential_to = Column(String(100))
    provider = Column(String(100))
    error_code = Column(String(128))
    message = Column(String(512))
    meta = Column(Text)

    __table_args__ = (
        Index("ix_events_ts", "ts"),
        Index("ix_events_kind_ts", "kind", "ts"),
    )
