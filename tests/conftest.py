from __future__ import annotations

from contextlib import contextmanager

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from freightflow.storage import configurations, messages, models, results  # noqa: F401
from freightflow.storage.database import Base
from freightflow.telemetry import events


@pytest.fixture
def db(monkeypatch):
    """Provide an isolated in-memory database shared by every storage module."""

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    TestingSession = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )
    Base.metadata.create_all(engine)

    @contextmanager
    def session_scope():
        session = TestingSession()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    for module in (configurations, messages, results, events):
        monkeypatch.setattr(module, "session_scope", session_scope)
    yield session_scope
    engine.dispose()


@pytest.fixture
def silence_events(monkeypatch):
    """Drop telemetry writes for tests that do not use a database."""

    recorded: list[tuple[str, str, dict]] = []

    def capture(kind: str, level: str, **fields) -> None:
        recorded.append((kind, level, fields))

    from freightflow.pipeline import processor
    from freightflow.router import rotation, selector

    for module in (rotation, selector, processor):
        monkeypatch.setattr(module, "record_event", capture)
    return recorded


@pytest.fixture
def make_credential(db):
    """Insert a provider/model pair on first use and a credential for it."""

    provider_ids: dict[str, int] = {}

    def _make(
        provider: str = "gemini",
        *,
        priority: int = 100,
        name: str | None = None,
        api_key: str = "key-123456789",
        active: bool = False,
        enabled: bool = True,
        error_count: int = 0,
        last_used_at=None,
    ) -> int:
        with db() as session:
            if provider not in provider_ids:
                row = models.AIProvider(
                    name=provider,
                    display_name=provider.title(),
                    base_url=f"https://{provider}.example",
                    priority=priority,
                    is_enabled=True,
                )
                session.add(row)
                session.flush()
                session.add(
                    models.AIModel(
                        provider_id=row.id,
                        name=f"{provider}-model",
                        display_name=f"{provider} model",
                        max_tokens=1024,
                        is_default=True,
                    )
                )
                session.flush()
                provider_ids[provider] = row.id
            provider_id = provider_ids[provider]
            model = session.query(models.AIModel).filter_by(provider_id=provider_id).first()
            credential = models.AICredential(
                provider_id=provider_id,
                model_id=model.id,
                api_key=api_key,
                name=name or f"{provider} key",
                is_active=active,
                is_enabled=enabled,
                error_count=error_count,
                last_used_at=last_used_at,
            )
            session.add(credential)
            session.flush()
            return credential.id

    return _make
