"""Storage helpers for AI providers, models and credentials."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select, update

from freightflow.core.config import ProviderModel
from freightflow.core.exceptions import ConfigurationError, ConfigurationNotFoundError

from .database import session_scope
from .models import AICredential, AIModel, AIProvider

MAX_LAST_ERROR_LENGTH = 2000


@dataclass(frozen=True)
class CredentialView:
    """Detached, read-only copy of a credential joined with its provider and model."""

    id: int
    provider_id: int
    model_id: int
    api_key: str
    name: str
    is_active: bool
    is_enabled: bool
    error_count: int
    last_error: str | None
    last_used_at: datetime | None
    last_success_at: datetime | None
    provider_name: str
    provider_display: str
    provider_base_url: str
    provider_priority: int
    model_name: str
    model_display: str
    max_tokens: int

    @property
    def label(self) -> str:
        return f"{self.provider_display} - {self.model_display} ({self.name})"

    def as_public_dict(self) -> dict[str, Any]:
        """Serialize for operators, masking the secret."""
        masked = f"{self.api_key[:4]}...{self.api_key[-4:]}" if len(self.api_key) > 8 else "***"
        return {
            "id": self.id,
            "name": self.name,
            "provider_id": self.provider_id,
            "provider": self.provider_name,
            "provider_display": self.provider_display,
            "model_id": self.model_id,
            "model": self.model_name,
            "model_display": self.model_display,
            "max_tokens": self.max_tokens,
            "api_key": masked,
            "is_active": self.is_active,
            "is_enabled": self.is_enabled,
            "error_count": self.error_count,
            "last_error": self.last_error,
            "last_used_at": self.last_used_at.isoformat() if self.last_used_at else None,
            "last_success_at": self.last_success_at.isoformat() if self.last_success_at else None,
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _joined_select():
    return (
        select(AICredential, AIProvider, AIModel)
        .join(AIProvider, AICredential.provider_id == AIProvider.id)
        .join(AIModel, AICredential.model_id == AIModel.id)
    )


def _to_view(credential: AICredential, provider: AIProvider, model: AIModel) -> CredentialView:
    return CredentialView(
        id=credential.id,
        provider_id=credential.provider_id,
        model_id=credential.model_id,
        api_key=credential.api_key,
        name=credential.name,
        is_active=bool(credential.is_active),
        is_enabled=bool(credential.is_enabled),
        error_count=credential.error_count or 0,
        last_error=credential.last_error,
        last_used_at=credential.last_used_at,
        last_success_at=credential.last_success_at,
        provider_name=provider.name,
        provider_display=provider.display_name,
        provider_base_url=provider.base_url or "",
        provider_priority=provider.priority or 0,
        model_name=model.name,
        model_display=model.display_name,
        max_tokens=model.max_tokens,
    )


def get_active_credential() -> CredentialView:
    """Return the active, enabled credential whose provider is enabled."""
    stmt = (
        _joined_select()
        .where(AICredential.is_active.is_(True))
        .where(AICredential.is_enabled.is_(True))
        .where(AIProvider.is_enabled.is_(True))
        .limit(1)
    )
    with session_scope() as session:
        row = session.execute(stmt).first()
        if row is None:
            raise ConfigurationNotFoundError()
        return _to_view(*row)


def get_active_id() -> int | None:
    """Return the id of the credential flagged active, regardless of enabled state."""
    with session_scope() as session:
        return session.scalar(
            select(AICredential.id).where(AICredential.is_active.is_(True)).limit(1)
        )


def get_credential(credential_id: int) -> CredentialView | None:
    with session_scope() as session:
        row = session.execute(_joined_select().where(AICredential.id == credential_id)).first()
        return _to_view(*row) if row else None


def list_credentials() -> list[CredentialView]:
    """Return every credential, active first, newest first."""
    stmt = _joined_select().order_by(AICredential.is_active.desc(), AICredential.id.desc())
    with session_scope() as session:
        return [_to_view(*row) for row in session.execute(stmt).all()]


def list_candidates() -> list[CredentialView]:
    """Return enabled credentials whose provider is enabled, unordered."""
    stmt = (
        _joined_select()
        .where(AICredential.is_enabled.is_(True))
        .where(AIProvider.is_enabled.is_(True))
    )
    with session_scope() as session:
        return [_to_view(*row) for row in session.execute(stmt).all()]


def activate(credential_id: int) -> None:
    """Make ``credential_id`` the only active credential in one transaction."""
    with session_scope() as session:
        exists = session.scalar(select(AICredential.id).where(AICredential.id == credential_id))
        if exists is None:
            raise ConfigurationError(f"configuration {credential_id} not found")
        session.execute(update(AICredential).values(is_active=False))
        session.execute(
            update(AICredential)
            .where(AICredential.id == credential_id)
            .values(is_active=True, updated_at=_utcnow())
        )


def report_error(credential_id: int, error_message: str) -> None:
    """Count a failed call against a credential."""
    with session_scope() as session:
        session.execute(
            update(AICredential)
            .where(AICredential.id == credential_id)
            .values(
                error_count=AICredential.error_count + 1,
                last_error=error_message[:MAX_LAST_ERROR_LENGTH],
                last_used_at=_utcnow(),
                updated_at=_utcnow(),
            )
        )


def report_success(credential_id: int) -> None:
    """Record a successful call; the error counter is left untouched."""
    now = _utcnow()
    with session_scope() as session:
        session.execute(
            update(AICredential)
            .where(AICredential.id == credential_id)
            .values(last_used_at=now, last_success_at=now, updated_at=now)
        )


def reset_error_count(credential_id: int) -> bool:
    with session_scope() as session:
        result = session.execute(
            update(AICredential)
            .where(AICredential.id == credential_id)
            .values(error_count=0, last_error=None, updated_at=_utcnow())
        )
        return bool(result.rowcount)


def add_credential(provider_id: int, model_id: int, api_key: str, name: str) -> int:
    """Insert a new credential for an existing provider/model pair."""
    with session_scope() as session:
        if session.get(AIProvider, provider_id) is None:
            raise ConfigurationError("provider not found")
        model = session.get(AIModel, model_id)
        if model is None or model.provider_id != provider_id:
            raise ConfigurationError("model not found")
        credential = AICredential(
            provider_id=provider_id,
            model_id=model_id,
            api_key=api_key,
            name=name,
            is_enabled=True,
        )
        session.add(credential)
        session.flush()
        return credential.id


def add_credential_with_custom_model(
    provider_id: int, model_name: str, api_key: str, name: str
) -> int:
    """Insert a credential, creating the provider's model row on first use."""
    with session_scope() as session:
        if session.get(AIProvider, provider_id) is None:
            raise ConfigurationError("provider not found")
        model = session.scalar(
            select(AIModel).where(AIModel.provider_id == provider_id, AIModel.name == model_name)
        )
        if model is None:
            model = AIModel(
                provider_id=provider_id,
                name=model_name,
                display_name=model_name,
                is_enabled=True,
                is_default=False,
            )
            session.add(model)
            session.flush()
        credential = AICredential(
            provider_id=provider_id,
            model_id=model.id,
            api_key=api_key,
            name=name,
            is_enabled=True,
        )
        session.add(credential)
        session.flush()
        return credential.id


def update_credential(credential_id: int, *, api_key: str, name: str, is_enabled: bool) -> bool:
    with session_scope() as session:
        result = session.execute(
            update(AICredential)
            .where(AICredential.id == credential_id)
            .values(api_key=api_key, name=name, is_enabled=is_enabled, updated_at=_utcnow())
        )
        return bool(result.rowcount)


def delete_credential(credential_id: int) -> bool:
    with session_scope() as session:
        credential = session.get(AICredential, credential_id)
        if credential is None:
            return False
        session.delete(credential)
        return True


def list_providers() -> list[AIProvider]:
    with session_scope() as session:
        stmt = select(AIProvider).order_by(AIProvider.priority.desc(), AIProvider.display_name)
        return list(session.scalars(stmt).all())


def list_models(provider_id: int) -> list[AIModel]:
    with session_scope() as session:
        stmt = (
            select(AIModel)
            .where(AIModel.provider_id == provider_id)
            .order_by(AIModel.is_default.desc(), AIModel.display_name)
        )
        return list(session.scalars(stmt).all())


def toggle_provider(provider_id: int, enabled: bool) -> bool:
    with session_scope() as session:
        result = session.execute(
            update(AIProvider)
            .where(AIProvider.id == provider_id)
            .values(is_enabled=enabled, updated_at=_utcnow())
        )
        return bool(result.rowcount)


def toggle_model(model_id: int, enabled: bool) -> bool:
    with session_scope() as session:
        result = session.execute(
            update(AIModel).where(AIModel.id == model_id).values(is_enabled=enabled)
        )
        return bool(result.rowcount)


def seed_providers(providers: Iterable[ProviderModel]) -> None:
    """Insert configured providers and models that are missing; existing rows are kept."""
    with session_scope() as session:
        for entry in providers:
            provider = session.scalar(select(AIProvider).where(AIProvider.name == entry.id))
            if provider is None:
                provider = AIProvider(
                    name=entry.id,
                    display_name=entry.name,
                    base_url=entry.base_url,
                    is_enabled=entry.enabled,
                    priority=entry.priority,
                )
                session.add(provider)
                session.flush()
            for model_entry in entry.models:
                existing = session.scalar(
                    select(AIModel.id).where(
                        AIModel.provider_id == provider.id, AIModel.name == model_entry.name
                    )
                )
                if existing is not None:
                    continue
                session.add(
                    AIModel(
                        provider_id=provider.id,
                        name=model_entry.name,
                        display_name=model_entry.display_name or model_entry.name,
                        max_tokens=model_entry.max_tokens,
                        context_window=model_entry.context_window,
                        is_enabled=True,
                        is_default=model_entry.is_default,
                    )
                )


__all__ = [
    "CredentialView",
    "activate",
    "add_credential",
    "add_credential_with_custom_model",
    "delete_credential",
    "get_active_credential",
    "get_active_id",
    "get_credential",
    "list_candidates",
    "list_credentials",
    "list_models",
    "list_providers",
    "report_error",
    "report_success",
    "reset_error_count",
    "seed_providers",
    "toggle_model",
    "toggle_provider",
    "update_credential",
]
