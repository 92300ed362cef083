"""Admin endpoints for provider, model and credential management."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from freightflow.core.exceptions import ConfigurationError, ConfigurationNotFoundError, ProviderCallError
from freightflow.core.services import get_services
from freightflow.storage.configurations import (
    add_credential,
    add_credential_with_custom_model,
    delete_credential,
    get_credential,
    list_credentials,
    list_models,
    list_providers,
    report_error,
    reset_error_count,
    toggle_model,
    toggle_provider,
    update_credential,
)
from freightflow.telemetry.events import list_recent_events, record_event

router = APIRouter(prefix="/admin")


class ToggleRequest(BaseModel):
    enabled: bool


class CredentialCreate(BaseModel):
    provider_id: int
    model_id: int | None = None
    model_name: str | None = None
    api_key: str = Field(min_length=1)
    name: str = Field(min_length=1)


class CredentialUpdate(BaseModel):
    api_key: str = Field(min_length=1)
    name: str = Field(min_length=1)
    is_enabled: bool = True


def _model_dict(model) -> dict:
    return {
        "id": model.id,
        "provider_id": model.provider_id,
        "name": model.name,
        "display_name": model.display_name,
        "max_tokens": model.max_tokens,
        "context_window": model.context_window,
        "is_enabled": model.is_enabled,
        "is_default": model.is_default,
    }


@router.get("/providers")
def get_providers() -> dict:
    supported = set(get_services().registry.supported())
    data = []
    for provider in list_providers():
        data.append(
            {
                "id": provider.id,
                "name": provider.name,
                "display_name": provider.display_name,
                "base_url": provider.base_url,
                "priority": provider.priority,
                "is_enabled": provider.is_enabled,
                "has_adapter": provider.name in supported,
                "models": [_model_dict(model) for model in list_models(provider.id)],
            }
        )
    return {"providers": data}


@router.get("/providers/{provider_id}/models")
def get_models(provider_id: int) -> dict:
    return {"models": [_model_dict(model) for model in list_models(provider_id)]}


@router.post("/providers/{provider_id}/toggle")
def set_provider_enabled(provider_id: int, body: ToggleRequest) -> dict:
    if not toggle_provider(provider_id, body.enabled):
        raise HTTPException(status_code=404, detail="Provider not found")
    get_services().cache.invalidate()
    record_event(
        "provider_toggled",
        "INFO",
        message=f"provider {provider_id} {'enabled' if body.enabled else 'disabled'}",
        meta={"source": "admin", "provider_id": provider_id},
    )
    return {"status": "ok"}


@router.post("/models/{model_id}/toggle")
def set_model_enabled(model_id: int, body: ToggleRequest) -> dict:
    if not toggle_model(model_id, body.enabled):
        raise HTTPException(status_code=404, detail="Model not found")
    get_services().cache.invalidate()
    return {"status": "ok"}


@router.get("/credentials")
def get_credentials() -> dict:
    return {"credentials": [item.as_public_dict() for item in list_credentials()]}


@router.get("/credentials/active")
def get_active() -> dict:
    try:
        credential = get_services().cache.get_active()
    except ConfigurationNotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.message) from exc
    return {"credential": credential.as_public_dict()}


@router.post("/credentials", status_code=201)
def create_credential(body: CredentialCreate) -> dict:
    try:
        if body.model_id is not None:
            credential_id = add_credential(body.provider_id, body.model_id, body.api_key, body.name)
        elif body.model_name:
            credential_id = add_credential_with_custom_model(
                body.provider_id, body.model_name.strip(), body.api_key, body.name
            )
        else:
            raise HTTPException(status_code=400, detail="model_id or model_name is required")
    except ConfigurationError as exc:
        raise HTTPException(status_code=404, detail=exc.message) from exc

    record_event(
        "credential_created",
        "INFO",
        credential_to=credential_id,
        message=f"credential '{body.name}' saved via admin",
        meta={"source": "admin"},
    )
    return {"id": credential_id}


@router.put("/credentials/{credential_id}")
def edit_credential(credential_id: int, body: CredentialUpdate) -> dict:
    if not update_credential(
        credential_id, api_key=body.api_key, name=body.name, is_enabled=body.is_enabled
    ):
        raise HTTPException(status_code=404, detail="Credential not found")
    get_services().cache.invalidate()
    return {"status": "ok"}


@router.delete("/credentials/{credential_id}")
def remove_credential(credential_id: int) -> dict:
    if not delete_credential(credential_id):
        raise HTTPException(status_code=404, detail="Credential not found")
    get_services().cache.invalidate()
    record_event(
        "credential_deleted",
        "INFO",
        credential_from=credential_id,
        message="credential deleted via admin",
        meta={"source": "admin"},
    )
    return {"status": "ok"}


@router.post("/credentials/{credential_id}/activate")
def activate_credential(credential_id: int) -> dict:
    services = get_services()
    previous = None
    try:
        previous = services.cache.get_active().id
    except ConfigurationNotFoundError:
        pass
    try:
        services.rotation.activate(credential_id)
    except ConfigurationError as exc:
        raise HTTPException(status_code=404, detail=exc.message) from exc
    record_event(
        "credential_activated",
        "INFO",
        credential_from=previous,
        credential_to=credential_id,
        message="credential activated manually",
        meta={"source": "admin"},
    )
    return {"status": "ok"}


@router.post("/credentials/{credential_id}/reset-errors")
def reset_errors(credential_id: int) -> dict:
    if not reset_error_count(credential_id):
        raise HTTPException(status_code=404, detail="Credential not found")
    return {"status": "ok"}


@router.post("/credentials/{credential_id}/healthcheck")
async def healthcheck_credential(credential_id: int) -> dict:
    credential = get_credential(credential_id)
    if credential is None:
        raise HTTPException(status_code=404, detail="Credential not found")

    try:
        adapter = get_services().registry.get_adapter(credential.provider_name)
    except ConfigurationError as exc:
        raise HTTPException(status_code=400, detail=exc.message) from exc

    try:
        await adapter.validate_api_key(credential)
    except ProviderCallError as exc:
        report_error(credential_id, exc.message)
        record_event(
            "credential_health_fail",
            "WARNING",
            credential_from=credential_id,
            provider=credential.provider_name,
            message=exc.message,
            meta={"source": "admin_healthcheck"},
        )
        raise HTTPException(
            status_code=503, detail=f"Provider health check failed: {exc.message}"
        ) from exc

    reset_error_count(credential_id)
    record_event(
        "credential_health_ok",
        "INFO",
        credential_from=credential_id,
        provider=credential.provider_name,
        message="Health check succeeded",
        meta={"source": "admin_healthcheck"},
    )
    return {"status": "ok"}


@router.get("/events")
def list_events(limit: int = 25) -> dict:
    """Return recent pipeline events."""
    limit_value = max(1, min(limit, 100))
    return {"events": list_recent_events(limit=limit_value)}
