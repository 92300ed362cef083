"""Application configuration loading utilities."""

from __future__ import annotations

import os
import pathlib
from functools import lru_cache
from typing import List

import yaml
from pydantic import BaseModel, Field

BASE_DIR = pathlib.Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_PATH = BASE_DIR.parent / "config" / "pipeline.yaml"


class ModelEntry(BaseModel):
    name: str
    display_name: str | None = None
    max_tokens: int = Field(default=8192)
    context_window: int = Field(default=131072)
    is_default: bool = False


class ProviderModel(BaseModel):
    id: str
    name: str
    priority: int = Field(default=100)
    base_url: str
    enabled: bool = True
    models: List[ModelEntry] = Field(default_factory=list)


class ProcessingSettings(BaseModel):
    max_retries: int = Field(default=2, ge=0)
    cache_ttl_seconds: float = Field(default=2.0, gt=0)
    call_timeout_seconds: float = Field(default=120.0, gt=0)
    pause_seconds: float = Field(default=0.5, ge=0)
    workers: int = Field(default=4, ge=1)
    batch_size: int = Field(default=10, ge=1)
    max_attempts: int = Field(default=3, ge=1)
    min_text_length: int = Field(default=20, ge=0)
    dedup_window_hours: int = Field(default=24, ge=0)
    prompt_path: str | None = None


class GeofenceSettings(BaseModel):
    required_country: str = "argentina"
    location_fields: List[str] = Field(
        default_factory=lambda: ["localidadCarga", "localidadDescarga"]
    )
    forbidden_countries: List[str] = Field(
        default_factory=lambda: [
            "brasil",
            "brazil",
            "chile",
            "uruguay",
            "paraguay",
            "bolivia",
            "perú",
            "peru",
            "ecuador",
            "colombia",
            "venezuela",
            "mexico",
            "méxico",
        ]
    )
    # Domestic place names that embed a foreign country's name.
    exceptions: List[str] = Field(
        default_factory=lambda: [
            "concepción del uruguay",
            "concepcion del uruguay",
            "chilecito",
            "perúgorría",
            "perugorria",
            "perugorría",
        ]
    )
    unknown_terms: List[str] = Field(
        default_factory=lambda: [
            "desconocida",
            "desconocido",
            "unknown",
            "sin especificar",
            "no especificado",
            "n/a",
            "no disponible",
            "sin datos",
        ]
    )


class SinkSettings(BaseModel):
    enabled: bool = True
    base_url: str = "https://example.supabase.co"
    api_key_env: str = "SUPABASE_KEY"
    geocoding_url: str = "https://maps.googleapis.com/maps/api/geocode/json"
    geocoding_api_key_env: str = "GOOGLE_MAPS_API_KEY"
    country_code: str = "AR"
    dador_id: str = ""
    timeout_seconds: float = Field(default=30.0, gt=0)


class AppConfig(BaseModel):
    providers: List[ProviderModel] = Field(default_factory=list)
    processing: ProcessingSettings = Field(default_factory=ProcessingSettings)
    geofence: GeofenceSettings = Field(default_factory=GeofenceSettings)
    sink: SinkSettings = Field(default_factory=SinkSettings)


def _resolve_config_path(path: pathlib.Path | None) -> pathlib.Path:
    if path is not None:
        return path
    override = os.getenv("FREIGHTFLOW_CONFIG")
    if override:
        return pathlib.Path(override)
    return DEFAULT_CONFIG_PATH


@lru_cache(maxsize=1)
def load_config(path: pathlib.Path | None = None) -> AppConfig:
    """Load pipeline configuration from YAML."""
    config_path = _resolve_config_path(path)
    raw = yaml.safe_load(config_path.read_text()) or {}
    return AppConfig(**raw)
