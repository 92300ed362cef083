"""Process-wide wiring of the cache, rotation engine, executor and processor."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from freightflow.core.config import AppConfig, load_config
from freightflow.pipeline.processor import MessageProcessor
from freightflow.pipeline.prompt import load_system_prompt
from freightflow.router.cache import ActiveCredentialCache
from freightflow.router.rotation import RotationEngine
from freightflow.router.selector import FailoverExecutor, ProviderRegistry
from freightflow.sink.supabase import SupabaseSink


@dataclass
class Services:
    config: AppConfig
    cache: ActiveCredentialCache
    rotation: RotationEngine
    registry: ProviderRegistry
    executor: FailoverExecutor
    processor: MessageProcessor


def build_services(config: AppConfig) -> Services:
    processing = config.processing
    cache = ActiveCredentialCache(ttl=processing.cache_ttl_seconds)
    rotation = RotationEngine(cache)
    registry = ProviderRegistry(timeout=processing.call_timeout_seconds)
    executor = FailoverExecutor(
        cache, rotation, registry=registry, max_retries=processing.max_retries
    )
    sink = SupabaseSink(config.sink) if config.sink.enabled else None
    processor = MessageProcessor(
        executor,
        sink,
        settings=processing,
        geofence=config.geofence,
        system_prompt=load_system_prompt(processing.prompt_path),
    )
    return Services(
        config=config,
        cache=cache,
        rotation=rotation,
        registry=registry,
        executor=executor,
        processor=processor,
    )


@lru_cache(maxsize=1)
def get_services() -> Services:
    """Return the shared services; all workers must see the same cache and lock."""
    return build_services(load_config())


__all__ = ["Services", "build_services", "get_services"]
