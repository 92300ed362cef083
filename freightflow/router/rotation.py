"""Credential rotation and activation."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from types import ModuleType
from typing import Any

from freightflow.core.exceptions import NoCandidateError
from freightflow.storage import configurations
from freightflow.storage.configurations import CredentialView
from freightflow.telemetry.events import record_event

from .cache import ActiveCredentialCache

logger = logging.getLogger("freightflow.rotation")

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _rank_key(candidate: CredentialView) -> tuple[Any, ...]:
    last_used = candidate.last_used_at
    if last_used is not None and last_used.tzinfo is None:
        last_used = last_used.replace(tzinfo=timezone.utc)
    return (
        -candidate.provider_priority,
        candidate.error_count,
        last_used is not None,
        last_used or _EPOCH,
        candidate.id,
    )


def rank_candidates(candidates: Iterable[CredentialView]) -> list[CredentialView]:
    """Order candidates by preference.

    Higher provider priority first, then fewer errors, then never-used before used,
    then least recently used, then lowest id.
    """
    return sorted(candidates, key=_rank_key)


def select_next(ranked: Sequence[CredentialView], current_id: int | None) -> CredentialView:
    """Pick the best candidate other than ``current_id``; a pool of one returns itself."""
    if not ranked:
        raise NoCandidateError()
    for candidate in ranked:
        if candidate.id != current_id:
            return candidate
    return ranked[0]


class RotationEngine:
    """Owns every change of the active credential."""

    def __init__(self, cache: ActiveCredentialCache, store: ModuleType = configurations) -> None:
        self._cache = cache
        self._store = store

    def rotate_to_next(self) -> CredentialView:
        """Activate the next candidate and return it."""
        with self._cache.lock:
            ranked = rank_candidates(self._store.list_candidates())
            current_id = self._store.get_active_id()
            chosen = select_next(ranked, current_id)
            self._activate_locked(chosen.id)

        logger.info(
            "Credential rotated",
            extra={
                "event": "credential_rotated",
                "credential_from": current_id,
                "credential_to": chosen.id,
                "provider": chosen.provider_name,
                "pool_size": len(ranked),
            },
        )
        record_event(
            "credential_rotated",
            "INFO",
            credential_from=current_id,
            credential_to=chosen.id,
            provider=chosen.provider_name,
            message=f"rotated to {chosen.label}",
            meta={"pool_size": len(ranked)},
        )
        return chosen

    def activate(self, credential_id: int) -> None:
        """Make ``credential_id`` the single active credential."""
        with self._cache.lock:
            self._activate_locked(credential_id)
        logger.info(
            "Credential activated",
            extra={"event": "credential_activated", "credential_id": credential_id},
        )

    def _activate_locked(self, credential_id: int) -> None:
        self._store.activate(credential_id)
        self._cache.invalidate()


__all__ = ["RotationEngine", "rank_candidates", "select_next"]
