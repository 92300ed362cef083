"""Short-lived cache of the active credential."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from freightflow.storage import configurations
from freightflow.storage.configurations import CredentialView

logger = logging.getLogger("freightflow.cache")

DEFAULT_TTL_SECONDS = 2.0


@dataclass(frozen=True)
class _Snapshot:
    credential: CredentialView
    fetched_at: float


class ActiveCredentialCache:
    """Serve the active credential, reloading it from storage at most once per TTL.

    Readers look at the current snapshot reference without locking. A miss or an
    expired snapshot takes the exclusive lock and re-checks before loading, so
    concurrent readers trigger a single storage read. The lock is reentrant and is
    shared with the rotation engine so refresh and activation never interleave.
    """

    def __init__(
        self,
        loader: Callable[[], CredentialView] = configurations.get_active_credential,
        *,
        ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._loader = loader
        self._ttl = ttl
        self._clock = clock
        self._lock = threading.RLock()
        self._snapshot: _Snapshot | None = None

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @property
    def ttl(self) -> float:
        return self._ttl

    def _fresh(self, snapshot: _Snapshot | None) -> bool:
        return snapshot is not None and self._clock() - snapshot.fetched_at < self._ttl

    def get_active(self) -> CredentialView:
        """Return the active credential; raises ``ConfigurationNotFoundError`` when none."""
        snapshot = self._snapshot
        if self._fresh(snapshot):
            return snapshot.credential

        with self._lock:
            snapshot = self._snapshot
            if self._fresh(snapshot):
                return snapshot.credential
            credential = self._loader()
            self._snapshot = _Snapshot(credential=credential, fetched_at=self._clock())
            logger.debug(
                "Active credential loaded",
                extra={"event": "cache_refresh", "credential_id": credential.id},
            )
            return credential

    def invalidate(self) -> None:
        with self._lock:
            self._snapshot = None


__all__ = ["ActiveCredentialCache", "DEFAULT_TTL_SECONDS"]
