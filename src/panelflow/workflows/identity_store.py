"""Thread-safe store for extracted character identities.

Every read-modify-write happens under one ``threading.Lock``, so concurrent
``record_usage`` calls never lose an increment. With a ``path`` the store
is mirrored to a JSON file (same load/save helpers as the panel store) and
reloaded on construction; without one it lives only in memory. A failed
write leaves the in-memory state as it was before the call.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, Field

from panelflow.core.backend import MAX_IDENTITY_STRENGTH
from panelflow.core.errors import NotFoundError
from panelflow.core.ip_adapter import IdentityEmbedding
from panelflow.core.panel_store import load_records, save_records

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StoredIdentity(BaseModel):
    id: str
    name: str
    description: str | None = None
    embedding: IdentityEmbedding
    default_strength: float = Field(ge=0.0, le=MAX_IDENTITY_STRENGTH)
    reference_images: list[str]
    created_at: datetime = Field(default_factory=_utcnow)
    last_used_at: datetime = Field(default_factory=_utcnow)
    usage_count: int = Field(default=0, ge=0)


class IdentityStore:
    def __init__(self, path: Path | None = None):
        self.path = Path(path) if path is not None else None
        self._lock = threading.Lock()
        self._identities: dict[str, StoredIdentity] = {}
        if self.path is not None:
            for identity in load_records(self.path, StoredIdentity):
                self._identities[identity.id] = identity
            logger.info("Loaded %d identities from %s", len(self._identities), self.path)

    def __len__(self) -> int:
        return len(self._identities)

    def add(self, identity: StoredIdentity) -> StoredIdentity:
        with self._lock:
            updated = {**self._identities, identity.id: identity}
            self._persist(updated)
            self._identities = updated
        return identity

    def get(self, identity_id: str) -> StoredIdentity | None:
        with self._lock:
            identity = self._identities.get(identity_id)
            return identity.model_copy(deep=True) if identity is not None else None

    def list(self) -> list[StoredIdentity]:
        with self._lock:
            return [identity.model_copy(deep=True) for identity in self._identities.values()]

    def delete(self, identity_id: str) -> bool:
        with self._lock:
            if identity_id not in self._identities:
                return False
            updated = {k: v for k, v in self._identities.items() if k != identity_id}
            self._persist(updated)
            self._identities = updated
        return True

    def record_usage(self, identity_id: str) -> StoredIdentity:
        """Atomically bump ``usage_count`` and stamp ``last_used_at``.

        Raises:
            NotFoundError: If the identity was deleted in the meantime.
        """
        with self._lock:
            identity = self._identities.get(identity_id)
            if identity is None:
                raise NotFoundError(f"Identity not found: {identity_id}")
            used = identity.model_copy(
                update={"usage_count": identity.usage_count + 1, "last_used_at": _utcnow()}
            )
            updated = {**self._identities, identity_id: used}
            self._persist(updated)
            self._identities = updated
            return used.model_copy(deep=True)

    def clear(self) -> None:
        with self._lock:
            self._persist({})
            self._identities = {}

    def _persist(self, identities: dict[str, StoredIdentity]) -> None:
        # Caller holds the lock. Raises before any in-memory change is committed.
        if self.path is not None:
            save_records(self.path, list(identities.values()))
