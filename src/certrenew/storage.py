"""Persistence gateway contract and an in-memory versioned store.

The renewal pipeline only ever talks to a store through two calls: ``save``
appends a new version to a named scope, ``latest`` returns the newest one.
Encryption and durable versioning belong to the store implementation.
"""

import threading
from collections import defaultdict
from datetime import UTC, datetime
from typing import Protocol, runtime_checkable

from certrenew._logging import get_logger
from certrenew.exceptions import RecordNotFoundError
from certrenew.models import CertificateRecord, StoredPayload
from certrenew.records import decode_record

logger = get_logger(__name__)

# Scopes observed in a deployment
CONFIG_SCOPE = "acme_config"
CERTIFICATE_SCOPE = "certificate_output"
APP_CONFIG_SCOPE = "app_config"


@runtime_checkable
class PersistenceGateway(Protocol):
    """Versioned, scoped payload storage."""

    def save(self, scope: str, payload: bytes, format: str, description: str) -> None:
        """Write a new version under ``scope``. Never overwrites earlier versions.

        Raises:
            StoreError: If the write fails.
        """
        ...

    def latest(self, scope: str) -> StoredPayload:
        """Return the most recently written version of ``scope``.

        Raises:
            RecordNotFoundError: If the scope is empty.
            StoreError: If the read fails.
        """
        ...


class MemoryStore:
    """Append-only in-memory store.

    Every save appends to the scope's history; the newest write wins on
    ``latest``. Safe to share between threads.
    """

    def __init__(self) -> None:
        self._versions: dict[str, list[StoredPayload]] = defaultdict(list)
        self._lock = threading.Lock()

    def save(self, scope: str, payload: bytes, format: str, description: str) -> None:
        with self._lock:
            history = self._versions[scope]
            version = StoredPayload(
                scope=scope,
                version=len(history) + 1,
                payload=bytes(payload),
                format=format,
                description=description,
                created_at=datetime.now(UTC),
            )
            history.append(version)
        logger.debug(
            "Stored new version",
            extra={"scope": scope, "format": format, "version": version.version},
        )

    def latest(self, scope: str) -> StoredPayload:
        with self._lock:
            history = self._versions.get(scope)
            if not history:
                raise RecordNotFoundError(scope)
            return history[-1]

    def history(self, scope: str) -> list[StoredPayload]:
        """All versions of ``scope``, oldest first."""
        with self._lock:
            return list(self._versions.get(scope, ()))

    def scopes(self) -> list[str]:
        with self._lock:
            return sorted(scope for scope, history in self._versions.items() if history)


def load_latest_certificate(
    store: PersistenceGateway, scope: str = CERTIFICATE_SCOPE
) -> CertificateRecord:
    """Decode the newest certificate record in ``scope``.

    Audit timestamps missing from the payload are filled in from the
    stored version's write time.

    Raises:
        RecordNotFoundError: If no certificate was stored yet.
        ParseError: If the payload is not a valid record.
    """
    stored = store.latest(scope)
    record = decode_record(stored.payload, stored.format)
    updates = {}
    if record.created_at is None:
        updates["created_at"] = stored.created_at
    if record.updated_at is None:
        updates["updated_at"] = stored.created_at
    return record.model_copy(update=updates) if updates else record
