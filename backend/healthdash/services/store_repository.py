"""
Persistence of the health data store.

``KeyValueStore`` is the whole contract the core relies on: get, put and
delete of one JSON value under a key, scoped by a store name and stamped
with a schema version. The health data store is kept as a single document
under ``settings.STORE_KEY``.

Write failures propagate to the caller; nothing here retries or caches.
Callers must not issue overlapping writes to the same key.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from healthdash.config import settings
from healthdash.models import KeyValueEntry
from healthdash.schemas import HealthDataStore
from healthdash.services.health_store import migrate_store_payload

logger = logging.getLogger(__name__)


class KeyValueStore:
    def __init__(
        self,
        db: Session,
        store_name: str = settings.STORE_NAME,
        version: int = settings.STORE_VERSION,
    ):
        self.db = db
        self.store_name = store_name
        self.version = version

    def _entry(self, key: str) -> KeyValueEntry | None:
        return (
            self.db.query(KeyValueEntry)
            .filter(KeyValueEntry.store_name == self.store_name, KeyValueEntry.key == key)
            .first()
        )

    def get(self, key: str) -> Any | None:
        entry = self._entry(key)
        if entry is None:
            return None
        if entry.schema_version < self.version:
            logger.info(
                "Reading %s/%s written by schema version %d (current %d)",
                self.store_name, key, entry.schema_version, self.version,
            )
        return json.loads(entry.value)

    def put(self, key: str, value: Any) -> None:
        payload = json.dumps(value)
        entry = self._entry(key)
        if entry is None:
            entry = KeyValueEntry(store_name=self.store_name, key=key)
            self.db.add(entry)
        entry.value = payload
        entry.schema_version = self.version
        entry.updated_at = datetime.now(timezone.utc)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def delete(self, key: str) -> None:
        entry = self._entry(key)
        if entry is None:
            return
        self.db.delete(entry)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise


def save_health_data_store(db: Session, store: HealthDataStore) -> None:
    logger.debug("Saving health data store (%d sources)", len(store.sources))
    KeyValueStore(db).put(settings.STORE_KEY, store.model_dump(mode="json"))


def get_health_data_store(db: Session) -> HealthDataStore | None:
    """Read the persisted store, migrating legacy payloads transparently."""
    payload = KeyValueStore(db).get(settings.STORE_KEY)
    if not payload:
        return None
    return migrate_store_payload(payload)


def clear_health_data_store(db: Session) -> None:
    logger.debug("Clearing health data store")
    KeyValueStore(db).delete(settings.STORE_KEY)
