"""Durable key/value settings backed by the ``settings`` collection."""

import json
import logging
from typing import Any

from mockpay.shared.file_store import Collection

logger = logging.getLogger("mockpay.settings")


class SettingsStore:

    def __init__(self, collection: Collection):
        self.collection = collection

    @staticmethod
    def _decode(record: Any, fallback: Any) -> Any:
        if not record:
            return fallback
        try:
            return json.loads(record["value"])
        except (KeyError, TypeError, ValueError):
            logger.warning(f"Unreadable setting {record.get('key')!r}, using default")
            return fallback

    def get(self, key: str, fallback: Any = None) -> Any:
        return self._decode(self.collection.get_one(key=key), fallback)

    def set(self, key: str, value: Any) -> None:
        self.collection.upsert({"key": key}, {"value": json.dumps(value, default=str)})

    def take(self, key: str, reset_to: Any) -> Any:
        """Return the current value of ``key`` and reset it to ``reset_to``
        in a single locked swap, so two takers never see the same value."""
        previous = self.collection.upsert(
            {"key": key}, {"value": json.dumps(reset_to, default=str)}
        )
        return self._decode(previous, reset_to)
