"""
Settings persistence.
A single JSON document kept in the storage service.
"""
import json
import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class SettingsStore:
    """
    Small key/value store backed by one JSON file in storage.

    The document is read from storage once; later lookups are served
    from memory and never touch storage.
    """

    def __init__(self, storage_service, filename: str = "hub_settings.json"):
        self.storage = storage_service
        self.filename = filename
        self._data: Optional[Dict[str, Any]] = None

    def _load(self) -> Dict[str, Any]:
        if self._data is not None:
            return self._data
        raw = self.storage.get_file(self.filename)
        data: Any = {}
        if raw:
            try:
                data = json.loads(raw)
            except ValueError as e:
                logger.warning(f"Ignoring unreadable settings file {self.filename}: {e}")
        self._data = data if isinstance(data, dict) else {}
        return self._data

    def get(self, key: str, fallback: Any = None) -> Any:
        value = self._load().get(key)
        return fallback if value in (None, "") else value

    def set(self, key: str, value: Any):
        data = dict(self._load())
        data[key] = value
        self.storage.upload_file(self.filename, json.dumps(data, indent=2).encode("utf-8"))
        self._data = data
