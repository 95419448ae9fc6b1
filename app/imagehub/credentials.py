"""
Per-provider API key storage.
"""
import logging

from .store import SettingsStore

logger = logging.getLogger(__name__)


class CredentialStore:
    """Keeps one opaque API key per provider name."""

    def __init__(self, store: SettingsStore):
        self.store = store

    @staticmethod
    def _key(provider: str) -> str:
        return f"apikey:{provider}"

    def get(self, provider: str) -> str:
        return self.store.get(self._key(provider), "") or ""

    def has(self, provider: str) -> bool:
        return bool(self.get(provider))

    def save(self, provider: str, api_key: str):
        if not api_key:
            raise ValueError("API Key is missing!")
        self.store.set(self._key(provider), api_key)
        logger.info(f"{provider} API Key saved")

    @staticmethod
    def mask(api_key: str) -> str:
        if len(api_key) <= 8:
            return "*" * len(api_key)
        return f"{api_key[:4]}{'*' * (len(api_key) - 8)}{api_key[-4:]}"
