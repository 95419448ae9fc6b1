"""
Image Hub configuration, read from environment variables.
"""
import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class HubSettings:
    """Runtime settings for the hub."""

    ENV_PROXY_URL = "IMAGEHUB_PROXY_URL"
    ENV_IMAGE_SIZE = "IMAGEHUB_IMAGE_SIZE"
    ENV_UPSTREAM_TIMEOUT = "IMAGEHUB_UPSTREAM_TIMEOUT"
    ENV_PROMPT_LIMIT = "IMAGEHUB_PROMPT_LIMIT"
    ENV_SETTINGS_FILE = "IMAGEHUB_SETTINGS_FILE"

    proxy_url: Optional[str] = None
    image_size: str = "1024x1024"
    upstream_timeout: Optional[float] = None
    prompt_limit: int = 1000
    settings_file: str = "hub_settings.json"

    @classmethod
    def from_env(cls) -> "HubSettings":
        timeout = os.getenv(cls.ENV_UPSTREAM_TIMEOUT)
        return cls(
            proxy_url=os.getenv(cls.ENV_PROXY_URL) or None,
            image_size=os.getenv(cls.ENV_IMAGE_SIZE, "1024x1024"),
            upstream_timeout=float(timeout) if timeout else None,
            prompt_limit=int(os.getenv(cls.ENV_PROMPT_LIMIT, "1000")),
            settings_file=os.getenv(cls.ENV_SETTINGS_FILE, "hub_settings.json"),
        )
