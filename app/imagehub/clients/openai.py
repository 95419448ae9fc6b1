"""
OpenAI Images client for Image Hub.
Used for both the DALL·E and ChatGPT providers.
"""
import logging
from typing import Any, Dict, Optional

import requests

from .base import UpstreamClient, dig

logger = logging.getLogger(__name__)


class OpenAIClient(UpstreamClient):
    """OpenAI image generation using gpt-image-1."""

    name = "openai"
    API_URL = "https://api.openai.com/v1/images/generations"
    MODEL = "gpt-image-1"
    PAYLOAD_PATHS = (("data", 0, "b64_json"),)

    def build_body(self, prompt: str, size: str) -> Dict[str, Any]:
        return {"model": self.MODEL, "prompt": prompt, "size": size}

    def extract_image(self, payload: Any) -> Optional[bytes]:
        data = super().extract_image(payload)
        if data is not None:
            return data

        url = dig(payload, ("data", 0, "url"))
        if not url:
            return None
        logger.info(f"Result is URL, downloading from {url}...")
        img_resp = requests.get(url, timeout=self.timeout)
        img_resp.raise_for_status()
        return img_resp.content
