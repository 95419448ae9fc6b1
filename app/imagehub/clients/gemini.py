"""
Google Gemini / Imagen client for Image Hub.
The API key travels as a query parameter instead of a header.
"""
from typing import Any, Dict

from .base import UpstreamClient


class GeminiClient(UpstreamClient):
    """Imagen generation through the Generative Language API."""

    name = "gemini"
    API_URL = "https://generativelanguage.googleapis.com/v1beta/models/imagen-2:generateImage"
    KEY_IN_QUERY = True
    PAYLOAD_PATHS = (
        ("predictions", 0, "bytesBase64Encoded"),
        ("candidates", 0, "content", "parts", 0, "inline_data", "data"),
        ("images", 0, "base64"),
        ("image", "base64"),
    )

    def build_body(self, prompt: str, size: str) -> Dict[str, Any]:
        return {"instances": [{"prompt": prompt}]}
