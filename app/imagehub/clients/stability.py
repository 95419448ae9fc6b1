"""
Stability AI client for Image Hub.
Uses the Stable Diffusion 3 text-to-image endpoint.
"""
from typing import Any, Dict, Optional

from .base import UpstreamClient, dig


class StabilityClient(UpstreamClient):
    """Stability AI text-to-image generator."""

    name = "stability"
    API_URL = "https://api.stability.ai/v1/generation/sd3/text-to-image"
    WIDTH = 1024
    HEIGHT = 1024
    PAYLOAD_PATHS = (
        ("artifacts", 0, "base64"),
        ("image", "base64"),
        ("images", 0, "base64"),
    )

    def build_body(self, prompt: str, size: str) -> Dict[str, Any]:
        return {
            "prompt": prompt,
            "width": self.WIDTH,
            "height": self.HEIGHT,
            "output_format": "png",
        }

    def check_payload(self, payload: Any) -> Optional[str]:
        if dig(payload, ("artifacts", 0, "finishReason")) == "CONTENT_FILTERED":
            return "Content Filter"
        return None
