"""
Provider proxy.
Forwards one prompt to an upstream image API and normalizes the answer
into a single {dataUrl} shape.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from .clients import UPSTREAM_CLIENTS, get_upstream_client

logger = logging.getLogger(__name__)


@dataclass
class ProxyResponse:
    status_code: int
    body: dict


def forward(provider: Optional[str], api_key: Optional[str], prompt: Optional[str],
            size: str = "1024x1024", timeout: Optional[float] = None) -> ProxyResponse:
    """
    Generate an image through the named upstream family.

    Returns:
        200 with dataUrl, 400 for bad input, 502 when the upstream fails
    """
    if not provider or not api_key or not prompt:
        return ProxyResponse(400, {"error": "Missing provider/apiKey/prompt"})

    if provider not in UPSTREAM_CLIENTS:
        return ProxyResponse(400, {"error": "Unknown provider"})

    client = get_upstream_client(provider, timeout)
    result = client.request_image(prompt, api_key, size or "1024x1024")

    if not result.success:
        logger.warning(f"Proxy {provider} failed: {result.error}")
        return ProxyResponse(502, {"error": result.error or "Server Error"})

    return ProxyResponse(200, {"dataUrl": result.data_url})
