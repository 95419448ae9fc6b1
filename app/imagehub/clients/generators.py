"""
Generator adapters.
Each adapter exposes the same async generate(prompt, credential) call.
"""
import base64
import binascii
import logging
from typing import Optional

import requests
from fastapi.concurrency import run_in_threadpool

from .base import BaseGenerator, GeneratorResult, UpstreamClient, failed

logger = logging.getLogger(__name__)

MISSING_KEY_MESSAGE = "API key is required"


def decode_data_url(data_url: str) -> GeneratorResult:
    """Decode a data:<mime>;base64,<payload> URL into a result."""
    header, sep, encoded = (data_url or "").partition(",")
    if not sep or not header.startswith("data:") or ";base64" not in header:
        return failed("Malformed dataUrl from proxy")
    mime_type = header[len("data:"):].split(";", 1)[0] or "image/png"
    try:
        data = base64.b64decode(encoded, validate=True)
    except binascii.Error as e:
        return failed(f"Malformed dataUrl from proxy: {e}")
    return GeneratorResult(data=data, mime_type=mime_type)


class DirectGenerator(BaseGenerator):
    """Talks to the upstream API in-process, off the event loop."""

    def __init__(self, client: UpstreamClient, size: str = "1024x1024"):
        self.client = client
        self.size = size

    async def generate(self, prompt: str, credential: str) -> GeneratorResult:
        if not credential:
            raise ValueError(MISSING_KEY_MESSAGE)
        return await run_in_threadpool(self.client.request_image, prompt, credential, self.size)


class ProxyGenerator(BaseGenerator):
    """Forwards the request to a proxy's /api/gen route."""

    def __init__(self, provider: str, proxy_url: str, size: str = "1024x1024",
                 timeout: Optional[float] = None):
        self.provider = provider
        self.endpoint = proxy_url.rstrip("/") + "/api/gen"
        self.size = size
        self.timeout = timeout

    def _post(self, prompt: str, credential: str) -> GeneratorResult:
        body = {"provider": self.provider, "apiKey": credential, "prompt": prompt, "size": self.size}
        req_info = f"POST {self.endpoint}\nProvider: {self.provider}\nPrompt: {prompt[:50]}..."

        try:
            response = requests.post(self.endpoint, json=body, timeout=self.timeout)
            payload = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"Proxy request failed: {e}")
            return failed(str(e) or "Server error", req_info)

        resp_info = f"Status: {response.status_code}"
        if not response.ok:
            message = payload.get("error") if isinstance(payload, dict) else None
            return failed(message or "Server error", req_info, resp_info)

        result = decode_data_url(payload.get("dataUrl", "") if isinstance(payload, dict) else "")
        result.request_info = req_info
        result.response_info = resp_info
        return result

    async def generate(self, prompt: str, credential: str) -> GeneratorResult:
        if not credential:
            raise ValueError(MISSING_KEY_MESSAGE)
        return await run_in_threadpool(self._post, prompt, credential)


class UnavailableGenerator(BaseGenerator):
    """A listed provider that has no API wired up."""

    def __init__(self, message: str):
        self.message = message

    async def generate(self, prompt: str, credential: str) -> GeneratorResult:
        return failed(self.message)
