"""
Base classes for Image Hub generator clients.
"""
import base64
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Tuple, Union

import requests

logger = logging.getLogger(__name__)

PayloadPath = Tuple[Union[str, int], ...]


@dataclass
class GeneratorResult:
    """Result from an AI image generation request."""
    data: Optional[bytes]
    request_info: str = ""
    response_info: str = ""
    mime_type: str = "image/png"
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.data is not None

    @property
    def data_url(self) -> str:
        encoded = base64.b64encode(self.data or b"").decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"


def failed(message: str, request_info: str = "", response_info: str = "") -> GeneratorResult:
    return GeneratorResult(None, request_info, response_info, error=message)


def dig(payload: Any, path: PayloadPath) -> Any:
    """Follow a path of keys and list indexes, returning None when it breaks."""
    node = payload
    for step in path:
        if isinstance(step, int):
            if not isinstance(node, list) or len(node) <= step:
                return None
        elif not isinstance(node, dict):
            return None
        node = node[step] if isinstance(step, int) else node.get(step)
        if node is None:
            return None
    return node


class BaseGenerator:
    """Abstract base class for image generators."""

    async def generate(self, prompt: str, credential: str) -> GeneratorResult:
        """
        Generate an image for a prompt.
        Must be implemented by subclasses.

        Args:
            prompt: Text prompt
            credential: API key for the provider

        Returns:
            GeneratorResult with image data, or an error message
        """
        raise NotImplementedError("Subclasses must implement generate")


class UpstreamClient:
    """
    One upstream image API family.

    Subclasses describe the endpoint, how the key is attached, the request
    body, and where the base64 image sits in the response.
    """

    name = ""
    API_URL = ""
    KEY_IN_QUERY = False
    PAYLOAD_PATHS: Sequence[PayloadPath] = ()
    MIME_TYPE = "image/png"

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout

    def build_url(self, api_key: str) -> str:
        if self.KEY_IN_QUERY:
            return f"{self.API_URL}?key={api_key}"
        return self.API_URL

    def build_headers(self, api_key: str) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if not self.KEY_IN_QUERY:
            headers["Authorization"] = f"Bearer {api_key}"
        return headers

    def build_body(self, prompt: str, size: str) -> Dict[str, Any]:
        raise NotImplementedError("Subclasses must implement build_body")

    def error_message(self, payload: Any) -> str:
        """Pull a readable message from an upstream error payload."""
        message = dig(payload, ("error", "message")) or dig(payload, ("message",))
        return message if isinstance(message, str) and message else "Upstream API error"

    def extract_image(self, payload: Any) -> Optional[bytes]:
        """Return decoded image bytes from the first known payload location."""
        for path in self.PAYLOAD_PATHS:
            encoded = dig(payload, path)
            if isinstance(encoded, str) and encoded:
                return base64.b64decode(encoded)
        return None

    def check_payload(self, payload: Any) -> Optional[str]:
        """Return an error message for payloads that must not be used."""
        return None

    def request_image(self, prompt: str, api_key: str, size: str = "1024x1024") -> GeneratorResult:
        """Call the upstream API and normalize its answer."""
        url = self.build_url(api_key)
        req_info = f"POST {self.API_URL}\nProvider: {self.name}\nPrompt: {prompt[:50]}..."
        start_time = time.time()

        try:
            logger.info(f"Submitting {self.name} request...")
            response = requests.post(
                url,
                headers=self.build_headers(api_key),
                json=self.build_body(prompt, size),
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"{self.name} request failed: {e}")
            return failed(str(e), req_info, f"Exception: {e}")

        latency = time.time() - start_time
        resp_info = f"Status: {response.status_code}\nLatency: {latency:.2f}s"

        text = response.text
        if not text:
            return failed("Empty response from provider", req_info, resp_info)

        try:
            payload = response.json()
        except ValueError:
            logger.error(f"{self.name} returned non-JSON: {text[:200]}")
            return failed("Invalid JSON from provider", req_info, resp_info + f"\nRaw: {text[:200]}")

        if not response.ok:
            message = self.error_message(payload)
            logger.error(f"{self.name} API Error ({response.status_code}): {message}")
            return failed(message, req_info, resp_info + f"\nError: {message}")

        blocked = self.check_payload(payload)
        if blocked:
            logger.warning(f"{self.name}: {blocked}")
            return failed(blocked, req_info, resp_info + f"\nBlocked: {blocked}")

        try:
            data = self.extract_image(payload)
        except (ValueError, requests.exceptions.RequestException) as e:
            logger.error(f"{self.name} image payload unusable: {e}")
            return failed(f"Invalid image data: {e}", req_info, resp_info)

        if data is None:
            keys = list(payload.keys()) if isinstance(payload, dict) else type(payload).__name__
            logger.error(f"Unexpected response structure: {keys}")
            return failed("No image data found", req_info, resp_info + "\nError: Unexpected structure")

        return GeneratorResult(
            data=data,
            request_info=req_info,
            response_info=resp_info,
            mime_type=self.MIME_TYPE,
        )
