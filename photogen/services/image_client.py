"""Image generation API client (OpenAI-compatible images endpoint)."""

import base64
import binascii
import hashlib
import logging
from typing import Any, Dict, Optional

import httpx

from photogen.errors import FetchError, GenerationError
from photogen.services.sizing import fit_to_size, pick_render_size

logger = logging.getLogger(__name__)


class ImageGenerationClient:
    """Client for the image generation API that returns PNG bytes at the requested size."""

    def __init__(
        self,
        api_key: str,
        base_url: str,
        model: str,
        timeout: float = 120.0,
        http_client: Optional[httpx.Client] = None,
    ):
        """Initialize the client; an injected httpx.Client is used as-is."""
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self._http = http_client

    def _build_headers(self) -> Dict[str, str]:
        """Build HTTP headers for the images API."""
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _client(self) -> httpx.Client:
        if self._http is not None:
            return self._http
        return httpx.Client(timeout=self.timeout)

    def _close(self, client: httpx.Client) -> None:
        if client is not self._http:
            client.close()

    @staticmethod
    def _api_error_message(response: httpx.Response) -> str:
        """Extract the structured error message from an API error response."""
        try:
            body = response.json()
        except ValueError:
            return f"HTTP {response.status_code}: {response.text[:200]}"
        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict) and error.get("message"):
            return error["message"]
        if isinstance(error, str) and error:
            return error
        return f"HTTP {response.status_code}"

    def request_image(self, prompt: str, render_size: str) -> Dict[str, Any]:
        """
        Call the images API and return the first result item.

        Args:
            prompt: Generation prompt
            render_size: One of the supported square render sizes

        Returns:
            Result item dict (may carry 'b64_json' or 'url')

        Raises:
            GenerationError: On transport or API-level errors
        """
        payload = {
            "model": self.model,
            "prompt": prompt,
            "size": render_size,
            "n": 1,
            "response_format": "b64_json",
        }
        prompt_hash = hashlib.sha256(prompt.encode()).hexdigest()
        logger.info(f"Image request to {self.model} at {render_size}, prompt hash: {prompt_hash[:16]}")

        client = self._client()
        try:
            response = client.post(
                f"{self.base_url}/images/generations",
                headers=self._build_headers(),
                json=payload,
            )
        except httpx.HTTPError as e:
            raise GenerationError(f"Image API request failed: {e}") from e
        finally:
            self._close(client)

        if response.status_code >= 400:
            message = self._api_error_message(response)
            logger.error(f"Image API error {response.status_code}: {message}")
            raise GenerationError(message)

        try:
            result = response.json()
        except ValueError as e:
            raise GenerationError("Image API returned a non-JSON response") from e

        data = result.get("data") if isinstance(result, dict) else None
        if not isinstance(data, list) or not data or not isinstance(data[0], dict):
            return {}
        return data[0]

    def fetch_reference(self, url: str) -> bytes:
        """
        Download an image the API returned by reference.

        Raises:
            FetchError: If the fetch fails or returns a non-2xx status
        """
        client = self._client()
        try:
            response = client.get(url)
        except httpx.HTTPError as e:
            raise FetchError(f"fetch failed: {e}") from e
        finally:
            self._close(client)

        if not response.is_success:
            raise FetchError(f"fetch {response.status_code}")
        return response.content

    def generate(self, prompt: str, width: int, height: int) -> bytes:
        """
        Generate an image for a prompt at exactly width x height.

        The model renders at the closest supported square size; the result is
        letterboxed into the requested dimensions.

        Returns:
            PNG bytes

        Raises:
            GenerationError: No image payload, API error or undecodable image
            FetchError: The returned image reference could not be fetched
        """
        render_size = pick_render_size(width, height)
        item = self.request_image(prompt, render_size)

        if item.get("b64_json"):
            try:
                raw = base64.b64decode(item["b64_json"], validate=True)
            except (binascii.Error, ValueError) as e:
                raise GenerationError("Image API returned invalid base64 data") from e
        elif item.get("url"):
            logger.warning("Image API returned a URL, fetching image bytes")
            raw = self.fetch_reference(item["url"])
        else:
            raise GenerationError("No image returned from the image API")

        try:
            return fit_to_size(raw, width, height)
        except OSError as e:
            raise GenerationError(f"Generated image could not be decoded: {e}") from e
