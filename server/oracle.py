# =============================================================================
# NutriVision - Oracle Client
# =============================================================================
# Provides the OracleClient class that sends one food photo plus its weight
# to an OpenAI-compatible multimodal chat-completions endpoint and returns
# the raw textual answer.  The image travels inline as a base64 data URI.
#
# The oracle is treated as an opaque, slow, occasionally malformed text
# generator: transport failures are mapped onto the UpstreamError family and
# the answer is returned unparsed for the normalizer.
# =============================================================================

import base64
import logging
import os
import time
from typing import Optional

import requests
from PIL import Image, UnidentifiedImageError

from server.errors import (
    OracleResponseError,
    OracleTimeoutError,
    OracleUnavailableError,
)

logger = logging.getLogger(__name__)

_EXTENSION_MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".webp": "image/webp",
}

_PROMPT_TEMPLATE = """You are a nutrition analysis assistant.
Given an image of food and a weight of {weight:g} grams, identify the primary food item in the image and output nutrition for the given weight.

Return ONLY valid JSON in the following schema (no extra commentary):
{{
  "foodType": string,
  "confidence": number, // 0..1
  "nutrition": {{
    "calories": number, // kcal for the provided weight
    "protein": number,  // grams for the provided weight
    "carbs": number,    // grams for the provided weight
    "fat": number,      // grams for the provided weight
    "fiber": number,    // grams for the provided weight (if unknown, estimate or use 0)
    "GI": number,       // glycemic index of the food
    "GL": number        // glycemic load for the provided weight
  }},
  "healthSuggestions": string[], // 2-4 short bullet-like suggestions
  "dishSuggestions": string[]    // 1-3 dishes that could be made with this food
}}"""


def build_prompt(weight: float) -> str:
    """Return the instruction text describing the expected JSON answer."""
    return _PROMPT_TEMPLATE.format(weight=weight)


def guess_mime_type(image_path: str) -> str:
    """
    Determine the MIME type of a stored image.

    Sniffs the actual bytes with Pillow, then falls back to the file
    extension, then to ``image/jpeg``.
    """
    try:
        with Image.open(image_path) as image:
            mime = Image.MIME.get(image.format or "")
        if mime:
            return mime
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError):
        logger.debug("Pillow could not identify %s; using extension", image_path)

    extension = os.path.splitext(image_path)[1].lower()
    return _EXTENSION_MIME_TYPES.get(extension, "image/jpeg")


def encode_image(image_path: str) -> str:
    """Read an image file and return it as a ``data:`` URI."""
    with open(image_path, "rb") as handle:
        encoded = base64.b64encode(handle.read()).decode("ascii")
    return f"data:{guess_mime_type(image_path)};base64,{encoded}"


class OracleClient:
    """
    HTTP client for the multimodal inference oracle.

    Args:
        endpoint:        Full URL of the chat-completions endpoint.
        model:           Model name sent with every request.
        timeout_seconds: Upper bound for one call (connect + read).
        max_tokens:      Token budget for the answer.
        temperature:     Sampling temperature.
        api_key:         Optional bearer token.
        session:         Optional pre-configured requests.Session.
    """

    def __init__(
        self,
        endpoint: str,
        model: str,
        timeout_seconds: float = 120.0,
        max_tokens: int = 512,
        temperature: float = 0.2,
        api_key: str = "",
        session: Optional[requests.Session] = None,
    ):
        self._endpoint = endpoint
        self._model = model
        self._timeout = timeout_seconds
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._session = session or requests.Session()
        self._session.headers.update(
            {"Accept": "application/json", "Content-Type": "application/json"}
        )
        if api_key:
            self._session.headers["Authorization"] = f"Bearer {api_key}"

    @property
    def timeout_seconds(self) -> float:
        return self._timeout

    def build_payload(self, image_path: str, weight: float) -> dict:
        """Build the chat-completions request body for one photo."""
        return {
            "model": self._model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": build_prompt(weight)},
                        {
                            "type": "image_url",
                            "image_url": {"url": encode_image(image_path)},
                        },
                    ],
                }
            ],
            "temperature": self._temperature,
            "max_tokens": self._max_tokens,
            "stream": False,
        }

    def analyze(self, image_path: str, weight: float) -> str:
        """
        Ask the oracle to analyze one food photo.

        Exactly one HTTP request is made; there is no retry.

        Args:
            image_path: Path of the stored image on disk.
            weight:     Weight of the food in grams.

        Returns:
            The raw text content of the first choice.

        Raises:
            OracleTimeoutError:     The call exceeded the timeout.
            OracleUnavailableError: The endpoint could not be reached.
            OracleResponseError:    Non-2xx status or malformed envelope.
        """
        payload = self.build_payload(image_path, weight)

        started = time.time()
        try:
            response = self._session.post(
                self._endpoint, json=payload, timeout=self._timeout
            )
        except requests.exceptions.Timeout as exc:
            raise OracleTimeoutError(
                f"Oracle request timed out after {self._timeout:g}s"
            ) from exc
        except requests.exceptions.RequestException as exc:
            raise OracleUnavailableError(f"Oracle unreachable: {exc}") from exc
        elapsed_ms = (time.time() - started) * 1000.0

        if not 200 <= response.status_code < 300:
            raise OracleResponseError(
                f"Oracle responded with HTTP {response.status_code}"
            )

        content_type = response.headers.get("content-type", "")
        if "text/event-stream" in content_type:
            logger.warning(
                "Oracle responded with text/event-stream; "
                "ensure non-streaming mode is supported."
            )

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise OracleResponseError(f"Malformed oracle envelope: {exc}") from exc

        logger.info("Oracle call completed in %.0fms (%d chars)", elapsed_ms, len(content or ""))
        return "" if content is None else str(content)
