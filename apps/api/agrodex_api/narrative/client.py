"""HTTP client for the Gemini generateContent API."""

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Optional

import httpx

from agrodex_api.errors import NarrativeGenerationError
from agrodex_api.settings import Settings

logger = logging.getLogger(__name__)

GENERATION_CONFIG = {
    "temperature": 0.3,
    "topP": 0.8,
    "topK": 40,
    "maxOutputTokens": 2048,
}


class GeminiClient:
    """Thin REST client returning the model's text output."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        api_base: str,
        timeout_ms: int,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """Initialize Gemini client."""
        self.api_key = api_key
        self.model = model
        self.timeout_ms = timeout_ms
        self.http = httpx.Client(
            base_url=api_base.rstrip("/"),
            timeout=timeout_ms / 1000,
            transport=transport,
        )
        self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="gemini")

    @classmethod
    def from_settings(cls, settings: Settings) -> "GeminiClient":
        return cls(
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            api_base=settings.gemini_api_base,
            timeout_ms=settings.gemini_timeout_ms,
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _post(self, prompt: str) -> httpx.Response:
        return self.http.post(
            f"/models/{self.model}:generateContent",
            headers={"x-goog-api-key": self.api_key or ""},
            json={
                "contents": [{"role": "user", "parts": [{"text": prompt}]}],
                "generationConfig": GENERATION_CONFIG,
            },
        )

    def generate_text(self, prompt: str) -> str:
        """Send a single-turn prompt and return the first candidate's text.

        The whole request, body included, is bounded by ``timeout_ms``.
        """
        future = self._executor.submit(self._post, prompt)
        try:
            response = future.result(timeout=self.timeout_ms / 1000)
        except FutureTimeoutError as e:
            future.cancel()
            raise NarrativeGenerationError("Timeout", timeout=True) from e
        except httpx.TimeoutException as e:
            raise NarrativeGenerationError("Timeout", timeout=True) from e
        except httpx.HTTPError as e:
            raise NarrativeGenerationError(f"Model request failed: {e}") from e

        if response.status_code >= 400:
            raise NarrativeGenerationError(
                f"Model API returned HTTP {response.status_code}: {response.text[:200]}"
            )
        try:
            data = response.json()
            parts = data["candidates"][0]["content"]["parts"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise NarrativeGenerationError("No response from AI") from e

        text = "".join(part.get("text", "") for part in parts if isinstance(part, dict))
        if not text.strip():
            raise NarrativeGenerationError("No response from AI")
        return text

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
        self.http.close()
