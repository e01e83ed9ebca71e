"""Narrative generator: prompt, call, parse, fall back."""

import json
import logging
import re
import time
from typing import Callable

import pydantic
from fastapi import Request
from pydantic import BaseModel

from agrodex_api.errors import NarrativeGenerationError
from agrodex_api.narrative.client import GeminiClient
from agrodex_api.narrative.prompts import NarrativeRequest
from agrodex_api.narrative.result import Degraded, NarrativeResult, Ok
from agrodex_api.utils.metrics import narrative_generations_total, narrative_latency

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\n?")

HEALTH_PROMPT = 'Return JSON: {"pong": true}'


def strip_code_fences(text: str) -> str:
    """Remove Markdown code fences wrapping a model response."""
    return _FENCE_RE.sub("", text).strip()


def parse_model_output(text: str, model: type[BaseModel]) -> BaseModel:
    """Parse a model response as JSON and validate it against ``model``."""
    try:
        data = json.loads(strip_code_fences(text))
    except ValueError as e:
        logger.error(f"Narrative JSON parse error: {e}. Text: {text[:200]}")
        raise NarrativeGenerationError("Invalid JSON response") from e
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as e:
        logger.error(f"Narrative response did not match {model.__name__}: {e.error_count()} errors")
        raise NarrativeGenerationError(f"Response did not match {model.__name__} schema") from e


class NarrativeGenerator:
    """Generates structured narratives. ``generate`` never raises."""

    def __init__(
        self,
        client: GeminiClient,
        retry_backoff_ms: int = 300,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize narrative generator."""
        self.client = client
        self.retry_backoff_ms = retry_backoff_ms
        self._sleep = sleep

    def _call_with_retry(self, prompt: str) -> str:
        """One retry after a fixed backoff, except on timeout."""
        try:
            return self.client.generate_text(prompt)
        except NarrativeGenerationError as e:
            if e.timeout:
                raise
            logger.info(f"Retrying narrative call after error: {e}")
        self._sleep(self.retry_backoff_ms / 1000)
        return self.client.generate_text(prompt)

    def _generate(self, request: NarrativeRequest, start: float) -> NarrativeResult:
        missing = request.missing_input()
        if missing:
            return Degraded(request.fallback(), missing, 0)
        if not self.client.configured:
            return Degraded(request.fallback(), "API key not configured", 0)

        try:
            text = self._call_with_retry(request.render())
            value = parse_model_output(text, request.output_model)
        except NarrativeGenerationError as e:
            elapsed = int((time.monotonic() - start) * 1000)
            return Degraded(request.fallback(), str(e), elapsed)

        return Ok(value, int((time.monotonic() - start) * 1000))

    def generate(self, request: NarrativeRequest) -> NarrativeResult:
        """Generate a narrative for ``request``; failures yield a degraded result."""
        kind = request.kind.value
        start = time.monotonic()
        try:
            result = self._generate(request, start)
        except Exception as e:
            logger.exception(f"Unexpected narrative failure for {kind}")
            result = Degraded(request.fallback(), str(e) or type(e).__name__, int((time.monotonic() - start) * 1000))

        if isinstance(result, Degraded):
            logger.warning(f"Narrative {kind} degraded after {result.latency_ms}ms: {result.error}")
            narrative_generations_total.labels(kind=kind, outcome="degraded").inc()
        else:
            logger.info(f"Narrative {kind} generated in {result.latency_ms}ms")
            narrative_generations_total.labels(kind=kind, outcome="ok").inc()
        narrative_latency.labels(kind=kind).observe(result.latency_ms / 1000)
        return result

    def ping(self) -> None:
        """Raise ``NarrativeGenerationError`` unless the model answers the health prompt."""
        if not self.client.configured:
            raise NarrativeGenerationError("API key not configured")
        text = self._call_with_retry(HEALTH_PROMPT)
        try:
            data = json.loads(strip_code_fences(text))
        except ValueError as e:
            raise NarrativeGenerationError("Invalid JSON response") from e
        if not isinstance(data, dict) or data.get("pong") is not True:
            raise NarrativeGenerationError("Unexpected health response")

    def close(self) -> None:
        self.client.close()


def build_narrative_generator(settings) -> NarrativeGenerator:
    return NarrativeGenerator(
        GeminiClient.from_settings(settings),
        retry_backoff_ms=settings.narrative_retry_backoff_ms,
    )


def get_narrative_generator(request: Request) -> NarrativeGenerator:
    """Dependency: the process-wide narrative generator held on the application."""
    return request.app.state.narrative
