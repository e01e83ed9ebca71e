"""Tests for the narrative generator."""

import threading

import httpx
import pytest

from agrodex_api.errors import NarrativeGenerationError
from agrodex_api.narrative.client import GeminiClient
from agrodex_api.narrative.generator import NarrativeGenerator, strip_code_fences
from agrodex_api.narrative.prompts import (
    BuyerQARequest,
    DashboardInsightRequest,
    ImageAnalysisRequest,
    ProvenanceSummaryRequest,
    TimelineEvent,
)
from agrodex_api.narrative.result import Degraded, Ok


def _events():
    return [
        TimelineEvent(
            timestamp="2025-09-10T08:00:00+00:00",
            event="REGISTRATION",
            tx_id="0.0.1001@1757491200.000000001",
            location="Kigali Highlands, Rwanda",
            operator="0.0.1001",
        )
    ]


def test_provenance_summary_ok(narrative, fake_gemini):
    result = narrative.generate(ProvenanceSummaryRequest(events=_events()))

    assert isinstance(result, Ok)
    assert result.value.trust_score == 87
    payload = result.as_payload()
    assert payload["trustScore"] == 87
    assert payload["trustExplanation"]
    assert "error" not in payload
    assert "ms" in payload and "generatedAt" in payload
    assert len(fake_gemini.prompts) == 1
    assert "0.0.1001@1757491200.000000001" in fake_gemini.prompts[0]


def test_code_fences_are_stripped(narrative, fake_gemini, reply):
    fake_gemini.queue.append(
        reply('```json\n{"caption": "Beans", "anomalies": [], "confidence": 0.7, "tags": ["dried"]}\n```')
    )

    result = narrative.generate(ImageAnalysisRequest(photo_url="https://example.com/beans.jpg"))

    assert isinstance(result, Ok)
    assert result.value.tags == ["dried"]


def test_strip_code_fences_plain_text_unchanged():
    assert strip_code_fences('{"a": 1}') == '{"a": 1}'


def test_invalid_json_degrades_without_retry(narrative, fake_gemini, reply, sleeps):
    fake_gemini.queue.append(reply("Sure! Here is the summary you asked for."))

    result = narrative.generate(ProvenanceSummaryRequest(events=_events()))

    assert isinstance(result, Degraded)
    assert result.error == "Invalid JSON response"
    assert result.as_payload()["summary_en"] == "Provenance summary unavailable"
    assert result.as_payload()["trustScore"] is None
    assert len(fake_gemini.prompts) == 1
    assert sleeps == []


def test_http_error_retried_once(narrative, fake_gemini, sleeps):
    fake_gemini.queue.append(httpx.Response(500, text="backend error"))

    result = narrative.generate(ProvenanceSummaryRequest(events=_events()))

    assert isinstance(result, Ok)
    assert len(fake_gemini.prompts) == 2
    assert sleeps == [0.3]


def test_second_failure_degrades(narrative, fake_gemini, sleeps):
    fake_gemini.queue.extend(
        [httpx.Response(503, text="overloaded"), httpx.Response(503, text="overloaded")]
    )

    result = narrative.generate(ProvenanceSummaryRequest(events=_events()))

    assert isinstance(result, Degraded)
    assert "HTTP 503" in result.error
    assert len(fake_gemini.prompts) == 2


def test_timeout_not_retried(narrative, fake_gemini, sleeps):
    fake_gemini.always = httpx.ReadTimeout("timed out")

    result = narrative.generate(ProvenanceSummaryRequest(events=_events()))

    assert isinstance(result, Degraded)
    assert result.error == "Timeout"
    assert len(fake_gemini.prompts) == 1
    assert sleeps == []


def test_slow_response_hits_overall_deadline(fake_gemini, sleeps):
    release = threading.Event()

    def slow_model(request: httpx.Request) -> httpx.Response:
        release.wait(timeout=5)
        return fake_gemini(request)

    client = GeminiClient(
        api_key="test-key",
        model="gemini-test",
        api_base="https://gemini.test/v1beta",
        timeout_ms=50,
        transport=httpx.MockTransport(slow_model),
    )
    generator = NarrativeGenerator(client, sleep=sleeps.append)

    try:
        result = generator.generate(ProvenanceSummaryRequest(events=_events()))
    finally:
        release.set()
        generator.close()

    assert isinstance(result, Degraded)
    assert result.error == "Timeout"
    assert sleeps == []


def test_out_of_range_trust_score_degrades(narrative, fake_gemini, reply):
    fake_gemini.queue.append(
        reply(
            {
                "summary_en": "x",
                "summary_fr": "x",
                "timeline": [],
                "trustScore": 150,
                "trustExplanation": "x",
            }
        )
    )

    result = narrative.generate(ProvenanceSummaryRequest(events=_events()))

    assert isinstance(result, Degraded)
    assert "schema" in result.error


def test_empty_timeline_skips_model(narrative, fake_gemini):
    result = narrative.generate(ProvenanceSummaryRequest(events=[]))

    assert isinstance(result, Degraded)
    assert result.error == "No timeline data provided"
    assert result.latency_ms == 0
    assert fake_gemini.prompts == []


def test_missing_api_key_degrades(fake_gemini):
    client = GeminiClient(
        api_key=None,
        model="gemini-test",
        api_base="https://gemini.test/v1beta",
        timeout_ms=6000,
        transport=httpx.MockTransport(fake_gemini),
    )
    generator = NarrativeGenerator(client, sleep=lambda seconds: None)

    result = generator.generate(DashboardInsightRequest(stats={"totalBatches": 0}))

    assert isinstance(result, Degraded)
    assert result.error == "API key not configured"
    assert result.as_payload()["insight_en"].startswith("AI insight unavailable")
    assert fake_gemini.prompts == []


def test_placeholders_in_input_are_inert():
    request = BuyerQARequest(
        question="What about $timeline and ${question}?",
        events=[TimelineEvent(timestamp="t", event="$summary_en")],
    )

    prompt = request.render()

    assert "Question: What about $timeline and ${question}?" in prompt
    assert '"event": "$summary_en"' in prompt


def test_ping(narrative):
    narrative.ping()


def test_ping_raises_on_unexpected_reply(narrative, fake_gemini, reply):
    fake_gemini.queue.append(reply({"pong": False}))

    with pytest.raises(NarrativeGenerationError):
        narrative.ping()
