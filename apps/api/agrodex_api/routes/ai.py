"""Narrative endpoints for operators."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from agrodex_api.auth.jwt import AuthenticatedUser, require_user
from agrodex_api.dependencies import get_store
from agrodex_api.errors import NotFoundError
from agrodex_api.narrative.generator import NarrativeGenerator, get_narrative_generator
from agrodex_api.narrative.prompts import (
    BuyerQARequest,
    ImageAnalysisRequest,
    PriceSuggestionRequest,
    ProvenanceSummaryRequest,
    TimelineEvent,
    TranslationRequest,
)
from agrodex_api.narrative.result import Ok
from agrodex_api.store.service import ProvenanceStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai", tags=["ai"])


class AnalyzeImageRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    photo_url: str = Field(..., alias="photoUrl", min_length=1)
    batch_id: Optional[int] = Field(None, alias="batchId", description="Refresh this batch's analysis")


class SummarizeProvenanceRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    hcs_timeline: list[TimelineEvent] = Field(..., alias="hcsTimeline")


class BuyerQuestionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    question: str = Field(..., min_length=1, max_length=1000)
    hcs_timeline: list[TimelineEvent] = Field(..., alias="hcsTimeline")


class TranslateMarketingRequest(BaseModel):
    summary_en: str = Field(..., min_length=1)


class PriceSuggestionInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    commodity: str = Field(..., min_length=1)
    region: Optional[str] = None
    quality_tags: list[str] = Field(default_factory=list, alias="qualityTags")
    trust_score: Optional[int] = Field(None, alias="trustScore", ge=0, le=100)


def _respond(result) -> dict:
    return {"ok": isinstance(result, Ok), "data": result.as_payload()}


@router.post("/analyze-image")
def analyze_image(
    request_data: AnalyzeImageRequest,
    user: AuthenticatedUser = Depends(require_user),
    narrative: NarrativeGenerator = Depends(get_narrative_generator),
    store: ProvenanceStore = Depends(get_store),
):
    """Analyze a product photo, optionally refreshing a batch's analysis."""
    batch = None
    if request_data.batch_id is not None:
        batch = store.get_batch(request_data.batch_id)
        if batch is None:
            raise NotFoundError(f"Batch {request_data.batch_id} not found")

    result = narrative.generate(ImageAnalysisRequest(photo_url=request_data.photo_url))
    if batch is not None and isinstance(result, Ok):
        store.update_batch_narrative(batch, result.as_payload())
        logger.info(f"Batch {batch.id} image analysis refreshed")
    return _respond(result)


@router.post("/summarize-provenance")
def summarize_provenance(
    request_data: SummarizeProvenanceRequest,
    user: AuthenticatedUser = Depends(require_user),
    narrative: NarrativeGenerator = Depends(get_narrative_generator),
):
    """Summarize a ledger timeline with a trust score."""
    return _respond(narrative.generate(ProvenanceSummaryRequest(events=request_data.hcs_timeline)))


@router.post("/buyer-qa")
def buyer_qa(
    request_data: BuyerQuestionRequest,
    user: AuthenticatedUser = Depends(require_user),
    narrative: NarrativeGenerator = Depends(get_narrative_generator),
):
    """Answer a buyer question from a ledger timeline."""
    return _respond(
        narrative.generate(
            BuyerQARequest(question=request_data.question, events=request_data.hcs_timeline)
        )
    )


@router.post("/translate-marketing")
def translate_marketing(
    request_data: TranslateMarketingRequest,
    user: AuthenticatedUser = Depends(require_user),
    narrative: NarrativeGenerator = Depends(get_narrative_generator),
):
    """Translate a summary to French and draft marketing blurbs."""
    return _respond(narrative.generate(TranslationRequest(summary_en=request_data.summary_en)))


@router.post("/price-suggestion")
def price_suggestion(
    request_data: PriceSuggestionInput,
    user: AuthenticatedUser = Depends(require_user),
    narrative: NarrativeGenerator = Depends(get_narrative_generator),
):
    """Suggest a price uplift from quality tags and trust score."""
    return _respond(
        narrative.generate(
            PriceSuggestionRequest(
                commodity=request_data.commodity,
                region=request_data.region,
                quality_tags=request_data.quality_tags,
                trust_score=request_data.trust_score,
            )
        )
    )
