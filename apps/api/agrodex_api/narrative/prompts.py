"""Narrative prompt kinds: typed inputs, templates, outputs and fallbacks."""

import json
from enum import Enum
from string import Template
from typing import Annotated, ClassVar, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class PromptKind(str, Enum):
    IMAGE_ANALYSIS = "IMAGE_ANALYSIS"
    PROVENANCE_SUMMARY = "PROVENANCE_SUMMARY"
    BUYER_QA = "BUYER_QA"
    TRANSLATION = "TRANSLATION"
    PRICE_SUGGESTION = "PRICE_SUGGESTION"
    DASHBOARD_INSIGHT = "DASHBOARD_INSIGHT"


class _WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)


def _json(value) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False)


# Shared input

class TimelineEvent(_WireModel):
    """One ledger event as handed to the model."""

    timestamp: str
    event: str
    tx_id: Optional[str] = Field(default=None, alias="txId")
    location: Optional[str] = None
    operator: Optional[str] = None


# Outputs

class ImageAnalysis(_WireModel):
    caption: str
    anomalies: list[str] = []
    confidence: float = Field(ge=0.0, le=1.0)
    tags: list[str] = []


class TimelineEntry(_WireModel):
    timestamp: str
    event: str
    tx_id: Optional[str] = Field(default=None, alias="txId")


class ProvenanceSummary(_WireModel):
    summary_en: str
    summary_fr: str
    timeline: list[TimelineEntry] = []
    trust_score: Optional[int] = Field(default=None, ge=0, le=100, alias="trustScore")
    trust_explanation: str = Field(alias="trustExplanation")


class BuyerAnswer(_WireModel):
    answer: str
    evidence_tx_ids: list[str] = Field(default_factory=list, alias="evidenceTxIds")


class MarketingTranslation(_WireModel):
    summary_fr: str
    blurb_en: str
    blurb_fr: str


class PriceSuggestion(_WireModel):
    uplift_pct: int = Field(ge=0, le=50, alias="upliftPct")
    rationale: str


class DashboardInsight(_WireModel):
    insight_en: str
    insight_fr: str


# Templates

IMAGE_ANALYSIS_TEMPLATE = """You are an agricultural quality inspector analyzing crop/product images.

Analyze the provided image and return ONLY valid JSON in this exact format:
{
  "caption": "brief description of what you see",
  "anomalies": ["array", "of", "detected", "issues"],
  "confidence": 0.85,
  "tags": ["organic", "fresh", "ripe"]
}

Rules:
- caption: 1-2 sentences max
- anomalies: select from whitelist [discoloration, mold, damage, contamination, pest-damage, wilting, bruising, rot] or empty array
- confidence: 0.0 to 1.0 based on image quality and clarity
- tags: select from [organic, conventional, fresh, dried, ripe, unripe, premium, standard, damaged, processed]
- Return ONLY the JSON object, no markdown, no explanation

Image URL: $photo_url

Note: Analyze based on URL context and filename."""

PROVENANCE_SUMMARY_TEMPLATE = """You are a blockchain traceability analyst. Given a timeline of agricultural events recorded on Hedera HCS, create a comprehensive provenance summary.

Input format:
{
  "events": [
    {"timestamp": "ISO8601", "event": "description", "txId": "0.0.123@1234567890.123456789", "location": "GPS coords", "operator": "account"}
  ]
}

Return ONLY valid JSON in this exact format:
{
  "summary_en": "English summary paragraph citing transaction IDs",
  "summary_fr": "French summary paragraph citing transaction IDs",
  "timeline": [
    {"timestamp": "ISO8601", "event": "brief event", "txId": "0.0.123@1234567890.123456789"}
  ],
  "trustScore": 85,
  "trustExplanation": "Explanation of trust score calculation"
}

Rules:
- summary_en/fr: 2-4 sentences, must reference specific txIds when making claims
- timeline: chronological array of key events with txIds, ordered by their timestamps even if the input is not
- trustScore: integer 0-100 based on: completeness (all stages present), consistency (no gaps), verification (GPS/photos), timeliness
- trustExplanation: 1-2 sentences explaining the score
- Return ONLY the JSON object, no markdown

Timeline data:
$events"""

BUYER_QA_TEMPLATE = """You are an agricultural traceability assistant helping buyers understand product provenance.

Context: You have access to a complete blockchain timeline of events for this agricultural product.

Timeline:
$timeline

Question: $question

Return ONLY valid JSON in this exact format:
{
  "answer": "Clear, factual answer to the question",
  "evidenceTxIds": ["0.0.123@1234567890.123456789", "0.0.456@9876543210.987654321"]
}

Rules:
- answer: 2-4 sentences, factual, cite specific events from timeline
- evidenceTxIds: array of transaction IDs that support your answer (minimum 1 if making factual claims)
- If question cannot be answered from timeline, say so clearly and suggest what info is missing
- Return ONLY the JSON object, no markdown"""

TRANSLATION_TEMPLATE = """You are a marketing translator for agricultural products.

Input summary (English): $summary_en

Return ONLY valid JSON in this exact format:
{
  "summary_fr": "French translation of the summary",
  "blurb_en": "Short marketing blurb in English (1-2 sentences)",
  "blurb_fr": "Short marketing blurb in French (1-2 sentences)"
}

Rules:
- summary_fr: accurate translation maintaining technical terms
- blurb_en: compelling, consumer-friendly, highlights quality/traceability
- blurb_fr: same as blurb_en but in French
- Return ONLY the JSON object, no markdown"""

PRICE_SUGGESTION_TEMPLATE = """You are an agricultural pricing analyst. Based on product quality and traceability data, suggest a price uplift percentage.

Base rules:
- trustScore > 80 AND "organic" tag: 15-25% uplift
- trustScore > 90 AND "premium" tag: 20-30% uplift
- trustScore > 70 with complete traceability: 10-15% uplift
- trustScore < 50 or missing: 0-5% uplift

Return ONLY valid JSON in this exact format:
{
  "upliftPct": 20,
  "rationale": "Brief explanation of the suggested uplift"
}

Rules:
- upliftPct: integer percentage (0-50)
- rationale: 1-2 sentences explaining the recommendation
- Return ONLY the JSON object, no markdown

Input:
$input"""

DASHBOARD_INSIGHT_TEMPLATE = """You are the Chief Analyst for Agri-Trust Ledger.
Analyze these dashboard statistics: $stats
Your task is to provide a single, professional insight (1-2 sentences) for the dashboard.
Analyze the *business data* (e.g., "Activity is increasing, but 20% of new lots require review.").
Provide the insight in both English and French.

Respond ONLY with this valid JSON format:
{
  "insight_en": "<Your insight in English>",
  "insight_fr": "<Votre aperçu en Français>"
}"""


# Requests, one per kind

class ImageAnalysisRequest(BaseModel):
    kind: Literal[PromptKind.IMAGE_ANALYSIS] = PromptKind.IMAGE_ANALYSIS
    photo_url: Optional[str] = None

    output_model: ClassVar[type[BaseModel]] = ImageAnalysis

    def missing_input(self) -> Optional[str]:
        return None if self.photo_url else "No photo URL provided"

    def render(self) -> str:
        return Template(IMAGE_ANALYSIS_TEMPLATE).substitute(photo_url=self.photo_url)

    def fallback(self) -> ImageAnalysis:
        return ImageAnalysis(caption="Image analysis unavailable", anomalies=[], confidence=0, tags=[])


class ProvenanceSummaryRequest(BaseModel):
    kind: Literal[PromptKind.PROVENANCE_SUMMARY] = PromptKind.PROVENANCE_SUMMARY
    events: list[TimelineEvent] = []

    output_model: ClassVar[type[BaseModel]] = ProvenanceSummary

    def missing_input(self) -> Optional[str]:
        return None if self.events else "No timeline data provided"

    def render(self) -> str:
        events = {"events": [event.to_wire() for event in self.events]}
        return Template(PROVENANCE_SUMMARY_TEMPLATE).substitute(events=_json(events))

    def fallback(self) -> ProvenanceSummary:
        return ProvenanceSummary(
            summary_en="Provenance summary unavailable",
            summary_fr="Résumé de provenance indisponible",
            timeline=[],
            trust_score=None,
            trust_explanation="Unable to calculate trust score",
        )


class BuyerQARequest(BaseModel):
    kind: Literal[PromptKind.BUYER_QA] = PromptKind.BUYER_QA
    question: str = ""
    events: list[TimelineEvent] = []

    output_model: ClassVar[type[BaseModel]] = BuyerAnswer

    def missing_input(self) -> Optional[str]:
        if not self.question.strip() or not self.events:
            return "Missing question or timeline data"
        return None

    def render(self) -> str:
        return Template(BUYER_QA_TEMPLATE).substitute(
            timeline=_json([event.to_wire() for event in self.events]),
            question=self.question,
        )

    def fallback(self) -> BuyerAnswer:
        return BuyerAnswer(answer="Unable to answer question at this time", evidence_tx_ids=[])


class TranslationRequest(BaseModel):
    kind: Literal[PromptKind.TRANSLATION] = PromptKind.TRANSLATION
    summary_en: str = ""

    output_model: ClassVar[type[BaseModel]] = MarketingTranslation

    def missing_input(self) -> Optional[str]:
        return None if self.summary_en.strip() else "No summary provided"

    def render(self) -> str:
        return Template(TRANSLATION_TEMPLATE).substitute(summary_en=self.summary_en)

    def fallback(self) -> MarketingTranslation:
        return MarketingTranslation(
            summary_fr="Traduction non disponible",
            blurb_en="Premium traceable product",
            blurb_fr="Produit traçable premium",
        )


class PriceSuggestionRequest(BaseModel):
    kind: Literal[PromptKind.PRICE_SUGGESTION] = PromptKind.PRICE_SUGGESTION
    commodity: str = ""
    region: Optional[str] = None
    quality_tags: list[str] = []
    trust_score: Optional[int] = Field(default=None, ge=0, le=100)

    output_model: ClassVar[type[BaseModel]] = PriceSuggestion

    def missing_input(self) -> Optional[str]:
        return None if self.commodity.strip() else "No commodity provided"

    def render(self) -> str:
        data = {
            "commodity": self.commodity,
            "region": self.region,
            "qualityTags": self.quality_tags,
            "trustScore": self.trust_score,
        }
        return Template(PRICE_SUGGESTION_TEMPLATE).substitute(input=_json(data))

    def fallback(self) -> PriceSuggestion:
        return PriceSuggestion(uplift_pct=0, rationale="Unable to calculate price suggestion")


class DashboardInsightRequest(BaseModel):
    kind: Literal[PromptKind.DASHBOARD_INSIGHT] = PromptKind.DASHBOARD_INSIGHT
    stats: dict = {}

    output_model: ClassVar[type[BaseModel]] = DashboardInsight

    def missing_input(self) -> Optional[str]:
        return None

    def render(self) -> str:
        return Template(DASHBOARD_INSIGHT_TEMPLATE).substitute(
            stats=json.dumps(self.stats, ensure_ascii=False, default=str)
        )

    def fallback(self) -> DashboardInsight:
        return DashboardInsight(
            insight_en="AI insight unavailable. Continue onboarding lots to unlock analytics.",
            insight_fr="Analyse IA indisponible. Ajoutez de nouveaux lots pour alimenter l'analytique.",
        )


NarrativeRequest = Annotated[
    Union[
        ImageAnalysisRequest,
        ProvenanceSummaryRequest,
        BuyerQARequest,
        TranslationRequest,
        PriceSuggestionRequest,
        DashboardInsightRequest,
    ],
    Field(discriminator="kind"),
]
