"""Pydantic schemas."""
from app.schemas.recommendation import (
    Outcome,
    EvaluationAnswers,
    EvaluateRequest,
    ExplainRequest,
    OverrideCreate,
    EvaluationResponse,
    ExplanationResponse,
    OverrideResponse,
    PatternSummaryResponse,
    RecommendationSettingsResponse,
    PersonalityResponse,
    ImageAnalysisResponse,
    ProviderListResponse,
    UsageSummaryResponse,
)

__all__ = [
    "Outcome",
    "EvaluationAnswers",
    "EvaluateRequest",
    "ExplainRequest",
    "OverrideCreate",
    "EvaluationResponse",
    "ExplanationResponse",
    "OverrideResponse",
    "PatternSummaryResponse",
    "RecommendationSettingsResponse",
    "PersonalityResponse",
    "ImageAnalysisResponse",
    "ProviderListResponse",
    "UsageSummaryResponse",
]
