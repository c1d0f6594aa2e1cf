"""Recommendation Pydantic schemas."""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class Outcome(str, Enum):
    """What to do with an item."""
    KEEP = "keep"
    ACCESSIBLE = "accessible"
    STORAGE = "storage"
    SELL = "sell"
    DONATE = "donate"
    DISCARD = "discard"


# Request Schemas
class EvaluationAnswers(BaseModel):
    """Answers to the six evaluation questions; all optional."""
    usage: Optional[str] = Field(None, description="yes, rarely, no")
    sentimental: Optional[str] = Field(None, description="high, some, none")
    condition: Optional[str] = Field(None, description="excellent, good, fair, poor")
    value: Optional[str] = Field(None, description="high, medium, low")
    replaceability: Optional[str] = Field(None, description="difficult, moderate, easy")
    space: Optional[str] = Field(None, description="yes, limited, no")


class EvaluateRequest(BaseModel):
    """Schema for scoring an item. Omitted answers fall back to the stored ones."""
    answers: Optional[EvaluationAnswers] = None
    strict: bool = Field(False, description="Reject unknown answer values")


class ExplainRequest(BaseModel):
    """Schema for requesting reasoning text."""
    outcome: Optional[Outcome] = Field(None, description="Defaults to the stored recommendation")


class OverrideCreate(BaseModel):
    """Schema for recording a decision that differs from the suggestion."""
    suggested: Outcome
    chosen: Outcome
    reason: Optional[str] = Field(None, max_length=1000)


class ToneRequest(BaseModel):
    """Schema for classifying free-text notes."""
    text: Optional[str] = Field(None, max_length=5000)


# Response Schemas
class EvaluationResponse(BaseModel):
    """Schema for a scoring result."""
    item_id: int
    outcome: str
    scores: dict[str, float]
    ranking: list[str]
    margin: float
    decided_by: str
    strategy: str
    variant: str
    invalid_answers: list[str] = Field(default_factory=list)
    settings_version: int = 0


class ExplanationResponse(BaseModel):
    """Schema for generated reasoning."""
    item_id: int
    outcome: str
    reasoning: str
    provider: str
    model: str


class OverrideResponse(BaseModel):
    """Schema for a stored override."""
    id: int
    item_id: int
    item_category: Optional[str] = None
    ai_suggestion: str
    user_choice: str
    override_reason: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class CategoryPatternStats(BaseModel):
    total: int
    overrides: dict[str, int]


class PatternSummaryResponse(BaseModel):
    """Schema for the caller's override patterns."""
    total: int = 0
    by_category: dict[str, CategoryPatternStats] = Field(default_factory=dict)
    patterns: list[str] = Field(default_factory=list)
    override_rate: int = 0


class StrategyResponse(BaseModel):
    key: str
    name: str
    description: str = ""
    multipliers: dict[str, float] = Field(default_factory=dict)


class RecommendationSettingsResponse(BaseModel):
    """Schema for the scoring configuration that applies to the caller."""
    strategy: StrategyResponse
    variant: str
    ab_test_enabled: bool
    weights: dict[str, dict[str, dict[str, float]]]
    minimum_score_difference: float
    tie_break_order: list[str]
    available_strategies: list[str]
    version: int = 0


class ToneResponse(BaseModel):
    """Schema for a detected emotional tone."""
    tone: str
    instructions: str
    scores: dict[str, int] = Field(default_factory=dict)


class EvaluationContextResponse(BaseModel):
    """Schema for the context the reasoning step sees for an item."""
    user_goal: str
    personality_mode: str
    last_used_timeframe: Optional[str] = None
    item_condition: Optional[str] = None
    is_sentimental: bool = False
    user_notes: Optional[str] = None
    duplicate_count: int = 0
    season: str
    emotional_tone: str
    user_patterns: list[str] = Field(default_factory=list)
    override_rate: int = 0


class DuplicateCountResponse(BaseModel):
    category: str
    count: int


class PersonalityResponse(BaseModel):
    key: str
    name: str
    description: str


class ImageAnalysisResponse(BaseModel):
    """Schema for a photo-based item draft."""
    name: str
    description: str
    category: str


class ProviderResponse(BaseModel):
    """Schema for one vendor in the registry listing."""
    id: str
    display_name: str
    default_model: str
    text_model: str
    input_price_per_million: float
    output_price_per_million: float
    requires_api_key: bool
    requires_base_url: bool
    key_placeholder: str = ""
    console_url: str = ""
    system_configured: bool = False
    is_system_default: bool = False


class ProviderListResponse(BaseModel):
    providers: list[ProviderResponse]


class UsageSummaryResponse(BaseModel):
    """Schema for month-to-date usage."""
    month_start: str
    calls: int
    failed_calls: int
    own_key_calls: int
    input_tokens: int
    output_tokens: int
    user_cost: float
    per_user_limit: float
    user_remaining: float
    total_cost: float
    monthly_limit: float
