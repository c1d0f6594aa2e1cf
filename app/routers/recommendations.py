"""Item evaluation, reasoning and override API endpoints."""
import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.db import get_db
from app.dependencies import get_current_user, get_system_config
from app.models.inventory import User
from app.schemas.recommendation import (
    DuplicateCountResponse,
    EvaluateRequest,
    EvaluationContextResponse,
    EvaluationResponse,
    ExplainRequest,
    ExplanationResponse,
    OverrideCreate,
    OverrideResponse,
    PatternSummaryResponse,
    PersonalityResponse,
    RecommendationSettingsResponse,
    StrategyResponse,
    ToneRequest,
    ToneResponse,
)
from app.services import decisions
from app.services.context import build_recommendation_context, get_duplicate_count
from app.services.patterns import get_user_patterns
from app.services.personalities import list_personalities
from app.services.system_config import SystemConfig
from app.services.tone import classify_tone

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["recommendations"])


def get_http_client(request: Request) -> Optional[httpx.AsyncClient]:
    """Shared vendor HTTP client created in the app lifespan, if any."""
    return getattr(request.app.state, "http_client", None)


@router.post("/items/{item_id}/evaluate", response_model=EvaluationResponse)
async def evaluate_item(
    item_id: int,
    payload: Optional[EvaluateRequest] = None,
    user: User = Depends(get_current_user),
    config: SystemConfig = Depends(get_system_config),
    db: Session = Depends(get_db),
):
    """Score an item's answers and store the recommendation."""
    payload = payload or EvaluateRequest()
    answers = payload.answers.model_dump(exclude_none=True) if payload.answers else None

    result = decisions.evaluate(db, user.id, item_id, answers, config=config, strict=payload.strict)
    return EvaluationResponse(**result.to_dict())


@router.post("/items/{item_id}/explain", response_model=ExplanationResponse)
async def explain_item(
    item_id: int,
    payload: Optional[ExplainRequest] = None,
    user: User = Depends(get_current_user),
    config: SystemConfig = Depends(get_system_config),
    http_client: Optional[httpx.AsyncClient] = Depends(get_http_client),
    db: Session = Depends(get_db),
):
    """Generate personalized reasoning for an item's recommendation."""
    outcome = payload.outcome.value if payload and payload.outcome else None

    try:
        result = await decisions.explain(
            db, user.id, item_id, outcome=outcome, config=config, http_client=http_client
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return ExplanationResponse(
        item_id=result.item_id,
        outcome=result.outcome,
        reasoning=result.reasoning_text,
        provider=result.provider,
        model=result.model,
    )


@router.post(
    "/items/{item_id}/overrides",
    response_model=OverrideResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_override(
    item_id: int,
    payload: OverrideCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Record that the user chose a different outcome than suggested."""
    try:
        override = decisions.record_override(
            db, user.id, item_id,
            suggested=payload.suggested.value,
            chosen=payload.chosen.value,
            reason=payload.reason,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return override


@router.get("/recommendations/settings", response_model=RecommendationSettingsResponse)
async def get_recommendation_settings(
    user: User = Depends(get_current_user),
    config: SystemConfig = Depends(get_system_config),
):
    """Scoring configuration that applies to the caller, with A/B resolved."""
    strategy = config.strategy
    definition, variant = strategy.strategy_for_user(user.id)

    return RecommendationSettingsResponse(
        strategy=StrategyResponse(
            key=definition.key,
            name=definition.name,
            description=definition.description,
            multipliers={k: definition.multiplier(k) for k in definition.multipliers},
        ),
        variant=variant,
        ab_test_enabled=strategy.ab_test_enabled,
        weights=definition.weights or strategy.weights,
        minimum_score_difference=strategy.minimum_score_difference,
        tie_break_order=list(strategy.tie_break_order),
        available_strategies=list(strategy.strategies),
        version=strategy.version,
    )


@router.get("/recommendations/patterns", response_model=PatternSummaryResponse)
async def get_patterns(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """The caller's override patterns and override rate."""
    return PatternSummaryResponse(**get_user_patterns(db, user.id).to_dict())


@router.get("/personalities", response_model=list[PersonalityResponse])
async def get_personalities():
    """Available reasoning personas."""
    return list_personalities()


@router.post("/recommendations/detect-tone", response_model=ToneResponse)
async def detect_tone(
    payload: ToneRequest,
    user: User = Depends(get_current_user),
):
    """Classify free-text notes the way the reasoning step does."""
    result = classify_tone(payload.text)
    return ToneResponse(tone=result.tone, instructions=result.instructions, scores=result.scores)


@router.get("/recommendations/context/{item_id}", response_model=EvaluationContextResponse)
async def get_recommendation_context(
    item_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """The evaluation context the reasoning step would see for an item."""
    decisions.get_user_item(db, user.id, item_id)
    context = build_recommendation_context(db, user.id, item_id)
    return EvaluationContextResponse(**context.to_dict())


@router.get("/items/duplicate-count/{category}", response_model=DuplicateCountResponse)
async def duplicate_count(
    category: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """How many of the caller's items share a category."""
    return DuplicateCountResponse(category=category, count=get_duplicate_count(db, user.id, category))
