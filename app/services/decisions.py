"""Decision pipeline: scoring, explanation, photo analysis and overrides.

Routers call these functions; each one takes a request-scoped session and
reads a fresh SystemConfig snapshot unless one is passed in.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
from sqlalchemy.orm import Session

from app.errors import ItemNotFoundError, UserNotFoundError
from app.models.inventory import Item, User
from app.models.recommendation import RecommendationOverride
from app.services.context import build_reasoning_prompt, build_recommendation_context
from app.services.image_analysis import ImageAnalysis, extract_json_object, normalize_analysis
from app.services.llm.gateway import ProviderGateway
from app.services.patterns import log_override
from app.services.scoring import OUTCOMES, ScoreResult, ScoringEngine, normalize_answers
from app.services.system_config import (
    SystemConfig,
    get_category_vocabulary,
    get_default_category,
    load_system_config,
)
from app.settings import settings

logger = logging.getLogger(__name__)


@dataclass
class EvaluationResult:
    """Scoring result for a stored item."""
    item_id: int
    score: ScoreResult
    settings_version: int = 0

    @property
    def outcome(self) -> str:
        return self.score.outcome

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON response."""
        return {"item_id": self.item_id, "settings_version": self.settings_version, **self.score.to_dict()}


@dataclass
class ExplanationResult:
    """Generated reasoning for a recommendation."""
    item_id: int
    outcome: str
    reasoning_text: str
    provider: str = ""
    model: str = ""


def get_user(db: Session, user_id: int) -> User:
    """Load a user or raise UserNotFoundError."""
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise UserNotFoundError(f"User {user_id} not found")
    return user


def get_user_item(db: Session, user_id: int, item_id: int) -> Item:
    """Load an item owned by the user or raise ItemNotFoundError."""
    item = db.query(Item).filter(Item.id == item_id, Item.user_id == user_id).first()
    if item is None:
        raise ItemNotFoundError(f"Item {item_id} not found")
    return item


def validate_outcome(value: Optional[str], field_name: str = "outcome") -> str:
    """Lowercase an outcome and check it is one of the six known outcomes."""
    outcome = (value or "").strip().lower()
    if outcome not in OUTCOMES:
        raise ValueError(f"Invalid {field_name} '{value}'. Must be one of: {', '.join(OUTCOMES)}")
    return outcome


def evaluate(
    db: Session,
    user_id: int,
    item_id: int,
    answers: Optional[Dict[str, Any]] = None,
    config: Optional[SystemConfig] = None,
    strict: bool = False,
) -> EvaluationResult:
    """
    Score an item and store the recommendation on it.

    Args:
        db: Database session
        user_id: Owner of the item
        item_id: Item to evaluate
        answers: Evaluation answers; the stored answers are used when omitted
        config: Settings snapshot (loaded when omitted)
        strict: Reject unknown answer values instead of skipping them

    Returns:
        EvaluationResult
    """
    item = get_user_item(db, user_id, item_id)
    config = config or load_system_config(db)

    if answers is None:
        answers = item.answers or {}

    engine = ScoringEngine(config.strategy)
    result = engine.evaluate(answers, user_id=user_id, strict=strict)

    item.answers = normalize_answers(answers)
    item.recommendation = result.outcome
    db.commit()

    logger.info(
        f"Evaluated item {item_id} for user {user_id}: {result.outcome}",
        extra={'extra_fields': {
            'item_id': item_id,
            'strategy': result.strategy,
            'variant': result.variant,
            'decided_by': result.decided_by,
        }}
    )
    return EvaluationResult(item_id=item_id, score=result, settings_version=config.strategy.version)


async def explain(
    db: Session,
    user_id: int,
    item_id: int,
    outcome: Optional[str] = None,
    config: Optional[SystemConfig] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> ExplanationResult:
    """
    Generate personalized reasoning for an item's recommendation.

    Uses the given outcome, else the stored recommendation, else a fresh
    score of the stored answers. The text is stored on the item.

    Args:
        db: Database session
        user_id: Owner of the item
        item_id: Item to explain
        outcome: Recommendation to explain
        config: Settings snapshot (loaded when omitted)
        http_client: Shared HTTP client for vendor calls

    Returns:
        ExplanationResult
    """
    user = get_user(db, user_id)
    item = get_user_item(db, user_id, item_id)
    config = config or load_system_config(db)

    if outcome:
        outcome = validate_outcome(outcome)
    elif item.recommendation in OUTCOMES:
        outcome = item.recommendation
    else:
        outcome = ScoringEngine(config.strategy).evaluate(item.answers or {}, user_id=user_id).outcome

    context = build_recommendation_context(db, user_id, item_id)
    prompt, system_prompt = build_reasoning_prompt(
        item_name=item.name,
        category=item.category,
        recommendation=outcome,
        context=context,
        answers=item.answers,
    )

    gateway = ProviderGateway(db, user, config, http_client=http_client)
    result = await gateway.generate_text(prompt, system_prompt, endpoint=f"/api/items/{item_id}/explain")

    reasoning = result.text.strip().strip('"').strip()
    item.recommendation_reasoning = reasoning
    db.commit()

    return ExplanationResult(
        item_id=item_id,
        outcome=outcome,
        reasoning_text=reasoning,
        model=result.model,
        provider=result.provider,
    )


async def analyze_image(
    db: Session,
    user_id: int,
    image_bytes: bytes,
    media_type: str,
    config: Optional[SystemConfig] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> ImageAnalysis:
    """
    Suggest a name, description and category from a photo.

    Args:
        db: Database session
        user_id: Caller
        image_bytes: Uploaded image
        media_type: Upload MIME type
        config: Settings snapshot (loaded when omitted)
        http_client: Shared HTTP client for vendor calls

    Returns:
        ImageAnalysis

    Raises:
        ValueError: If the upload is empty, too large or not an allowed type
    """
    if not image_bytes:
        raise ValueError("No image file provided")
    if len(image_bytes) > settings.MAX_IMAGE_BYTES:
        raise ValueError(f"Image exceeds maximum size of {settings.MAX_IMAGE_BYTES} bytes")
    if media_type not in settings.allowed_image_types_list:
        raise ValueError(
            f"Unsupported image type '{media_type}'. Allowed: {', '.join(settings.allowed_image_types_list)}"
        )

    user = get_user(db, user_id)
    config = config or load_system_config(db)
    vocabulary = get_category_vocabulary(db)

    gateway = ProviderGateway(db, user, config, http_client=http_client)
    result = await gateway.understand_image(
        image_bytes, media_type, vocabulary, prompt_override=config.analysis_prompt
    )

    data = extract_json_object(result.text)
    return normalize_analysis(data, vocabulary, get_default_category(db))


def record_override(
    db: Session,
    user_id: int,
    item_id: int,
    suggested: str,
    chosen: str,
    reason: Optional[str] = None,
) -> RecommendationOverride:
    """
    Record that the user chose a different outcome than suggested.

    Also stores the choice as the item's decision.

    Raises:
        ValueError: If either outcome is unknown or they are the same
    """
    suggested = validate_outcome(suggested, "suggested outcome")
    chosen = validate_outcome(chosen, "chosen outcome")
    if suggested == chosen:
        raise ValueError("Chosen outcome matches the suggestion; nothing to override")

    item = get_user_item(db, user_id, item_id)
    item.decision = chosen

    override = log_override(
        db,
        user_id=user_id,
        item_id=item_id,
        item_category=item.category,
        ai_suggestion=suggested,
        user_choice=chosen,
        override_reason=(reason or "").strip() or None,
    )
    logger.info(f"Override recorded for item {item_id}: {suggested} -> {chosen}")
    return override
