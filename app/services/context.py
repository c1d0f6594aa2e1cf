"""Evaluation context assembly and reasoning prompt construction."""
import logging
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.inventory import Item, User
from app.services.patterns import get_user_patterns
from app.services.personalities import DEFAULT_PERSONALITY, get_personality_config
from app.services.tone import NEUTRAL, detect_emotional_tone, get_tone_instructions

logger = logging.getLogger(__name__)


DEFAULT_USER_GOAL = "general"

# month -> season
SEASONS = {
    3: "spring", 4: "spring", 5: "spring",
    6: "summer", 7: "summer", 8: "summer",
    9: "fall", 10: "fall", 11: "fall",
}


@dataclass
class EvaluationContext:
    """Everything the reasoning step knows about a user and an item.

    Built per request and never persisted.
    """
    user_goal: str = DEFAULT_USER_GOAL
    personality_mode: str = DEFAULT_PERSONALITY
    last_used_timeframe: Optional[str] = None
    item_condition: Optional[str] = None
    is_sentimental: bool = False
    user_notes: Optional[str] = None
    duplicate_count: int = 0
    season: str = "winter"
    emotional_tone: str = NEUTRAL
    user_patterns: List[str] = field(default_factory=list)
    override_rate: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON response."""
        return asdict(self)


def get_current_season(today: Optional[date] = None) -> str:
    """Northern-hemisphere meteorological season for a date."""
    today = today or date.today()
    return SEASONS.get(today.month, "winter")


def get_duplicate_count(db: Session, user_id: int, category: Optional[str]) -> int:
    """Number of the user's items in a category (0 when there is no category)."""
    if not category:
        return 0
    return db.query(func.count(Item.id)).filter(
        Item.user_id == user_id,
        Item.category == category
    ).scalar() or 0


def build_recommendation_context(
    db: Session,
    user_id: int,
    item_id: int,
    today: Optional[date] = None,
) -> EvaluationContext:
    """
    Assemble the evaluation context for one item.

    Missing users or items and failing sub-queries degrade to defaults with a
    warning; context assembly never blocks a recommendation.

    Args:
        db: Database session
        user_id: User ID
        item_id: Item ID
        today: Date used for the season (defaults to today)

    Returns:
        EvaluationContext
    """
    user = db.query(User).filter(User.id == user_id).first()
    item = db.query(Item).filter(Item.id == item_id).first()
    if user is None:
        logger.warning(f"Context for unknown user {user_id}, using defaults")
    if item is None:
        logger.warning(f"Context for unknown item {item_id}, using defaults")

    category = item.category if item else None

    try:
        duplicate_count = get_duplicate_count(db, user_id, category)
    except SQLAlchemyError as e:
        logger.warning(f"Duplicate count failed for user {user_id}: {e}")
        db.rollback()
        duplicate_count = 0

    try:
        patterns = get_user_patterns(db, user_id)
        user_patterns, override_rate = patterns.patterns, patterns.override_rate
    except SQLAlchemyError as e:
        logger.warning(f"Pattern mining failed for user {user_id}: {e}")
        db.rollback()
        user_patterns, override_rate = [], 0

    user_notes = item.user_notes if item else None

    return EvaluationContext(
        user_goal=(user.user_goal if user else None) or DEFAULT_USER_GOAL,
        personality_mode=(user.personality_mode if user else None) or DEFAULT_PERSONALITY,
        last_used_timeframe=(item.last_used_timeframe if item else None) or None,
        item_condition=(item.item_condition if item else None) or None,
        is_sentimental=bool(item.is_sentimental) if item else False,
        user_notes=user_notes or None,
        duplicate_count=duplicate_count,
        season=get_current_season(today),
        emotional_tone=detect_emotional_tone(user_notes),
        user_patterns=user_patterns,
        override_rate=override_rate,
    )


def build_reasoning_prompt(
    item_name: str,
    category: Optional[str],
    recommendation: str,
    context: EvaluationContext,
    answers: Optional[Dict[str, Any]] = None,
) -> Tuple[str, str]:
    """
    Build the (prompt, system_prompt) pair for an explanation request.

    The persona opens the system prompt and the detected tone adds its
    instruction. Answers and context become a bullet list in the user prompt.

    Args:
        item_name: Item display name
        category: Category slug, if any
        recommendation: Outcome to explain
        context: Assembled evaluation context
        answers: Stored evaluation answers

    Returns:
        Tuple of (prompt, system_prompt)
    """
    personality = get_personality_config(context.personality_mode)
    tone_instructions = get_tone_instructions(context.emotional_tone)

    system_prompt = (
        f"{personality.system_prompt}\n\n"
        f"You are explaining a decluttering recommendation to a user. {personality.specific_instructions}\n\n"
        f"{tone_instructions}\n\n"
        "Respond with ONLY the explanation text, no JSON, no labels, no quotes. "
        "Write 2-3 conversational sentences."
    )

    answers = answers or {}
    lines = []
    labelled = (
        ("Usage frequency", answers.get("usage") or answers.get("used")),
        ("Sentimental value", answers.get("sentimental")),
        ("Condition", answers.get("condition") or context.item_condition),
        ("Financial value", answers.get("value")),
        ("Last used", context.last_used_timeframe),
    )
    for label, value in labelled:
        if value:
            lines.append(f"{label}: {value}")
    if context.user_notes:
        lines.append(f'User notes: "{context.user_notes}"')
    if context.duplicate_count > 1:
        lines.append(f"Duplicate items in category: {context.duplicate_count}")
    if context.user_goal:
        lines.append(f"User's decluttering goal: {context.user_goal}")
    lines.append(f"Season: {context.season}")
    for pattern in context.user_patterns:
        lines.append(f"Past behavior: {pattern}")

    context_block = "\n\nContext:\n" + "\n".join(f"- {line}" for line in lines)
    label = f"{item_name} ({category})" if category else item_name

    prompt = (
        f"Item: {label}{context_block}\n\n"
        f"The recommendation is: {recommendation}. "
        "Explain in 2-3 sentences why this recommendation makes sense for this item."
    )
    return prompt, system_prompt
