"""Override history mining for personalized reasoning.

Looks at the user's recent disagreements with the engine and turns recurring
ones into short advisory sentences for the reasoning prompt. The sentences
never change the numeric decision.
"""
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from sqlalchemy import desc, func
from sqlalchemy.orm import Session

from app.models.inventory import Item
from app.models.recommendation import RecommendationOverride

logger = logging.getLogger(__name__)


# How many overrides to look back over
HISTORY_LIMIT = 100

UNCATEGORIZED = "uncategorized"

RETENTION_OUTCOMES = frozenset({"keep", "accessible", "storage"})
DISPOSAL_OUTCOMES = frozenset({"sell", "donate", "discard"})


@dataclass(frozen=True)
class TransitionRule:
    """Emit a pattern when enough overrides go from one outcome set to another."""
    suggested: FrozenSet[str]
    chosen: FrozenSet[str]
    min_count: int
    pattern: str

    def count(self, records: Iterable[Any]) -> int:
        return sum(
            1 for r in records
            if r.ai_suggestion in self.suggested and r.user_choice in self.chosen
        )


TRANSITION_RULES = (
    TransitionRule(
        suggested=DISPOSAL_OUTCOMES,
        chosen=frozenset({"keep"}),
        min_count=3,
        pattern="User tends to keep items even when AI suggests letting go",
    ),
    TransitionRule(
        suggested=RETENTION_OUTCOMES,
        chosen=frozenset({"discard", "donate"}),
        min_count=3,
        pattern="User is more aggressive than AI suggests about discarding",
    ),
    TransitionRule(
        suggested=frozenset({"sell"}),
        chosen=frozenset({"donate"}),
        min_count=2,
        pattern="User prefers donating over selling",
    ),
    TransitionRule(
        suggested=frozenset({"donate"}),
        chosen=frozenset({"sell"}),
        min_count=2,
        pattern="User prefers selling over donating",
    ),
)

# Per-category rules need at least this many overrides in the category
CATEGORY_MIN_RECORDS = 3
# and strictly more than this share ending in the chosen set
CATEGORY_SHARE_THRESHOLD = 0.7

CATEGORY_RULES = (
    (frozenset({"keep"}), "User keeps most {category} items regardless of AI suggestion"),
    (DISPOSAL_OUTCOMES, "User consistently removes {category} items"),
)


@dataclass
class CategoryStats:
    """Override counts for one item category."""
    total: int = 0
    # "suggested->chosen" -> count
    overrides: Dict[str, int] = field(default_factory=dict)

    def share_ending_in(self, outcomes: FrozenSet[str]) -> float:
        if not self.total:
            return 0.0
        hits = sum(
            count for key, count in self.overrides.items()
            if key.split("->", 1)[-1] in outcomes
        )
        return hits / self.total


@dataclass
class PatternSummary:
    """Result of mining a user's override history."""
    total: int = 0
    by_category: Dict[str, CategoryStats] = field(default_factory=dict)
    patterns: List[str] = field(default_factory=list)
    override_rate: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON response."""
        return {
            "total": self.total,
            "by_category": {
                cat: {"total": stats.total, "overrides": stats.overrides}
                for cat, stats in self.by_category.items()
            },
            "patterns": self.patterns,
            "override_rate": self.override_rate,
        }


def compute_override_rate(total_overrides: int, items_with_recommendation: int) -> int:
    """
    Percentage of recommended items the user overrode.

    The denominator is at least 1 and the result is clamped to 100, since
    items can be deleted after their override was logged.
    """
    denominator = max(1, items_with_recommendation)
    rate = math.floor(100 * total_overrides / denominator + 0.5)
    return max(0, min(100, rate))


def mine_patterns(records: List[Any], items_with_recommendation: int) -> PatternSummary:
    """
    Derive behavioral patterns from override records.

    Args:
        records: Override rows (newest first), anything exposing
            item_category, ai_suggestion and user_choice
        items_with_recommendation: Count of the user's items that received a
            recommendation

    Returns:
        PatternSummary
    """
    total = len(records)
    if total == 0:
        return PatternSummary()

    by_category: Dict[str, CategoryStats] = {}
    for record in records:
        category = record.item_category or UNCATEGORIZED
        stats = by_category.setdefault(category, CategoryStats())
        stats.total += 1
        key = f"{record.ai_suggestion}->{record.user_choice}"
        stats.overrides[key] = stats.overrides.get(key, 0) + 1

    patterns: List[str] = []
    for rule in TRANSITION_RULES:
        if rule.count(records) >= rule.min_count:
            patterns.append(rule.pattern)

    for category, stats in by_category.items():
        if stats.total < CATEGORY_MIN_RECORDS:
            continue
        for outcomes, template in CATEGORY_RULES:
            if stats.share_ending_in(outcomes) > CATEGORY_SHARE_THRESHOLD:
                patterns.append(template.format(category=category))

    return PatternSummary(
        total=total,
        by_category=by_category,
        patterns=patterns,
        override_rate=compute_override_rate(total, items_with_recommendation),
    )


def get_recent_overrides(db: Session, user_id: int, limit: int = HISTORY_LIMIT) -> List[RecommendationOverride]:
    """Most recent overrides for a user, newest first."""
    return db.query(RecommendationOverride).filter(
        RecommendationOverride.user_id == user_id
    ).order_by(
        desc(RecommendationOverride.created_at),
        desc(RecommendationOverride.id)
    ).limit(limit).all()


def count_items_with_recommendation(db: Session, user_id: int) -> int:
    """Number of the user's items that have a stored recommendation."""
    return db.query(func.count(Item.id)).filter(
        Item.user_id == user_id,
        Item.recommendation.isnot(None)
    ).scalar() or 0


def get_user_patterns(db: Session, user_id: int) -> PatternSummary:
    """Mine the user's recent override history."""
    records = get_recent_overrides(db, user_id)
    if not records:
        return PatternSummary()

    summary = mine_patterns(records, count_items_with_recommendation(db, user_id))
    logger.debug(
        f"Mined {len(summary.patterns)} patterns from {summary.total} overrides for user {user_id}"
    )
    return summary


def log_override(
    db: Session,
    user_id: int,
    item_id: int,
    item_category: Optional[str],
    ai_suggestion: str,
    user_choice: str,
    override_reason: Optional[str] = None,
) -> RecommendationOverride:
    """
    Append one override record.

    Args:
        db: Database session
        user_id: User ID
        item_id: Item the user decided on
        item_category: Category slug at the time of the override
        ai_suggestion: Outcome the engine suggested
        user_choice: Outcome the user chose instead
        override_reason: Optional free-text reason

    Returns:
        The stored RecommendationOverride
    """
    override = RecommendationOverride(
        user_id=user_id,
        item_id=item_id,
        item_category=item_category,
        ai_suggestion=ai_suggestion,
        user_choice=user_choice,
        override_reason=override_reason,
        created_at=datetime.now(timezone.utc),
    )
    db.add(override)
    db.commit()
    db.refresh(override)
    return override
