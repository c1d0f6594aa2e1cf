"""Rule-based recommendation scoring with strategies and A/B selection.

Each evaluation answer contributes points to one or more outcomes according
to a weight table. The active strategy scales each dimension's contribution,
the outcome with the highest total wins, and near-ties are settled by a fixed
preference order. Identical inputs always produce the identical result.
"""
import copy
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from app.errors import InvalidAnswerError

logger = logging.getLogger(__name__)


OUTCOMES: Tuple[str, ...] = ("keep", "accessible", "storage", "sell", "donate", "discard")

DIMENSIONS: Tuple[str, ...] = ("usage", "sentimental", "condition", "value", "replaceability", "space")

# Older clients post the evaluation form field names
ANSWER_ALIASES = {
    "used": "usage",
    "replace": "replaceability",
}

# dimension -> answer -> outcome -> points
DEFAULT_WEIGHTS: Dict[str, Dict[str, Dict[str, float]]] = {
    "usage": {
        "yes": {"keep": 3, "accessible": 2},
        "rarely": {"storage": 2, "accessible": 1},
        "no": {"donate": 2, "sell": 1, "discard": 1},
    },
    "sentimental": {
        "high": {"keep": 3, "storage": 2},
        "some": {"keep": 1, "storage": 2},
        "none": {"sell": 1, "donate": 1},
    },
    "condition": {
        "excellent": {"keep": 1, "sell": 2, "donate": 1},
        "good": {"keep": 1, "sell": 2, "donate": 1},
        "fair": {"donate": 2, "discard": 1},
        "poor": {"discard": 3},
    },
    "value": {
        "high": {"keep": 2, "sell": 3},
        "medium": {"sell": 2, "donate": 1},
        "low": {"donate": 2, "discard": 1},
    },
    "replaceability": {
        "difficult": {"keep": 2, "storage": 2},
        "moderate": {"storage": 1},
        "easy": {"donate": 1, "discard": 1},
    },
    "space": {
        "yes": {"keep": 2, "accessible": 3},
        "limited": {"storage": 2},
        "no": {"storage": 1, "sell": 1, "donate": 1},
    },
}

DEFAULT_THRESHOLDS: Dict[str, Any] = {
    "minimumScoreDifference": 2,
    "tieBreakOrder": ["keep", "accessible", "storage", "sell", "donate", "discard"],
}

DEFAULT_STRATEGIES: Dict[str, Any] = {
    "active": "balanced",
    "abTestEnabled": False,
    "abTestPercentage": 50,
    "abTestAlternate": None,
    "strategies": {
        "balanced": {
            "name": "Balanced",
            "description": "Equal consideration of all factors",
            "multipliers": {"usage": 1, "sentimental": 1, "condition": 1, "value": 1, "replaceability": 1, "space": 1},
        },
        "minimalist": {
            "name": "Minimalist",
            "description": "Favors letting go of items",
            "multipliers": {"usage": 1.5, "sentimental": 0.5, "condition": 1, "value": 0.8, "replaceability": 0.7, "space": 1.5},
        },
        "sentimental": {
            "name": "Sentimental",
            "description": "Prioritizes emotional attachment",
            "multipliers": {"usage": 0.8, "sentimental": 2, "condition": 0.8, "value": 0.5, "replaceability": 1.5, "space": 0.7},
        },
        "practical": {
            "name": "Practical",
            "description": "Focuses on usage and condition",
            "multipliers": {"usage": 2, "sentimental": 0.5, "condition": 1.5, "value": 1, "replaceability": 1, "space": 1.2},
        },
        "financial": {
            "name": "Financial",
            "description": "Maximizes monetary value recovery",
            "multipliers": {"usage": 0.8, "sentimental": 0.5, "condition": 1.5, "value": 2, "replaceability": 0.8, "space": 0.8},
        },
    },
}

VARIANT_A = "A"
VARIANT_B = "B"


@dataclass(frozen=True)
class StrategyDefinition:
    """A named multiplier set, optionally with its own weight table."""
    key: str
    name: str
    description: str = ""
    multipliers: Mapping[str, float] = field(default_factory=dict)
    weights: Optional[Mapping[str, Mapping[str, Mapping[str, float]]]] = None

    def multiplier(self, dimension: str) -> float:
        """Multiplier for a dimension; dimensions left out count once."""
        value = self.multipliers.get(dimension, 1)
        try:
            return float(value)
        except (TypeError, ValueError):
            logger.warning(f"Non-numeric multiplier {value!r} for {dimension} in strategy '{self.key}'")
            return 1.0


IDENTITY_STRATEGY = StrategyDefinition(
    key="balanced",
    name="Balanced",
    description="Equal consideration of all factors",
    multipliers={d: 1 for d in DIMENSIONS},
)


def _as_number(value: Any) -> Optional[float]:
    """Float value of a numeric setting, or None when it is not a number."""
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def _as_key(value: Any) -> Optional[str]:
    """Strategy key from a setting; non-string values read as unset."""
    return value if isinstance(value, str) and value else None


def clean_weights(raw: Any, source: str) -> Dict[str, Dict[str, Dict[str, float]]]:
    """
    Keep the well-formed part of a weight table.

    A usable table maps dimension -> answer -> outcome -> number. Entries at
    any level with the wrong shape are dropped with a warning. A dimension left
    without answers is removed.

    Args:
        raw: Stored weight table
        source: Where the table came from, for log messages

    Returns:
        The cleaned table, possibly empty
    """
    if not isinstance(raw, dict):
        if raw is not None:
            logger.warning(f"Ignoring {source}: expected an object, got {type(raw).__name__}")
        return {}

    cleaned: Dict[str, Dict[str, Dict[str, float]]] = {}
    for dimension, answers in raw.items():
        if not isinstance(answers, dict):
            logger.warning(f"Ignoring {source}.{dimension}: expected an object of answers")
            continue
        table: Dict[str, Dict[str, float]] = {}
        for answer, points in answers.items():
            if not isinstance(points, dict):
                logger.warning(f"Ignoring {source}.{dimension}.{answer}: expected an object of outcome points")
                continue
            numeric = {}
            for outcome, amount in points.items():
                number = _as_number(amount)
                if number is None:
                    logger.warning(f"Ignoring {source}.{dimension}.{answer}.{outcome}: {amount!r} is not a number")
                    continue
                numeric[outcome] = number
            table[answer] = numeric
        if table:
            cleaned[dimension] = table
    return cleaned


def clean_multipliers(raw: Any, strategy_key: str) -> Dict[str, float]:
    """Numeric multipliers of a strategy; anything else is dropped with a warning."""
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        logger.warning(f"Ignoring multipliers of strategy '{strategy_key}': expected an object")
        return {}
    multipliers = {}
    for dimension, value in raw.items():
        number = _as_number(value)
        if number is None:
            logger.warning(f"Ignoring multiplier {value!r} for {dimension} in strategy '{strategy_key}'")
            continue
        multipliers[dimension] = number
    return multipliers


def assign_variant(user_id: int, ab_test_percentage: float) -> str:
    """
    Deterministically bucket a user into an A/B variant.

    Users whose ``user_id mod 100`` is at or above the percentage land in B.

    Args:
        user_id: Numeric user id
        ab_test_percentage: Share of users (0-100) kept on variant A

    Returns:
        "A" or "B"
    """
    return VARIANT_B if int(user_id) % 100 >= ab_test_percentage else VARIANT_A


@dataclass(frozen=True)
class RecommendationStrategy:
    """
    Immutable snapshot of the scoring configuration.

    Attributes:
        weights: dimension -> answer -> outcome -> points
        minimum_score_difference: Winning margin needed to skip the tie-break
        tie_break_order: Preference list used when the margin is too small
        active: Key of the default strategy
        strategies: All named strategies by key
        ab_test_enabled: Whether users are split between two strategies
        ab_test_percentage: Share of users (0-100) kept on the active strategy
        ab_test_alternate: Strategy key used for variant B
        version: Combined settings version the snapshot was read from
    """
    weights: Mapping[str, Mapping[str, Mapping[str, float]]]
    minimum_score_difference: float
    tie_break_order: Tuple[str, ...]
    active: str
    strategies: Mapping[str, StrategyDefinition]
    ab_test_enabled: bool = False
    ab_test_percentage: float = 50
    ab_test_alternate: Optional[str] = None
    version: int = 0

    @classmethod
    def default(cls) -> "RecommendationStrategy":
        """Build the snapshot from the built-in defaults."""
        return cls.from_settings(None, None, None)

    @classmethod
    def from_settings(
        cls,
        weights: Optional[Dict[str, Any]],
        thresholds: Optional[Dict[str, Any]],
        strategies: Optional[Dict[str, Any]],
        version: int = 0,
    ) -> "RecommendationStrategy":
        """
        Build a snapshot from the three stored configuration blobs.

        Missing or malformed blobs fall back to the defaults so a broken admin
        edit degrades scoring instead of failing it.

        Args:
            weights: recommendation_weights blob
            thresholds: recommendation_thresholds blob
            strategies: recommendation_strategies blob
            version: Settings version to carry along

        Returns:
            RecommendationStrategy snapshot
        """
        cleaned_weights = clean_weights(weights, "recommendation_weights")
        if not cleaned_weights:
            cleaned_weights = copy.deepcopy(DEFAULT_WEIGHTS)
        if not isinstance(thresholds, dict):
            thresholds = DEFAULT_THRESHOLDS
        if not isinstance(strategies, dict):
            strategies = DEFAULT_STRATEGIES

        min_diff = _as_number(thresholds.get("minimumScoreDifference", DEFAULT_THRESHOLDS["minimumScoreDifference"]))
        if min_diff is None:
            logger.warning(
                f"Invalid minimumScoreDifference {thresholds.get('minimumScoreDifference')!r}, using default"
            )
            min_diff = float(DEFAULT_THRESHOLDS["minimumScoreDifference"])

        order = thresholds.get("tieBreakOrder") or DEFAULT_THRESHOLDS["tieBreakOrder"]
        if not isinstance(order, (list, tuple)):
            logger.warning(f"Invalid tieBreakOrder {order!r}, using default")
            order = DEFAULT_THRESHOLDS["tieBreakOrder"]
        order = tuple(o for o in order if isinstance(o, str) and o in OUTCOMES)

        raw_definitions = strategies.get("strategies")
        if raw_definitions is None:
            raw_definitions = {}
        if not isinstance(raw_definitions, dict):
            logger.warning("Invalid strategies list in recommendation_strategies, using default strategies")
            raw_definitions = DEFAULT_STRATEGIES["strategies"]

        definitions: Dict[str, StrategyDefinition] = {}
        for key, raw in raw_definitions.items():
            if not isinstance(raw, dict):
                logger.warning(f"Ignoring strategy '{key}': expected an object")
                continue
            own_weights = clean_weights(raw.get("weights"), f"strategies.{key}.weights")
            definitions[key] = StrategyDefinition(
                key=key,
                name=str(raw.get("name") or key),
                description=str(raw.get("description") or ""),
                multipliers=clean_multipliers(raw.get("multipliers"), key),
                weights=own_weights or None,
            )

        percentage = _as_number(strategies.get("abTestPercentage", 50))
        if percentage is None:
            percentage = 50.0

        return cls(
            weights=cleaned_weights,
            minimum_score_difference=min_diff,
            tie_break_order=order,
            active=_as_key(strategies.get("active")) or "balanced",
            strategies=definitions,
            ab_test_enabled=bool(strategies.get("abTestEnabled", False)),
            ab_test_percentage=percentage,
            ab_test_alternate=_as_key(strategies.get("abTestAlternate")),
            version=version,
        )

    def get_strategy(self, key: Optional[str]) -> StrategyDefinition:
        """Look up a strategy; unknown keys fall back to identity multipliers."""
        if key and key in self.strategies:
            return self.strategies[key]
        if key:
            logger.warning(f"Strategy '{key}' not configured, using identity multipliers")
        return IDENTITY_STRATEGY

    def strategy_for_user(self, user_id: Optional[int]) -> Tuple[StrategyDefinition, str]:
        """
        Resolve the strategy that applies to a user.

        Args:
            user_id: Numeric user id, or None for anonymous scoring

        Returns:
            Tuple of (strategy, variant)
        """
        if not self.ab_test_enabled or user_id is None:
            return self.get_strategy(self.active), VARIANT_A

        variant = assign_variant(user_id, self.ab_test_percentage)
        if variant == VARIANT_B:
            alternate = self.ab_test_alternate or self.active
            if alternate not in self.strategies:
                logger.warning(f"A/B alternate strategy '{alternate}' missing, using '{self.active}'")
                alternate = self.active
            return self.get_strategy(alternate), VARIANT_B
        return self.get_strategy(self.active), VARIANT_A


@dataclass
class ScoreResult:
    """Outcome of one scoring run."""
    outcome: str
    scores: Dict[str, float]
    ranking: List[str]
    margin: float
    decided_by: str  # "score" or "tie_break"
    strategy: str
    variant: str
    invalid_answers: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON response."""
        return {
            "outcome": self.outcome,
            "scores": self.scores,
            "ranking": self.ranking,
            "margin": self.margin,
            "decided_by": self.decided_by,
            "strategy": self.strategy,
            "variant": self.variant,
            "invalid_answers": self.invalid_answers,
        }


def normalize_answers(answers: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    """
    Map raw answers onto the six dimensions.

    Accepts legacy field names, lowercases values and drops empty ones.
    """
    normalized: Dict[str, str] = {}
    for raw_key, raw_value in (answers or {}).items():
        key = ANSWER_ALIASES.get(raw_key, raw_key)
        if key not in DIMENSIONS:
            continue
        if raw_value is None:
            continue
        value = str(raw_value).strip().lower()
        if value:
            normalized[key] = value
    return normalized


class ScoringEngine:
    """Deterministic weighted-vote scoring over the six outcomes."""

    def __init__(self, strategy: Optional[RecommendationStrategy] = None):
        self.strategy = strategy or RecommendationStrategy.default()

    def _tie_rank(self, outcome: str) -> int:
        order = self.strategy.tie_break_order
        if outcome in order:
            return order.index(outcome)
        return len(order) + OUTCOMES.index(outcome)

    def score(
        self,
        answers: Optional[Mapping[str, Any]],
        definition: Optional[StrategyDefinition] = None,
        strict: bool = False,
    ) -> Tuple[Dict[str, float], List[str]]:
        """
        Compute the per-outcome score map.

        Args:
            answers: Raw answer mapping
            definition: Strategy to apply (defaults to the active one)
            strict: Raise InvalidAnswerError instead of skipping unknown answers

        Returns:
            Tuple of (scores, invalid_dimensions)
        """
        definition = definition or self.strategy.get_strategy(self.strategy.active)
        weights = definition.weights or self.strategy.weights
        scores: Dict[str, float] = {outcome: 0.0 for outcome in OUTCOMES}
        invalid: List[str] = []

        for dimension, value in normalize_answers(answers).items():
            table = weights.get(dimension) or {}
            points = table.get(value)
            if points is None:
                error = InvalidAnswerError(dimension, value)
                if strict:
                    raise error
                logger.warning(
                    f"Data quality: {error.message}; contributing zero",
                    extra={'extra_fields': {'dimension': dimension, 'value': value}}
                )
                invalid.append(dimension)
                continue

            multiplier = definition.multiplier(dimension)
            for outcome, amount in points.items():
                if outcome in scores:
                    scores[outcome] += float(amount) * multiplier

        # Multipliers like 0.7 leave float noise that would break exact ties
        return {k: round(v, 6) for k, v in scores.items()}, invalid

    def evaluate(
        self,
        answers: Optional[Mapping[str, Any]],
        user_id: Optional[int] = None,
        strict: bool = False,
    ) -> ScoreResult:
        """
        Score answers and pick an outcome.

        The top outcome wins outright when it leads the runner-up by at least
        minimum_score_difference. Otherwise every outcome within that margin of
        the top score is a contender and the one earliest in tie_break_order is
        returned. Negative contenders are dropped while a non-negative one
        remains.

        Args:
            answers: Raw answer mapping
            user_id: Used for A/B bucketing when enabled
            strict: Raise InvalidAnswerError for unknown answers

        Returns:
            ScoreResult
        """
        definition, variant = self.strategy.strategy_for_user(user_id)
        scores, invalid = self.score(answers, definition, strict=strict)

        ranking = sorted(OUTCOMES, key=lambda o: (-scores[o], self._tie_rank(o)))
        top, runner_up = ranking[0], ranking[1]
        margin = round(scores[top] - scores[runner_up], 6)
        min_diff = self.strategy.minimum_score_difference

        if margin >= min_diff:
            outcome, decided_by = top, "score"
        else:
            top_score = scores[top]
            contenders = [o for o in OUTCOMES if top_score - scores[o] < min_diff]
            non_negative = [o for o in contenders if scores[o] >= 0]
            if non_negative:
                contenders = non_negative
            outcome = min(contenders, key=self._tie_rank)
            decided_by = "tie_break"

        logger.debug(
            f"Scored answers: outcome={outcome} by {decided_by}, strategy={definition.key}, variant={variant}"
        )

        return ScoreResult(
            outcome=outcome,
            scores=scores,
            ranking=ranking,
            margin=margin,
            decided_by=decided_by,
            strategy=definition.key,
            variant=variant,
            invalid_answers=invalid,
        )
