"""Monthly spend ledger for vendor calls.

Every call attempt appends one ApiUsageLog row. Calls paid with the system's
own credentials count against two ceilings for the current UTC calendar month:
a system-wide total and a per-user share. Calls made with a user's own key are
recorded for reporting but never count.

The ceiling check reads the month's totals and the call is made afterwards,
so concurrent requests can each pass the check and together overshoot a
ceiling by the cost of the calls in flight. The limits are soft.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.errors import QuotaExceededError
from app.models.usage import ApiUsageLog
from app.services.llm.registry import calculate_cost
from app.services.system_config import UsageLimits

logger = logging.getLogger(__name__)


MONTHLY_LIMIT_REASON = "Monthly system limit reached"
PER_USER_LIMIT_REASON = "Your monthly usage limit reached"


@dataclass(frozen=True)
class UsageCheck:
    """Outcome of a ceiling check."""
    allowed: bool
    total_cost: float
    user_cost: float
    monthly_limit: float
    per_user_limit: float
    reason: Optional[str] = None


def month_start(now: Optional[datetime] = None) -> datetime:
    """First instant of the current UTC calendar month."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    now = now.astimezone(timezone.utc)
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def get_monthly_costs(db: Session, user_id: int, now: Optional[datetime] = None) -> Tuple[float, float]:
    """
    Month-to-date system-funded spend.

    Returns:
        Tuple of (system_total, user_total) in USD
    """
    since = month_start(now)
    base = db.query(func.coalesce(func.sum(ApiUsageLog.estimated_cost), 0.0)).filter(
        ApiUsageLog.created_at >= since,
        ApiUsageLog.used_user_key.is_(False)
    )
    total = base.scalar() or 0.0
    user_total = base.filter(ApiUsageLog.user_id == user_id).scalar() or 0.0
    return float(total), float(user_total)


def check_usage_limits(
    db: Session,
    user_id: int,
    limits: UsageLimits,
    now: Optional[datetime] = None,
) -> UsageCheck:
    """
    Compare month-to-date spend with the ceilings.

    A ceiling is reached when spend is equal to or above it.
    """
    total, user_total = get_monthly_costs(db, user_id, now)

    reason = None
    if total >= limits.monthly_limit:
        reason = MONTHLY_LIMIT_REASON
    elif user_total >= limits.per_user_limit:
        reason = PER_USER_LIMIT_REASON

    return UsageCheck(
        allowed=reason is None,
        total_cost=total,
        user_cost=user_total,
        monthly_limit=limits.monthly_limit,
        per_user_limit=limits.per_user_limit,
        reason=reason,
    )


def ensure_within_limits(
    db: Session,
    user_id: int,
    limits: UsageLimits,
    now: Optional[datetime] = None,
) -> UsageCheck:
    """
    Check the ceilings and raise when either is reached.

    Raises:
        QuotaExceededError: With the month's figures and the reason
    """
    check = check_usage_limits(db, user_id, limits, now)
    if not check.allowed:
        logger.warning(
            f"Usage limit hit for user {user_id}: {check.reason}",
            extra={'extra_fields': {
                'user_id': user_id,
                'total_cost': check.total_cost,
                'user_cost': check.user_cost,
            }}
        )
        raise QuotaExceededError(
            reason=check.reason,
            total_cost=check.total_cost,
            user_cost=check.user_cost,
            monthly_limit=check.monthly_limit,
            per_user_limit=check.per_user_limit,
        )
    return check


def record_usage(
    db: Session,
    user_id: int,
    endpoint: str,
    provider: str,
    model: str,
    input_tokens: int = 0,
    output_tokens: int = 0,
    success: bool = True,
    error_message: Optional[str] = None,
    used_user_key: bool = False,
) -> ApiUsageLog:
    """
    Append one usage record with its estimated cost.

    Args:
        db: Database session
        user_id: Caller
        endpoint: API path that triggered the call
        provider: Vendor id
        model: Model name reported for the call
        input_tokens: Prompt tokens (0 for failed calls)
        output_tokens: Completion tokens (0 for failed calls)
        success: Whether the vendor call succeeded
        error_message: Failure description
        used_user_key: Whether the user's own credential paid for the call

    Returns:
        The stored ApiUsageLog
    """
    cost = calculate_cost(provider, input_tokens, output_tokens)
    entry = ApiUsageLog(
        user_id=user_id,
        endpoint=endpoint,
        provider=provider,
        model=model or "",
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        estimated_cost=cost,
        success=success,
        error_message=error_message[:1000] if error_message else None,
        used_user_key=used_user_key,
        created_at=datetime.now(timezone.utc),
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)

    logger.info(
        f"API usage: {provider}/{entry.model} {endpoint} success={success} cost=${cost:.6f}",
        extra={'extra_fields': {
            'user_id': user_id,
            'provider': provider,
            'input_tokens': input_tokens,
            'output_tokens': output_tokens,
            'used_user_key': used_user_key,
        }}
    )
    return entry


def get_monthly_usage_summary(
    db: Session,
    user_id: int,
    limits: UsageLimits,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Month-to-date usage for a user plus the system-wide spend.

    Args:
        db: Database session
        user_id: User ID
        limits: Ceilings in force
        now: Reference time (defaults to now)

    Returns:
        Dictionary with call counts, costs and remaining budget
    """
    since = month_start(now)
    row = db.query(
        func.count(ApiUsageLog.id),
        func.coalesce(func.sum(ApiUsageLog.input_tokens), 0),
        func.coalesce(func.sum(ApiUsageLog.output_tokens), 0),
    ).filter(
        ApiUsageLog.user_id == user_id,
        ApiUsageLog.created_at >= since
    ).one()
    calls, input_tokens, output_tokens = row

    failed = db.query(func.count(ApiUsageLog.id)).filter(
        ApiUsageLog.user_id == user_id,
        ApiUsageLog.created_at >= since,
        ApiUsageLog.success.is_(False)
    ).scalar() or 0

    own_key_calls = db.query(func.count(ApiUsageLog.id)).filter(
        ApiUsageLog.user_id == user_id,
        ApiUsageLog.created_at >= since,
        ApiUsageLog.used_user_key.is_(True)
    ).scalar() or 0

    total, user_total = get_monthly_costs(db, user_id, now)

    return {
        "month_start": since.isoformat(),
        "calls": calls or 0,
        "failed_calls": failed,
        "own_key_calls": own_key_calls,
        "input_tokens": int(input_tokens or 0),
        "output_tokens": int(output_tokens or 0),
        "user_cost": round(user_total, 6),
        "per_user_limit": limits.per_user_limit,
        "user_remaining": round(max(0.0, limits.per_user_limit - user_total), 6),
        "total_cost": round(total, 6),
        "monthly_limit": limits.monthly_limit,
    }
