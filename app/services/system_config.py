"""Runtime configuration read from the system_settings table.

Admin edits land in ``system_settings``. Each request loads them once into an
immutable SystemConfig, so a single evaluation never sees a half-applied
change.
"""
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.inventory import Category
from app.models.recommendation import SystemSetting
from app.services.scoring import RecommendationStrategy
from app.settings import settings

logger = logging.getLogger(__name__)


# Setting keys
WEIGHTS_KEY = "recommendation_weights"
THRESHOLDS_KEY = "recommendation_thresholds"
STRATEGIES_KEY = "recommendation_strategies"
MONTHLY_LIMIT_KEY = "api_monthly_cost_limit"
PER_USER_LIMIT_KEY = "api_per_user_monthly_limit"
PROVIDER_KEY = "llm_provider"
OLLAMA_BASE_URL_KEY = "ollama_base_url"
ANALYSIS_PROMPT_KEY = "analysis_prompt"

# vendor id -> stored system key setting
API_KEY_SETTINGS = {
    "anthropic": "anthropic_api_key",
    "openai": "openai_api_key",
    "google": "google_api_key",
}

STRATEGY_KEYS = (WEIGHTS_KEY, THRESHOLDS_KEY, STRATEGIES_KEY)


@dataclass(frozen=True)
class UsageLimits:
    """Monthly spend ceilings in USD for system-funded calls."""
    monthly_limit: float
    per_user_limit: float


@dataclass(frozen=True)
class ProviderSettings:
    """System-level vendor selection and credentials."""
    default_provider: Optional[str] = None
    api_keys: Mapping[str, str] = field(default_factory=dict)
    ollama_base_url: Optional[str] = None

    def system_key(self, provider_id: str) -> Optional[str]:
        """Stored system key for a vendor, falling back to the environment."""
        stored = self.api_keys.get(provider_id)
        if stored and stored.strip():
            return stored.strip()
        return settings.env_api_key(provider_id)

    def base_url(self) -> str:
        """Ollama base URL: stored setting, then environment default."""
        if self.ollama_base_url and self.ollama_base_url.strip():
            return self.ollama_base_url.strip()
        return settings.OLLAMA_BASE_URL


@dataclass(frozen=True)
class SystemConfig:
    """Immutable snapshot of all runtime settings for one request."""
    strategy: RecommendationStrategy
    limits: UsageLimits
    providers: ProviderSettings
    analysis_prompt: Optional[str] = None

    @classmethod
    def defaults(cls) -> "SystemConfig":
        """Snapshot built only from built-in and environment defaults."""
        return cls(
            strategy=RecommendationStrategy.default(),
            limits=UsageLimits(
                monthly_limit=settings.API_MONTHLY_COST_LIMIT,
                per_user_limit=settings.API_PER_USER_MONTHLY_LIMIT,
            ),
            providers=ProviderSettings(),
        )


def _parse_json(raw: Optional[str], key: str) -> Optional[Dict[str, Any]]:
    """Decode a JSON setting; malformed values are logged and ignored."""
    if not raw:
        return None
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning(f"Setting '{key}' is not valid JSON, using defaults")
        return None
    if not isinstance(value, dict):
        logger.warning(f"Setting '{key}' is not a JSON object, using defaults")
        return None
    return value


def _parse_float(raw: Optional[str], default: float, key: str) -> float:
    if raw is None or not str(raw).strip():
        return default
    try:
        value = float(raw)
    except (TypeError, ValueError):
        logger.warning(f"Setting '{key}' is not a number ({raw!r}), using {default}")
        return default
    if value < 0:
        logger.warning(f"Setting '{key}' is negative ({value}), using {default}")
        return default
    return value


def get_setting_rows(db: Session) -> Dict[str, SystemSetting]:
    """All system settings keyed by setting_key."""
    return {row.setting_key: row for row in db.query(SystemSetting).all()}


def load_system_config(db: Session) -> SystemConfig:
    """
    Read every runtime setting into an immutable snapshot.

    Missing or malformed rows fall back to built-in defaults; a failing
    settings query degrades to the defaults as a whole.

    Args:
        db: Database session

    Returns:
        SystemConfig
    """
    try:
        rows = get_setting_rows(db)
    except SQLAlchemyError as e:
        logger.warning(f"Could not read system settings, using defaults: {e}")
        db.rollback()
        return SystemConfig.defaults()

    def value(key: str) -> Optional[str]:
        row = rows.get(key)
        return row.setting_value if row is not None else None

    version = sum(rows[k].version or 0 for k in STRATEGY_KEYS if k in rows)
    strategy = RecommendationStrategy.from_settings(
        _parse_json(value(WEIGHTS_KEY), WEIGHTS_KEY),
        _parse_json(value(THRESHOLDS_KEY), THRESHOLDS_KEY),
        _parse_json(value(STRATEGIES_KEY), STRATEGIES_KEY),
        version=version,
    )

    limits = UsageLimits(
        monthly_limit=_parse_float(value(MONTHLY_LIMIT_KEY), settings.API_MONTHLY_COST_LIMIT, MONTHLY_LIMIT_KEY),
        per_user_limit=_parse_float(value(PER_USER_LIMIT_KEY), settings.API_PER_USER_MONTHLY_LIMIT, PER_USER_LIMIT_KEY),
    )

    api_keys = {
        provider_id: value(key)
        for provider_id, key in API_KEY_SETTINGS.items()
        if value(key)
    }
    providers = ProviderSettings(
        default_provider=(value(PROVIDER_KEY) or "").strip() or None,
        api_keys=api_keys,
        ollama_base_url=value(OLLAMA_BASE_URL_KEY),
    )

    prompt = value(ANALYSIS_PROMPT_KEY)
    return SystemConfig(
        strategy=strategy,
        limits=limits,
        providers=providers,
        analysis_prompt=prompt if prompt and prompt.strip() else None,
    )


def save_setting(db: Session, key: str, value: Any) -> SystemSetting:
    """
    Create or update a setting and bump its version.

    Dicts and lists are stored as JSON text.

    Args:
        db: Database session
        key: Setting key
        value: New value

    Returns:
        The stored SystemSetting
    """
    if isinstance(value, (dict, list)):
        value = json.dumps(value)
    elif value is not None:
        value = str(value)

    row = db.query(SystemSetting).filter(SystemSetting.setting_key == key).first()
    now = datetime.now(timezone.utc)
    if row is None:
        row = SystemSetting(setting_key=key, setting_value=value, version=1, updated_at=now)
        db.add(row)
    else:
        row.setting_value = value
        row.version = (row.version or 0) + 1
        row.updated_at = now

    db.commit()
    db.refresh(row)
    logger.info(f"System setting '{key}' saved (version {row.version})")
    return row


def get_category_vocabulary(db: Session) -> List[str]:
    """Category slugs in display order."""
    rows = db.query(Category.slug).order_by(Category.sort_order.asc(), Category.name.asc()).all()
    return [r[0] for r in rows]


def get_default_category(db: Session) -> str:
    """Slug of the category flagged as default, else the configured fallback."""
    row = db.query(Category.slug).filter(Category.is_default.is_(True)).first()
    return row[0] if row else settings.DEFAULT_CATEGORY
