"""System settings snapshot tests."""
from dataclasses import FrozenInstanceError

import pytest

from app.models import SystemSetting
from app.services.system_config import (
    ProviderSettings,
    SystemConfig,
    get_category_vocabulary,
    get_default_category,
    load_system_config,
    save_setting,
)
from app.settings import settings


def test_defaults_when_table_empty(db_session):
    config = load_system_config(db_session)

    assert config.strategy.active == "balanced"
    assert config.strategy.version == 0
    assert config.limits.monthly_limit == settings.API_MONTHLY_COST_LIMIT
    assert config.limits.per_user_limit == settings.API_PER_USER_MONTHLY_LIMIT
    assert config.providers.default_provider is None
    assert config.analysis_prompt is None


def test_save_setting_creates_and_bumps_version(db_session):
    row = save_setting(db_session, "recommendation_thresholds", {"minimumScoreDifference": 3})
    assert row.version == 1
    assert row.setting_value == '{"minimumScoreDifference": 3}'

    row = save_setting(db_session, "recommendation_thresholds", {"minimumScoreDifference": 1})
    assert row.version == 2

    config = load_system_config(db_session)
    assert config.strategy.minimum_score_difference == 1
    assert config.strategy.version == 2


def test_version_sums_strategy_rows(db_session):
    save_setting(db_session, "recommendation_weights", {"usage": {"no": {"discard": 5}}})
    save_setting(db_session, "recommendation_strategies", {"active": "minimalist", "strategies": {}})
    save_setting(db_session, "recommendation_strategies", {"active": "balanced", "strategies": {}})

    assert load_system_config(db_session).strategy.version == 3


def test_malformed_json_falls_back(db_session):
    db_session.add(SystemSetting(setting_key="recommendation_strategies", setting_value="{not json", version=1))
    db_session.add(SystemSetting(setting_key="recommendation_weights", setting_value="[1, 2]", version=1))
    db_session.commit()

    config = load_system_config(db_session)

    assert config.strategy.active == "balanced"
    assert "minimalist" in config.strategy.strategies
    assert "usage" in config.strategy.weights


def test_malformed_nested_settings_fall_back(db_session):
    save_setting(db_session, "recommendation_strategies", {"strategies": ["balanced"]})
    save_setting(db_session, "recommendation_weights", {"usage": {"yes": 5}})

    config = load_system_config(db_session)

    assert config.strategy.active == "balanced"
    assert "minimalist" in config.strategy.strategies
    assert config.strategy.weights["usage"]["yes"] == {"keep": 3, "accessible": 2}
    assert config.strategy.version == 2


def test_list_multipliers_are_ignored(db_session):
    save_setting(db_session, "recommendation_strategies", {
        "active": "custom",
        "strategies": {"custom": {"name": "Custom", "multipliers": [1, 2]}},
    })

    config = load_system_config(db_session)

    assert config.strategy.get_strategy("custom").multipliers == {}


def test_limits_and_provider_settings(db_session):
    save_setting(db_session, "api_monthly_cost_limit", 100)
    save_setting(db_session, "api_per_user_monthly_limit", "-5")
    save_setting(db_session, "llm_provider", "google")
    save_setting(db_session, "google_api_key", "  AIza-stored  ")
    save_setting(db_session, "ollama_base_url", "http://gpu-box:11434")
    save_setting(db_session, "analysis_prompt", "Describe it. Categories: {{categories}}")

    config = load_system_config(db_session)

    assert config.limits.monthly_limit == 100
    # negative values are ignored
    assert config.limits.per_user_limit == settings.API_PER_USER_MONTHLY_LIMIT
    assert config.providers.default_provider == "google"
    assert config.providers.system_key("google") == "AIza-stored"
    assert config.providers.base_url() == "http://gpu-box:11434"
    assert config.analysis_prompt == "Describe it. Categories: {{categories}}"


def test_system_key_falls_back_to_environment(monkeypatch):
    monkeypatch.setattr(settings, "OPENAI_API_KEY", "sk-env")
    providers = ProviderSettings(api_keys={"openai": "   "})

    assert providers.system_key("openai") == "sk-env"
    assert ProviderSettings(api_keys={"openai": "sk-db"}).system_key("openai") == "sk-db"


def test_base_url_default(monkeypatch):
    monkeypatch.setattr(settings, "OLLAMA_BASE_URL", "http://localhost:11434")
    assert ProviderSettings().base_url() == "http://localhost:11434"


def test_snapshot_is_immutable():
    config = SystemConfig.defaults()
    with pytest.raises(FrozenInstanceError):
        config.analysis_prompt = "changed"


def test_category_vocabulary(db_session, categories):
    assert get_category_vocabulary(db_session) == ["clothing", "books", "electronics", "kitchen", "other"]
    assert get_default_category(db_session) == "other"


def test_default_category_without_flag(db_session):
    assert get_default_category(db_session) == settings.DEFAULT_CATEGORY
