"""HTTP API tests."""
import httpx
import pytest

from app.models import ApiUsageLog
from app.services.system_config import save_setting


def auth(user):
    return {"X-User-Id": str(user.id)}


@pytest.fixture
def system_key(db_session, no_env_keys):
    save_setting(db_session, "anthropic_api_key", "sk-ant-system")


@pytest.fixture
def vendor(mock_vendor, use_http_client, claude_reply):
    """Install a mock vendor that answers every call with the given text."""
    def install(text, status_code=200):
        def handler(request):
            if status_code != 200:
                return httpx.Response(status_code, json={"error": {"message": "denied"}})
            return httpx.Response(200, json=claude_reply(text, 800, 60))
        use_http_client(mock_vendor(handler))
        return mock_vendor
    return install


class TestAuthentication:

    def test_missing_user_header(self, client):
        response = client.post("/api/items/1/evaluate")
        assert response.status_code == 401

    def test_malformed_user_header(self, client):
        response = client.get("/api/usage", headers={"X-User-Id": "abc"})
        assert response.status_code == 401

    def test_unknown_user(self, client):
        response = client.get("/api/usage", headers={"X-User-Id": "424242"})
        assert response.status_code == 404


class TestEvaluateEndpoint:

    def test_evaluate_stored_answers(self, client, test_user, test_item):
        response = client.post(f"/api/items/{test_item.id}/evaluate", headers=auth(test_user))

        assert response.status_code == 200
        data = response.json()
        assert data["item_id"] == test_item.id
        assert data["outcome"] == "sell"
        assert data["strategy"] == "balanced"
        assert data["variant"] == "A"
        assert set(data["scores"]) == {"keep", "accessible", "storage", "sell", "donate", "discard"}

    def test_evaluate_posted_answers(self, client, test_user, test_item):
        answers = {"usage": "no", "sentimental": "none", "condition": "poor",
                   "value": "low", "replaceability": "easy", "space": "no"}

        response = client.post(
            f"/api/items/{test_item.id}/evaluate",
            json={"answers": answers},
            headers=auth(test_user),
        )

        data = response.json()
        assert data["outcome"] == "donate"
        assert data["decided_by"] == "tie_break"
        assert data["margin"] == 1

    def test_evaluate_strict_rejects_unknown_answer(self, client, test_user, test_item):
        response = client.post(
            f"/api/items/{test_item.id}/evaluate",
            json={"answers": {"usage": "sometimes"}, "strict": True},
            headers=auth(test_user),
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid answer"

    def test_evaluate_lenient_reports_unknown_answer(self, client, test_user, test_item):
        response = client.post(
            f"/api/items/{test_item.id}/evaluate",
            json={"answers": {"usage": "sometimes", "condition": "poor"}},
            headers=auth(test_user),
        )

        assert response.status_code == 200
        assert response.json()["invalid_answers"] == ["usage"]

    def test_evaluate_other_users_item(self, client, other_user, test_item):
        response = client.post(f"/api/items/{test_item.id}/evaluate", headers=auth(other_user))

        assert response.status_code == 404
        assert response.json()["error"] == "Item not found"


class TestExplainEndpoint:

    def test_explain(self, client, test_user, test_item, system_key, vendor):
        vendor("Honestly, a bread maker you never use is just counter clutter.")

        response = client.post(f"/api/items/{test_item.id}/explain", headers=auth(test_user))

        assert response.status_code == 200
        data = response.json()
        assert data["reasoning"].startswith("Honestly")
        assert data["provider"] == "anthropic"
        assert data["outcome"] in ("sell", "donate")

    def test_explain_with_outcome(self, client, test_user, test_item, system_key, vendor):
        vendor("Keep it.")

        response = client.post(
            f"/api/items/{test_item.id}/explain",
            json={"outcome": "keep"},
            headers=auth(test_user),
        )

        assert response.json()["outcome"] == "keep"

    def test_explain_invalid_outcome(self, client, test_user, test_item, system_key):
        response = client.post(
            f"/api/items/{test_item.id}/explain",
            json={"outcome": "burn"},
            headers=auth(test_user),
        )
        assert response.status_code == 422

    def test_explain_without_key(self, client, test_user, test_item, no_env_keys):
        response = client.post(f"/api/items/{test_item.id}/explain", headers=auth(test_user))

        assert response.status_code == 400
        assert response.json()["error"] == "No API key available"

    def test_explain_invalid_vendor_key(self, client, test_user, test_item, system_key, vendor):
        vendor("", status_code=401)

        response = client.post(f"/api/items/{test_item.id}/explain", headers=auth(test_user))

        assert response.status_code == 401
        assert response.json()["provider"] == "anthropic"

    def test_explain_quota_exceeded(self, client, db_session, test_user, test_item, system_key, vendor):
        db_session.add(ApiUsageLog(
            user_id=test_user.id, endpoint="/api/analyze-image", provider="anthropic",
            model="m", estimated_cost=25.0, success=True, used_user_key=False,
        ))
        db_session.commit()
        requests = vendor("unused")

        response = client.post(f"/api/items/{test_item.id}/explain", headers=auth(test_user))

        assert response.status_code == 429
        data = response.json()
        assert data["reason"] == "Your monthly usage limit reached"
        assert data["userCost"] == 25.0
        assert requests.requests == []


class TestOverrideEndpoint:

    def test_create_override(self, client, test_user, test_item):
        response = client.post(
            f"/api/items/{test_item.id}/overrides",
            json={"suggested": "sell", "chosen": "keep", "reason": "I bake every week"},
            headers=auth(test_user),
        )

        assert response.status_code == 201
        data = response.json()
        assert data["ai_suggestion"] == "sell"
        assert data["user_choice"] == "keep"
        assert data["item_category"] == "kitchen"

    def test_same_outcome_rejected(self, client, test_user, test_item):
        response = client.post(
            f"/api/items/{test_item.id}/overrides",
            json={"suggested": "sell", "chosen": "sell"},
            headers=auth(test_user),
        )
        assert response.status_code == 400

    def test_patterns_after_overrides(self, client, test_user, test_item):
        for _ in range(2):
            client.post(
                f"/api/items/{test_item.id}/overrides",
                json={"suggested": "sell", "chosen": "donate"},
                headers=auth(test_user),
            )

        response = client.get("/api/recommendations/patterns", headers=auth(test_user))

        data = response.json()
        assert data["total"] == 2
        assert "User prefers donating over selling" in data["patterns"]
        assert data["by_category"]["kitchen"]["overrides"] == {"sell->donate": 2}


class TestAnalyzeImageEndpoint:

    def test_analyze_image(self, client, test_user, categories, system_key, vendor):
        vendor('{"name": "Lamp", "description": "A desk lamp", "category": "bogus"}')

        response = client.post(
            "/api/analyze-image",
            files={"image": ("lamp.jpg", b"\xff\xd8\xff\xe0 jpeg", "image/jpeg")},
            headers=auth(test_user),
        )

        assert response.status_code == 200
        assert response.json() == {"name": "Lamp", "description": "A desk lamp", "category": "other"}

    def test_analyze_unsupported_type(self, client, test_user, system_key):
        response = client.post(
            "/api/analyze-image",
            files={"image": ("doc.pdf", b"%PDF-1.4", "application/pdf")},
            headers=auth(test_user),
        )
        assert response.status_code == 400

    def test_analyze_unparseable_reply(self, client, test_user, categories, system_key, vendor):
        vendor("I can't tell what this is.")

        response = client.post(
            "/api/analyze-image",
            files={"image": ("lamp.png", b"png", "image/png")},
            headers=auth(test_user),
        )

        assert response.status_code == 502
        assert response.json()["rawResponse"] == "I can't tell what this is."


class TestReadEndpoints:

    def test_personalities(self, client):
        response = client.get("/api/personalities")

        assert response.status_code == 200
        keys = [p["key"] for p in response.json()]
        assert "marie_kondo" in keys
        assert "balanced" in keys

    def test_recommendation_settings(self, client, test_user):
        response = client.get("/api/recommendations/settings", headers=auth(test_user))

        data = response.json()
        assert data["strategy"]["key"] == "balanced"
        assert data["variant"] == "A"
        assert data["minimum_score_difference"] == 2
        assert data["tie_break_order"][0] == "keep"
        assert "financial" in data["available_strategies"]

    def test_recommendation_settings_ab(self, client, db_session, test_user):
        save_setting(db_session, "recommendation_strategies", {
            "active": "balanced",
            "abTestEnabled": True,
            "abTestPercentage": 0,
            "abTestAlternate": "minimalist",
            "strategies": {
                "balanced": {"name": "Balanced", "multipliers": {}},
                "minimalist": {"name": "Minimalist", "multipliers": {"usage": 1.5}},
            },
        })

        data = client.get("/api/recommendations/settings", headers=auth(test_user)).json()

        assert data["variant"] == "B"
        assert data["strategy"]["key"] == "minimalist"
        assert data["strategy"]["multipliers"]["usage"] == 1.5
        assert data["version"] == 1

    def test_llm_providers(self, client, db_session, test_user, no_env_keys):
        save_setting(db_session, "openai_api_key", "sk-system")

        response = client.get("/api/llm-providers", headers=auth(test_user))

        providers = {p["id"]: p for p in response.json()["providers"]}
        assert set(providers) == {"anthropic", "openai", "google", "ollama"}
        assert providers["openai"]["system_configured"] is True
        assert providers["anthropic"]["system_configured"] is False
        assert providers["anthropic"]["is_system_default"] is True
        assert providers["ollama"]["system_configured"] is False
        assert providers["ollama"]["input_price_per_million"] == 0

    def test_usage(self, client, test_user, test_item, system_key, vendor):
        vendor("Sell it.")
        client.post(f"/api/items/{test_item.id}/explain", headers=auth(test_user))

        response = client.get("/api/usage", headers=auth(test_user))

        data = response.json()
        assert data["calls"] == 1
        assert data["input_tokens"] == 800
        assert data["user_cost"] == pytest.approx(800 * 3 / 1_000_000 + 60 * 15 / 1_000_000)
        assert data["per_user_limit"] == 10


class TestContextEndpoints:

    def test_detect_tone(self, client, test_user):
        response = client.post(
            "/api/recommendations/detect-tone",
            json={"text": "These are my childhood memories"},
            headers=auth(test_user),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["tone"] == "sentimental"
        assert data["instructions"].startswith("User has emotional attachment")
        assert data["scores"]["sentimental"] == 2

    def test_detect_tone_empty_text(self, client, test_user):
        response = client.post("/api/recommendations/detect-tone", json={}, headers=auth(test_user))

        assert response.json()["tone"] == "neutral"

    def test_detect_tone_requires_user(self, client):
        response = client.post("/api/recommendations/detect-tone", json={"text": "junk"})
        assert response.status_code == 401

    def test_recommendation_context(self, client, test_user, test_item, make_item):
        make_item(test_user, name="Toaster", category="kitchen")

        response = client.get(f"/api/recommendations/context/{test_item.id}", headers=auth(test_user))

        assert response.status_code == 200
        data = response.json()
        assert data["user_goal"] == "moving"
        assert data["personality_mode"] == "balanced"
        assert data["duplicate_count"] == 2
        assert data["emotional_tone"] == "frustrated"
        assert data["user_notes"] == "Never use it, just taking up space"
        assert data["season"] in ("winter", "spring", "summer", "fall")

    def test_context_for_other_users_item(self, client, other_user, test_item):
        response = client.get(f"/api/recommendations/context/{test_item.id}", headers=auth(other_user))

        assert response.status_code == 404
        assert response.json()["error"] == "Item not found"

    def test_duplicate_count(self, client, test_user, other_user, test_item, make_item):
        make_item(test_user, name="Kettle", category="kitchen")
        make_item(other_user, name="Blender", category="kitchen")

        response = client.get("/api/items/duplicate-count/kitchen", headers=auth(test_user))

        assert response.status_code == 200
        assert response.json() == {"category": "kitchen", "count": 2}

    def test_duplicate_count_unknown_category(self, client, test_user):
        response = client.get("/api/items/duplicate-count/garden", headers=auth(test_user))

        assert response.json() == {"category": "garden", "count": 0}
