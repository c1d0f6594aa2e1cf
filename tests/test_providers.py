"""Vendor adapter and registry tests."""
import asyncio
import base64
import json
from types import SimpleNamespace

import httpx
import pytest
from google import genai
from google.genai import errors as genai_errors

from app.errors import VendorCallError
from app.services.llm.base import DEFAULT_ANALYSIS_PROMPT, as_token_count, build_analysis_prompt
from app.services.llm.google_provider import GoogleProvider
from app.services.llm.registry import (
    PROVIDERS,
    calculate_cost,
    create_provider,
    get_provider_config,
    list_provider_configs,
)

IMAGE = b"\x89PNG fake image bytes"
VOCAB = ["furniture", "electronics", "other"]


def body(request: httpx.Request) -> dict:
    return json.loads(request.content)


def test_registry_lists_all_vendors():
    assert [p.id for p in list_provider_configs()] == ["anthropic", "openai", "google", "ollama"]
    assert set(PROVIDERS) == {"anthropic", "openai", "google", "ollama"}
    assert get_provider_config("mistral") is None
    assert get_provider_config(None) is None


def test_pricing():
    assert calculate_cost("anthropic", 1_000_000, 1_000_000) == pytest.approx(18)
    assert calculate_cost("openai", 2_000_000, 0) == pytest.approx(5)
    assert calculate_cost("google", 1_000_000, 1_000_000) == pytest.approx(0.5)
    assert calculate_cost("ollama", 1_000_000, 1_000_000) == 0
    assert calculate_cost("unknown", 1_000_000, 1_000_000) == 0

    assert get_provider_config("ollama").is_paid is False
    assert get_provider_config("anthropic").is_paid is True


def test_create_unknown_provider():
    with pytest.raises(KeyError):
        create_provider("mistral", "key")


def test_analysis_prompt_template():
    prompt = build_analysis_prompt(VOCAB)
    assert "One of these categories: furniture, electronics, other" in prompt
    assert "{{categories}}" not in prompt

    assert build_analysis_prompt(VOCAB, "Pick from {{categories}}.") == "Pick from furniture, electronics, other."
    assert "{{categories}}" in DEFAULT_ANALYSIS_PROMPT


def test_as_token_count():
    assert as_token_count(None) == 0
    assert as_token_count("12") == 12
    assert as_token_count(-3) == 0
    assert as_token_count("many") == 0


def test_anthropic_image_request(mock_vendor, claude_reply):
    client = mock_vendor(lambda request: httpx.Response(200, json=claude_reply('{"name": "Lamp"}', 1200, 80)))
    provider = create_provider("anthropic", "sk-ant-test", http_client=client)
    result = asyncio.run(provider.understand_image(IMAGE, "image/png", VOCAB))

    assert result.text == '{"name": "Lamp"}'
    assert result.input_tokens == 1200
    assert result.output_tokens == 80
    assert result.model == "claude-sonnet-4-20250514"

    request = mock_vendor.requests[0]
    assert str(request.url) == "https://api.anthropic.com/v1/messages"
    assert request.headers["x-api-key"] == "sk-ant-test"
    assert request.headers["anthropic-version"] == "2023-06-01"
    payload = body(request)
    assert payload["max_tokens"] == 1024
    content = payload["messages"][0]["content"]
    assert content[0]["source"] == {
        "type": "base64",
        "media_type": "image/png",
        "data": base64.b64encode(IMAGE).decode("ascii"),
    }
    assert "furniture, electronics, other" in content[1]["text"]


def test_anthropic_text_request(mock_vendor, claude_reply):
    client = mock_vendor(lambda request: httpx.Response(200, json=claude_reply("Let it go.")))
    provider = create_provider("anthropic", "sk-ant-test", http_client=client)
    result = asyncio.run(provider.generate_text("Explain", "Be kind"))

    assert result.text == "Let it go."
    assert result.input_tokens == 0
    assert result.output_tokens == 0
    payload = body(mock_vendor.requests[0])
    assert payload["model"] == "claude-sonnet-4-20250514"
    assert payload["system"] == "Be kind"
    assert payload["messages"] == [{"role": "user", "content": "Explain"}]


def test_anthropic_unauthorized(mock_vendor):
    client = mock_vendor(lambda request: httpx.Response(401, json={
        "type": "error",
        "error": {"type": "authentication_error", "message": "invalid x-api-key"},
    }))
    provider = create_provider("anthropic", "bad", http_client=client)

    with pytest.raises(VendorCallError) as exc_info:
        asyncio.run(provider.generate_text("Explain", "Be kind"))

    assert exc_info.value.vendor_status == 401
    assert exc_info.value.status_code == 401
    assert exc_info.value.provider == "anthropic"
    # no retries
    assert len(mock_vendor.requests) == 1


def test_vendor_server_error(mock_vendor):
    client = mock_vendor(lambda request: httpx.Response(503, text="overloaded"))
    provider = create_provider("anthropic", "sk-ant-test", http_client=client)

    with pytest.raises(VendorCallError) as exc_info:
        asyncio.run(provider.generate_text("Explain", "Be kind"))

    assert exc_info.value.vendor_status == 503
    assert exc_info.value.status_code == 502


def test_network_error(mock_vendor):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    provider = create_provider("ollama", "http://localhost:11434", http_client=mock_vendor(handler))

    with pytest.raises(VendorCallError) as exc_info:
        asyncio.run(provider.generate_text("Explain", "Be kind"))

    assert exc_info.value.vendor_status is None


def test_anthropic_network_error(mock_vendor):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    provider = create_provider("anthropic", "sk-ant-test", http_client=mock_vendor(handler))

    with pytest.raises(VendorCallError) as exc_info:
        asyncio.run(provider.generate_text("Explain", "Be kind"))

    assert exc_info.value.vendor_status is None
    assert exc_info.value.provider == "anthropic"


@pytest.mark.parametrize("vendor,credential", [
    ("anthropic", "sk-ant-test"),
    ("ollama", "http://localhost:11434"),
])
def test_non_json_body(mock_vendor, vendor, credential):
    client = mock_vendor(lambda request: httpx.Response(200, text="<html>proxy</html>"))
    provider = create_provider(vendor, credential, http_client=client)

    with pytest.raises(VendorCallError):
        asyncio.run(provider.generate_text("Explain", "Be kind"))


def test_openai_requests(mock_vendor):
    def handler(request):
        return httpx.Response(200, json={
            "id": "chatcmpl-1",
            "object": "chat.completion",
            "created": 1700000000,
            "model": "gpt-4o",
            "choices": [{
                "index": 0,
                "message": {"role": "assistant", "content": "Sell it."},
                "finish_reason": "stop",
            }],
            "usage": {"prompt_tokens": 900, "completion_tokens": 40, "total_tokens": 940},
        })

    client = mock_vendor(handler)
    provider = create_provider("openai", "sk-test", http_client=client)

    result = asyncio.run(provider.understand_image(IMAGE, "image/jpeg", VOCAB))
    assert result.text == "Sell it."
    assert result.input_tokens == 900
    assert result.output_tokens == 40

    request = mock_vendor.requests[0]
    assert request.url.path.endswith("/chat/completions")
    assert request.headers["authorization"] == "Bearer sk-test"
    image_part = body(request)["messages"][0]["content"][0]
    assert image_part["image_url"]["url"].startswith("data:image/jpeg;base64,")

    asyncio.run(provider.generate_text("Explain", "Be kind"))
    messages = body(mock_vendor.requests[1])["messages"]
    assert messages[0] == {"role": "system", "content": "Be kind"}


def test_openai_unauthorized(mock_vendor):
    client = mock_vendor(lambda request: httpx.Response(401, json={"error": {"message": "Incorrect API key"}}))
    provider = create_provider("openai", "sk-bad", http_client=client)

    with pytest.raises(VendorCallError) as exc_info:
        asyncio.run(provider.generate_text("Explain", "Be kind"))

    assert exc_info.value.vendor_status == 401
    assert exc_info.value.provider == "openai"


class FakeGenaiClient:
    """Stands in for google.genai.Client; records generate_content calls."""

    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error
        self.calls = []
        self.aio = SimpleNamespace(models=SimpleNamespace(generate_content=self.generate_content))

    async def generate_content(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.reply


def gemini_reply(text, prompt_tokens=0, output_tokens=0):
    return SimpleNamespace(
        text=text,
        usage_metadata=SimpleNamespace(prompt_token_count=prompt_tokens, candidates_token_count=output_tokens),
    )


def use_genai(monkeypatch, fake):
    monkeypatch.setattr(GoogleProvider, "_client", lambda self: fake)


def test_google_requests(monkeypatch):
    fake = FakeGenaiClient(reply=gemini_reply("Donate it.", 300, 20))
    use_genai(monkeypatch, fake)
    provider = create_provider("google", "AIza-test")

    result = asyncio.run(provider.understand_image(IMAGE, "image/webp", VOCAB))
    assert result.text == "Donate it."
    assert result.input_tokens == 300
    assert result.output_tokens == 20
    assert result.model == "gemini-2.0-flash"

    call = fake.calls[0]
    assert call["model"] == "gemini-2.0-flash"
    prompt, image = call["contents"]
    assert "furniture, electronics, other" in prompt
    assert image.inline_data.mime_type == "image/webp"
    assert image.inline_data.data == IMAGE
    assert call["config"].max_output_tokens == 1024

    asyncio.run(provider.generate_text("Explain", "Be kind"))
    call = fake.calls[1]
    assert call["contents"] == ["Explain"]
    assert call["config"].system_instruction == "Be kind"
    assert call["config"].max_output_tokens == 500


def test_google_missing_usage_reads_as_zero(monkeypatch):
    use_genai(monkeypatch, FakeGenaiClient(reply=SimpleNamespace(text=None, usage_metadata=None)))
    provider = create_provider("google", "AIza-test")

    result = asyncio.run(provider.generate_text("Explain", "Be kind"))

    assert result.text == ""
    assert result.input_tokens == 0
    assert result.output_tokens == 0


def test_google_rejected_key(monkeypatch):
    error = genai_errors.ClientError(400, {
        "error": {"code": 400, "message": "API key not valid.", "status": "INVALID_ARGUMENT"},
    })
    use_genai(monkeypatch, FakeGenaiClient(error=error))
    provider = create_provider("google", "AIza-bad")

    with pytest.raises(VendorCallError) as exc_info:
        asyncio.run(provider.generate_text("Explain", "Be kind"))

    assert exc_info.value.vendor_status == 400
    assert exc_info.value.provider == "google"
    assert "API key not valid" in exc_info.value.message


def test_google_server_error(monkeypatch):
    error = genai_errors.ServerError(503, {"error": {"code": 503, "message": "overloaded", "status": "UNAVAILABLE"}})
    use_genai(monkeypatch, FakeGenaiClient(error=error))
    provider = create_provider("google", "AIza-test")

    with pytest.raises(VendorCallError) as exc_info:
        asyncio.run(provider.generate_text("Explain", "Be kind"))

    assert exc_info.value.vendor_status == 503
    assert exc_info.value.status_code == 502


def test_google_client_uses_key():
    provider = create_provider("google", "AIza-test")

    assert isinstance(provider._client(), genai.Client)


def test_ollama_requests(mock_vendor):
    def handler(request):
        return httpx.Response(200, json={
            "message": {"role": "assistant", "content": "Keep it."},
            "prompt_eval_count": 50,
            "eval_count": 7,
        })

    client = mock_vendor(handler)
    provider = create_provider("ollama", "http://gpu-box:11434/", http_client=client)

    result = asyncio.run(provider.understand_image(IMAGE, "image/png", VOCAB))
    assert result.text == "Keep it."
    assert result.input_tokens == 50
    assert result.output_tokens == 7
    assert result.model == "llama3.2-vision"

    request = mock_vendor.requests[0]
    assert str(request.url) == "http://gpu-box:11434/api/chat"
    payload = body(request)
    assert payload["stream"] is False
    assert payload["messages"][0]["images"] == [base64.b64encode(IMAGE).decode("ascii")]

    result = asyncio.run(provider.generate_text("Explain", "Be kind"))
    assert result.model == "llama3.2"
