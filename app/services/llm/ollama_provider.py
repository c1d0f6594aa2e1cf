"""Self-hosted Ollama adapter. Free, needs a base URL instead of a key."""
from typing import Any, Dict

from app.services.llm.base import BaseProvider, LLMResult, ProviderConfig, as_token_count, encode_image

OLLAMA = ProviderConfig(
    id="ollama",
    display_name="Ollama (Local)",
    default_model="llama3.2-vision",
    text_model="llama3.2",
    input_price_per_million=0,
    output_price_per_million=0,
    requires_api_key=False,
    requires_base_url=True,
)


class OllamaProvider(BaseProvider):
    """Ollama /api/chat with streaming off. ``credential`` is the base URL."""

    config = OLLAMA

    @property
    def chat_url(self) -> str:
        return f"{self.credential.rstrip('/')}/api/chat"

    def _to_result(self, data: Dict[str, Any], model: str) -> LLMResult:
        message = data.get("message") or {}
        return LLMResult(
            text=message.get("content") or "",
            input_tokens=as_token_count(data.get("prompt_eval_count")),
            output_tokens=as_token_count(data.get("eval_count")),
            model=model,
        )

    async def _understand_image(self, media_bytes: bytes, media_type: str, prompt: str) -> LLMResult:
        model = self.config.default_model
        payload = {
            "model": model,
            "stream": False,
            "messages": [{"role": "user", "content": prompt, "images": [encode_image(media_bytes)]}],
            "options": {"num_predict": self.image_max_tokens},
        }
        return self._to_result(await self._post_json(self.chat_url, payload), model)

    async def _generate_text(self, prompt: str, system_prompt: str) -> LLMResult:
        model = self.config.text_model
        payload = {
            "model": model,
            "stream": False,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt},
            ],
            "options": {"num_predict": self.text_max_tokens},
        }
        return self._to_result(await self._post_json(self.chat_url, payload), model)
