"""OpenAI GPT adapter using the official async SDK."""
import logging

from openai import APIError, APIStatusError, AsyncOpenAI

from app.errors import VendorCallError
from app.services.llm.base import BaseProvider, LLMResult, ProviderConfig, as_token_count, encode_image
from app.settings import settings

logger = logging.getLogger(__name__)

OPENAI = ProviderConfig(
    id="openai",
    display_name="OpenAI GPT-4o",
    default_model="gpt-4o",
    text_model="gpt-4o",
    input_price_per_million=2.5,
    output_price_per_million=10,
    key_placeholder="sk-...",
    console_url="https://platform.openai.com/api-keys",
)


class OpenAIProvider(BaseProvider):
    """GPT-4o chat completions, with images sent as data URLs."""

    config = OPENAI

    def _client(self) -> AsyncOpenAI:
        # Retries are left to the caller
        return AsyncOpenAI(
            api_key=self.credential,
            http_client=self.http_client,
            timeout=settings.LLM_TIMEOUT_SECONDS,
            max_retries=0,
        )

    async def _complete(self, model: str, messages: list, max_tokens: int) -> LLMResult:
        try:
            response = await self._client().chat.completions.create(
                model=model,
                max_tokens=max_tokens,
                messages=messages,
            )
        except APIStatusError as e:
            logger.warning(f"openai request failed ({e.status_code}): {e.message}")
            raise VendorCallError(
                f"{self.config.display_name} request failed ({e.status_code}): {e.message}",
                provider=self.config.id,
                vendor_status=e.status_code,
            ) from e
        except APIError as e:
            logger.warning(f"openai request error: {e}")
            raise VendorCallError(
                f"{self.config.display_name} request error: {e}",
                provider=self.config.id,
            ) from e

        text = ""
        if response.choices:
            text = response.choices[0].message.content or ""
        usage = response.usage
        return LLMResult(
            text=text,
            input_tokens=as_token_count(usage.prompt_tokens if usage else 0),
            output_tokens=as_token_count(usage.completion_tokens if usage else 0),
            model=model,
        )

    async def _understand_image(self, media_bytes: bytes, media_type: str, prompt: str) -> LLMResult:
        data_url = f"data:{media_type};base64,{encode_image(media_bytes)}"
        messages = [
            {
                "role": "user",
                "content": [
                    {"type": "image_url", "image_url": {"url": data_url}},
                    {"type": "text", "text": prompt},
                ],
            }
        ]
        return await self._complete(self.config.default_model, messages, self.image_max_tokens)

    async def _generate_text(self, prompt: str, system_prompt: str) -> LLMResult:
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": prompt},
        ]
        return await self._complete(self.config.text_model, messages, self.text_max_tokens)
