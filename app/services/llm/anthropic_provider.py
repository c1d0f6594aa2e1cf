"""Anthropic Claude adapter using the official async SDK."""
import logging

from anthropic import APIError, APIStatusError, AsyncAnthropic

from app.errors import VendorCallError
from app.services.llm.base import BaseProvider, LLMResult, ProviderConfig, as_token_count, encode_image
from app.settings import settings

logger = logging.getLogger(__name__)

ANTHROPIC = ProviderConfig(
    id="anthropic",
    display_name="Anthropic Claude",
    default_model="claude-sonnet-4-20250514",
    text_model="claude-sonnet-4-20250514",
    input_price_per_million=3,
    output_price_per_million=15,
    key_placeholder="sk-ant-...",
    console_url="https://console.anthropic.com/settings/keys",
)


class AnthropicProvider(BaseProvider):
    """Claude Messages API, with images sent as base64 content blocks."""

    config = ANTHROPIC

    def _client(self) -> AsyncAnthropic:
        # Retries are left to the caller
        return AsyncAnthropic(
            api_key=self.credential,
            http_client=self.http_client,
            timeout=settings.LLM_TIMEOUT_SECONDS,
            max_retries=0,
        )

    async def _create(self, model: str, max_tokens: int, messages: list, **kwargs) -> LLMResult:
        try:
            response = await self._client().messages.create(
                model=model,
                max_tokens=max_tokens,
                messages=messages,
                **kwargs,
            )
        except APIStatusError as e:
            logger.warning(f"anthropic request failed ({e.status_code}): {e.message}")
            raise VendorCallError(
                f"{self.config.display_name} request failed ({e.status_code}): {e.message}",
                provider=self.config.id,
                vendor_status=e.status_code,
            ) from e
        except APIError as e:
            logger.warning(f"anthropic request error: {e}")
            raise VendorCallError(
                f"{self.config.display_name} request error: {e}",
                provider=self.config.id,
            ) from e

        # A non-JSON body comes back as plain text instead of a Message
        blocks = getattr(response, "content", None)
        if not isinstance(blocks, list):
            raise VendorCallError(
                f"{self.config.display_name} returned an unexpected response body",
                provider=self.config.id,
            )
        first = blocks[0] if blocks else None
        text = first.text if getattr(first, "type", None) == "text" else ""
        usage = getattr(response, "usage", None)
        return LLMResult(
            text=text or "",
            input_tokens=as_token_count(usage.input_tokens if usage else 0),
            output_tokens=as_token_count(usage.output_tokens if usage else 0),
            model=model,
        )

    async def _understand_image(self, media_bytes: bytes, media_type: str, prompt: str) -> LLMResult:
        messages = [
            {
                "role": "user",
                "content": [
                    {
                        "type": "image",
                        "source": {"type": "base64", "media_type": media_type, "data": encode_image(media_bytes)},
                    },
                    {"type": "text", "text": prompt},
                ],
            }
        ]
        return await self._create(self.config.default_model, self.image_max_tokens, messages)

    async def _generate_text(self, prompt: str, system_prompt: str) -> LLMResult:
        messages = [{"role": "user", "content": prompt}]
        return await self._create(
            self.config.text_model, self.text_max_tokens, messages, system=system_prompt
        )
