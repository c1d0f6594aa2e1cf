"""Google Gemini adapter using the google-genai SDK."""
import logging

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from app.errors import VendorCallError
from app.services.llm.base import BaseProvider, LLMResult, ProviderConfig, as_token_count
from app.settings import settings

logger = logging.getLogger(__name__)

GOOGLE = ProviderConfig(
    id="google",
    display_name="Google Gemini",
    default_model="gemini-2.0-flash",
    text_model="gemini-2.0-flash",
    input_price_per_million=0.10,
    output_price_per_million=0.40,
    key_placeholder="AIza...",
    console_url="https://aistudio.google.com/apikey",
)


class GoogleProvider(BaseProvider):
    """Gemini generate_content through the SDK's async client."""

    config = GOOGLE

    def _client(self) -> genai.Client:
        # HttpOptions.timeout is in milliseconds
        return genai.Client(
            api_key=self.credential,
            http_options=types.HttpOptions(timeout=int(settings.LLM_TIMEOUT_SECONDS * 1000)),
        )

    async def _generate(self, model: str, contents: list, config: types.GenerateContentConfig) -> LLMResult:
        try:
            response = await self._client().aio.models.generate_content(
                model=model,
                contents=contents,
                config=config,
            )
        except genai_errors.APIError as e:
            logger.warning(f"google request failed ({e.code}): {e.message}")
            raise VendorCallError(
                f"{self.config.display_name} request failed ({e.code}): {e.message}",
                provider=self.config.id,
                vendor_status=e.code,
            ) from e
        except httpx.HTTPError as e:
            logger.warning(f"google request error: {e}")
            raise VendorCallError(
                f"{self.config.display_name} request error: {e}",
                provider=self.config.id,
            ) from e

        usage = response.usage_metadata
        return LLMResult(
            text=response.text or "",
            input_tokens=as_token_count(usage.prompt_token_count if usage else 0),
            output_tokens=as_token_count(usage.candidates_token_count if usage else 0),
            model=model,
        )

    async def _understand_image(self, media_bytes: bytes, media_type: str, prompt: str) -> LLMResult:
        contents = [
            prompt,
            types.Part.from_bytes(data=media_bytes, mime_type=media_type),
        ]
        config = types.GenerateContentConfig(max_output_tokens=self.image_max_tokens)
        return await self._generate(self.config.default_model, contents, config)

    async def _generate_text(self, prompt: str, system_prompt: str) -> LLMResult:
        config = types.GenerateContentConfig(
            system_instruction=system_prompt,
            max_output_tokens=self.text_max_tokens,
        )
        return await self._generate(self.config.text_model, [prompt], config)
