"""Vendor-neutral interface for image understanding and text generation."""
import base64
import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Sequence

import httpx

from app.errors import VendorCallError
from app.settings import settings

logger = logging.getLogger(__name__)


DEFAULT_ANALYSIS_PROMPT = """Please analyze this image and identify what item or items are shown. Provide your response in the following JSON format only, with no additional text:

{
  "name": "A brief, clear name for the item (e.g., 'Vintage Record Player', 'Winter Coat', 'Kitchen Blender')",
  "description": "A detailed description of the item including its appearance, condition, and any notable features (2-3 sentences)",
  "category": "One of these categories: {{categories}}",
  "location": "Suggest the most likely room where this item is typically found or used. One of: bedroom, living-room, kitchen, bathroom, garage, attic, basement, closet, other"
}

Be specific and descriptive. If multiple items are visible, focus on the main/central item."""


@dataclass(frozen=True)
class ProviderConfig:
    """
    Static metadata for one vendor.

    Attributes:
        id: Registry key
        display_name: Human-readable vendor name
        default_model: Model used for image understanding
        text_model: Model used for text generation
        input_price_per_million: USD per million input tokens
        output_price_per_million: USD per million output tokens
        requires_api_key: Whether calls need a credential
        requires_base_url: Whether calls need a self-hosted endpoint
        key_placeholder: Example key prefix for settings forms
        console_url: Where users obtain a key
    """
    id: str
    display_name: str
    default_model: str
    text_model: str
    input_price_per_million: float
    output_price_per_million: float
    requires_api_key: bool = True
    requires_base_url: bool = False
    key_placeholder: str = ""
    console_url: str = ""

    @property
    def is_paid(self) -> bool:
        return self.input_price_per_million > 0 or self.output_price_per_million > 0

    def calculate_cost(self, input_tokens: int, output_tokens: int) -> float:
        """Estimated USD cost of a call."""
        return (
            (input_tokens / 1_000_000) * self.input_price_per_million
            + (output_tokens / 1_000_000) * self.output_price_per_million
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON response."""
        return asdict(self)


@dataclass
class LLMResult:
    """Normalized vendor reply."""
    text: str
    input_tokens: int = 0
    output_tokens: int = 0
    model: str = ""
    provider: str = ""


def build_analysis_prompt(category_vocabulary: Sequence[str], prompt_override: Optional[str] = None) -> str:
    """Fill the analysis template with the comma-joined category list."""
    template = prompt_override or DEFAULT_ANALYSIS_PROMPT
    return template.replace("{{categories}}", ", ".join(category_vocabulary))


def encode_image(media_bytes: bytes) -> str:
    """Base64 text form of an image for JSON request bodies."""
    return base64.b64encode(media_bytes).decode("ascii")


def as_token_count(value: Any) -> int:
    """Coerce a vendor usage field to a non-negative int (missing -> 0)."""
    try:
        return max(0, int(value or 0))
    except (TypeError, ValueError):
        return 0


class BaseProvider(ABC):
    """
    Base class for vendor adapters.

    Subclasses set ``config`` and implement the two vendor calls. Adapters
    built on httpx (directly or through a vendor SDK) share one
    ``httpx.AsyncClient``; pass one in to reuse a connection pool or to
    substitute a mock transport.
    """

    config: ProviderConfig

    def __init__(
        self,
        credential: str,
        http_client: Optional[httpx.AsyncClient] = None,
        image_max_tokens: Optional[int] = None,
        text_max_tokens: Optional[int] = None,
    ):
        """
        Args:
            credential: API key, or base URL for self-hosted vendors
            http_client: Optional shared async HTTP client
            image_max_tokens: Output cap for image understanding
            text_max_tokens: Output cap for text generation
        """
        self.credential = credential
        self.http_client = http_client
        self.image_max_tokens = image_max_tokens or settings.LLM_IMAGE_MAX_TOKENS
        self.text_max_tokens = text_max_tokens or settings.LLM_TEXT_MAX_TOKENS

    async def understand_image(
        self,
        media_bytes: bytes,
        media_type: str,
        category_vocabulary: Sequence[str],
        prompt_override: Optional[str] = None,
    ) -> LLMResult:
        """
        Describe an image as a JSON object with name, description and category.

        Args:
            media_bytes: Raw image bytes
            media_type: MIME type such as image/jpeg
            category_vocabulary: Allowed category slugs for the prompt
            prompt_override: Admin prompt template, if configured

        Returns:
            LLMResult with the raw reply text
        """
        prompt = build_analysis_prompt(category_vocabulary, prompt_override)
        return await self._understand_image(media_bytes, media_type, prompt)

    async def generate_text(self, prompt: str, system_prompt: str) -> LLMResult:
        """Generate free text for a prompt under a system prompt."""
        return await self._generate_text(prompt, system_prompt)

    @abstractmethod
    async def _understand_image(self, media_bytes: bytes, media_type: str, prompt: str) -> LLMResult:
        ...

    @abstractmethod
    async def _generate_text(self, prompt: str, system_prompt: str) -> LLMResult:
        ...

    async def _post_json(
        self,
        url: str,
        payload: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """POST a JSON body and return the decoded reply, mapping failures to VendorCallError."""
        if self.http_client is not None:
            return await self._send(self.http_client, url, payload, headers, params)
        async with httpx.AsyncClient(timeout=settings.LLM_TIMEOUT_SECONDS) as client:
            return await self._send(client, url, payload, headers, params)

    async def _send(
        self,
        client: httpx.AsyncClient,
        url: str,
        payload: Dict[str, Any],
        headers: Optional[Dict[str, str]],
        params: Optional[Dict[str, str]],
    ) -> Dict[str, Any]:
        vendor = self.config.id
        try:
            response = await client.post(url, json=payload, headers=headers, params=params)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            body = e.response.text[:500]
            logger.warning(f"{vendor} request failed ({status_code}): {body}")
            raise VendorCallError(
                f"{self.config.display_name} request failed ({status_code}): {body}",
                provider=vendor,
                vendor_status=status_code,
            ) from e
        except httpx.HTTPError as e:
            logger.warning(f"{vendor} request error: {e}")
            raise VendorCallError(
                f"{self.config.display_name} request error: {e}",
                provider=vendor,
            ) from e
        except ValueError as e:
            raise VendorCallError(
                f"{self.config.display_name} returned a non-JSON body",
                provider=vendor,
            ) from e
