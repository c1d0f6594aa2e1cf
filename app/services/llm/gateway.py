"""Provider resolution, quota gating and usage recording around vendor calls."""
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence

import httpx
from sqlalchemy.orm import Session

from app.errors import ConfigurationError, VendorCallError
from app.models.inventory import User
from app.services.llm.base import BaseProvider, LLMResult, ProviderConfig
from app.services.llm.registry import create_provider, get_provider_config
from app.services.system_config import ProviderSettings, SystemConfig
from app.services.usage import ensure_within_limits, record_usage
from app.settings import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedProvider:
    """Vendor and credential chosen for one call."""
    config: ProviderConfig
    credential: str
    used_user_key: bool

    @property
    def counts_against_limits(self) -> bool:
        """System-funded calls to paid vendors are subject to the ceilings."""
        return not self.used_user_key and self.config.is_paid


def resolve_provider(user: Optional[User], providers: ProviderSettings) -> ResolvedProvider:
    """
    Pick the vendor and credential for a user.

    Vendor: the user's preferred vendor when registered, else the system
    setting, else the LLM_PROVIDER environment default. Credential: the user's
    own key, else the stored system key, else the environment key. Self-hosted
    vendors use a base URL instead of a key.

    Raises:
        ConfigurationError: If no credential can be found
    """
    config = None
    for candidate in (
        user.llm_provider if user else None,
        providers.default_provider,
        settings.LLM_PROVIDER,
    ):
        config = get_provider_config(candidate)
        if config is not None:
            break
    if config is None:
        raise ConfigurationError(f"No registered AI provider configured (LLM_PROVIDER={settings.LLM_PROVIDER})")

    # A stored user key is an API key, never a base URL
    if config.requires_base_url:
        return ResolvedProvider(config=config, credential=providers.base_url(), used_user_key=False)

    user_key = (user.llm_api_key or "").strip() if user else ""
    if user_key:
        return ResolvedProvider(config=config, credential=user_key, used_user_key=True)

    system_key = providers.system_key(config.id)
    if not system_key:
        raise ConfigurationError(
            f"Please add your {config.display_name} API key in settings or contact the administrator"
        )
    return ResolvedProvider(config=config, credential=system_key, used_user_key=False)


class ProviderGateway:
    """
    Runs one vendor call for a user.

    Each call resolves the vendor, checks the spend ceilings when the system
    pays, applies the timeout and appends exactly one usage record, also when
    the call fails, times out or is cancelled.
    """

    def __init__(
        self,
        db: Session,
        user: User,
        config: SystemConfig,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        self.db = db
        self.user = user
        self.config = config
        self.http_client = http_client
        self.timeout = timeout or settings.LLM_TIMEOUT_SECONDS

    async def understand_image(
        self,
        media_bytes: bytes,
        media_type: str,
        category_vocabulary: Sequence[str],
        prompt_override: Optional[str] = None,
        endpoint: str = "/api/analyze-image",
    ) -> LLMResult:
        """Describe an image with the user's vendor."""
        return await self._call(
            endpoint,
            lambda provider: provider.understand_image(
                media_bytes, media_type, category_vocabulary, prompt_override
            ),
        )

    async def generate_text(self, prompt: str, system_prompt: str, endpoint: str) -> LLMResult:
        """Generate prose with the user's vendor."""
        return await self._call(
            endpoint,
            lambda provider: provider.generate_text(prompt, system_prompt),
        )

    async def _call(
        self,
        endpoint: str,
        invoke: Callable[[BaseProvider], Awaitable[LLMResult]],
    ) -> LLMResult:
        resolved = resolve_provider(self.user, self.config.providers)
        vendor = resolved.config
        if resolved.counts_against_limits:
            ensure_within_limits(self.db, self.user.id, self.config.limits)

        provider = create_provider(vendor.id, resolved.credential, http_client=self.http_client)
        model = vendor.default_model

        def record_failure(message: str) -> None:
            record_usage(
                self.db, self.user.id, endpoint, vendor.id, model,
                success=False, error_message=message, used_user_key=resolved.used_user_key,
            )

        try:
            result = await asyncio.wait_for(invoke(provider), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            record_failure(f"Timed out after {self.timeout}s")
            raise VendorCallError(
                f"{vendor.display_name} did not respond within {self.timeout} seconds",
                provider=vendor.id,
            ) from e
        except asyncio.CancelledError:
            record_failure("Cancelled")
            raise
        except Exception as e:
            record_failure(str(e))
            raise

        record_usage(
            self.db, self.user.id, endpoint, vendor.id, result.model or model,
            input_tokens=result.input_tokens,
            output_tokens=result.output_tokens,
            success=True,
            used_user_key=resolved.used_user_key,
        )
        result.provider = vendor.id
        return result
