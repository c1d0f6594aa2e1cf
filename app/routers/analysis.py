"""Photo analysis, AI provider listing and usage API endpoints."""
import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from sqlalchemy.orm import Session

from app.db import get_db
from app.dependencies import get_current_user, get_system_config
from app.models.inventory import User
from app.routers.recommendations import get_http_client
from app.schemas.recommendation import (
    ImageAnalysisResponse,
    ProviderListResponse,
    ProviderResponse,
    UsageSummaryResponse,
)
from app.services import decisions
from app.services.llm.registry import list_provider_configs
from app.services.system_config import SystemConfig
from app.services.usage import get_monthly_usage_summary
from app.settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["analysis"])


@router.post("/analyze-image", response_model=ImageAnalysisResponse)
async def analyze_image(
    image: UploadFile = File(...),
    user: User = Depends(get_current_user),
    config: SystemConfig = Depends(get_system_config),
    http_client: Optional[httpx.AsyncClient] = Depends(get_http_client),
    db: Session = Depends(get_db),
):
    """Suggest a name, description and category for a photographed item."""
    content = await image.read(settings.MAX_IMAGE_BYTES + 1)

    try:
        result = await decisions.analyze_image(
            db, user.id, content, image.content_type or "",
            config=config, http_client=http_client,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return ImageAnalysisResponse(**result.to_dict())


@router.get("/llm-providers", response_model=ProviderListResponse)
async def get_llm_providers(
    user: User = Depends(get_current_user),
    config: SystemConfig = Depends(get_system_config),
):
    """Registered AI vendors with pricing and whether the system can pay for them."""
    system_default = config.providers.default_provider or settings.LLM_PROVIDER
    providers = []
    for provider in list_provider_configs():
        if provider.requires_base_url:
            configured = bool((config.providers.ollama_base_url or "").strip())
        else:
            configured = config.providers.system_key(provider.id) is not None
        providers.append(ProviderResponse(
            **provider.to_dict(),
            system_configured=configured,
            is_system_default=provider.id == system_default,
        ))
    return ProviderListResponse(providers=providers)


@router.get("/usage", response_model=UsageSummaryResponse)
async def get_usage(
    user: User = Depends(get_current_user),
    config: SystemConfig = Depends(get_system_config),
    db: Session = Depends(get_db),
):
    """The caller's month-to-date AI usage against the limits."""
    return UsageSummaryResponse(**get_monthly_usage_summary(db, user.id, config.limits))
