"""Health-check router."""

import logging

from fastapi import APIRouter

from convoform.config import settings

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Service status and which optional capabilities are configured."""
    capabilities = ["forms", "visual_upload"]
    degraded = []
    if settings.openai_api_key or (settings.azure_endpoint and settings.azure_api_key):
        capabilities.append("ai_wording")
    else:
        degraded.append("ai_wording")
    return {
        "status": "degraded" if degraded else "ok",
        "capabilities": capabilities,
        "degraded": degraded,
    }
