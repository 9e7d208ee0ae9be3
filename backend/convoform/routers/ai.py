"""AI wording router: single-step wording and full conversation generation."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from convoform.deps import _safe_error, get_wording_service
from convoform.exceptions import AIGenerationError
from convoform.models.ai import (
    GenerateConversationRequest,
    GenerateConversationResponse,
    GenerateWordingRequest,
    GenerateWordingResponse,
)
from convoform.wording_service import WordingService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/ai", tags=["ai"])


@router.post("/generate-node", response_model=GenerateWordingResponse)
async def generate_node(
    body: GenerateWordingRequest,
    service: WordingService = Depends(get_wording_service),
):
    """Respondent-facing message for one journey item."""
    if body.current_item is None or not body.current_item.label:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Current item label is required",
        )
    try:
        message = await service.generate_wording(body)
    except AIGenerationError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("wording generation", e),
        ) from e
    return GenerateWordingResponse(message=message)


@router.post("/generate-conversation", response_model=GenerateConversationResponse)
async def generate_conversation(
    body: GenerateConversationRequest,
    service: WordingService = Depends(get_wording_service),
):
    """Conversation outline from a situation description."""
    if not body.context.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Context is required"
        )
    try:
        questions = await service.generate_conversation(body)
    except AIGenerationError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("conversation generation", e),
        ) from e
    return GenerateConversationResponse(questions=questions)
