"""
AI wording client (AI collaborator).

- ``POST /api/ai/generate-node``          respondent wording for one step
- ``POST /api/ai/generate-conversation``  a full step outline from a context

:meth:`AIClient.generate_all_wording` runs the per-step call over a whole
document on a best-effort basis: a failed step keeps its previous message,
the batch continues, and the result reports how many steps succeeded and
failed.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from convoform.config import settings
from convoform.exceptions import AIGenerationError
from convoform.helpers.http import JsonApiClient
from convoform.models.document import DEFAULT_TONE, ConversationDocument, Step

logger = logging.getLogger(__name__)

# Steps the wording batch leaves alone.
SKIPPED_WORDING_TYPES = ("cta",)


@dataclass
class BatchWordingResult:
    """Outcome of a best-effort wording batch."""

    steps: Tuple[Step, ...]
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    failed_step_ids: List[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return self.failed == 0


def journey_items(steps: Sequence[Step]) -> List[Dict[str, str]]:
    return [{"label": step.label, "type": step.type} for step in steps]


class AIClient(JsonApiClient):
    """Async HTTP client for the AI wording service."""

    error_cls = AIGenerationError
    service_name = "AI API"

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(
            base_url or settings.ai_api_base_url,
            token=token,
            timeout=timeout,
            transport=transport,
        )

    async def generate_wording(
        self,
        description: str,
        tone: str,
        items: List[Dict[str, str]],
        current_item: Dict[str, str],
    ) -> str:
        """Generate the respondent-facing message for one journey item.

        Raises:
            AIGenerationError: On transport failure, error response or an
                empty message.
        """
        data = await self._request(
            "POST",
            "/api/ai/generate-node",
            json={
                "description": description,
                "tone": tone,
                "journeyItems": items,
                "currentItem": current_item,
            },
        )
        message = data.get("message") if isinstance(data, dict) else None
        if not isinstance(message, str) or not message.strip():
            raise AIGenerationError("AI returned no wording")
        return message.strip()

    async def generate_step_wording(self, doc: ConversationDocument, step: Step) -> str:
        """Wording for *step* using the document's AI context and journey."""
        ctx = doc.ai_context
        return await self.generate_wording(
            description=ctx.context,
            tone=ctx.tone or DEFAULT_TONE,
            items=journey_items(doc.steps),
            current_item={"label": step.label, "type": step.type},
        )

    async def generate_conversation(
        self, context: str, tone: str = DEFAULT_TONE, audience: str = ""
    ) -> List[Dict[str, Any]]:
        """Generate a step outline: ``[{label, type, required, options}]``.

        Raises:
            AIGenerationError: On failure or when no questions come back.
        """
        data = await self._request(
            "POST",
            "/api/ai/generate-conversation",
            json={"context": context, "tone": tone, "audience": audience},
        )
        questions = data.get("questions") if isinstance(data, dict) else None
        if not isinstance(questions, list) or not questions:
            raise AIGenerationError("No questions were generated")
        return questions

    async def generate_all_wording(
        self, doc: ConversationDocument, steps: Optional[Sequence[Step]] = None
    ) -> BatchWordingResult:
        """Regenerate wording for every step, one request at a time.

        Args:
            doc: Supplies the AI context.
            steps: Steps to word (defaults to ``doc.steps``); they also
                form the journey sent with each request.

        Returns:
            BatchWordingResult with the updated steps. Never raises for a
            single step's failure.
        """
        steps = tuple(doc.steps if steps is None else steps)
        ctx = doc.ai_context
        items = journey_items(steps)
        result = BatchWordingResult(steps=steps)
        updated = list(steps)

        for i, step in enumerate(steps):
            if step.type in SKIPPED_WORDING_TYPES:
                result.skipped += 1
                continue
            try:
                message = await self.generate_wording(
                    description=ctx.context,
                    tone=ctx.tone or DEFAULT_TONE,
                    items=items,
                    current_item={"label": step.label, "type": step.type},
                )
            except AIGenerationError as e:
                logger.warning("Wording for step %s failed: %s", step.id, e)
                result.failed += 1
                result.failed_step_ids.append(step.id)
                continue
            updated[i] = step.model_copy(update={"message": message})
            result.succeeded += 1

        result.steps = tuple(updated)
        logger.info(
            "Batch wording: %d succeeded, %d failed, %d skipped",
            result.succeeded, result.failed, result.skipped,
        )
        return result
