"""
Wording service behind the reference AI API.

Turns one journey item into the message a respondent sees, and a free-text
situation description into a full conversation outline, using chat
completions. Every request gets two attempts; the second one carries a
corrective follow-up explaining what was wrong with the first answer.

The client is created on first use: Azure OpenAI when
``AZURE_OPENAI_ENDPOINT`` and ``AZURE_OPENAI_KEY`` are set, OpenAI
otherwise.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from openai import AsyncAzureOpenAI, AsyncOpenAI

from convoform.config import settings
from convoform.exceptions import AIGenerationError
from convoform.models.ai import (
    GENERATED_QUESTION_TYPES,
    GeneratedQuestion,
    GenerateConversationRequest,
    GenerateWordingRequest,
)

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 2


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

WORDING_SYSTEM_PROMPT = """\
You are a conversational interface speaking directly to an end user who is \
answering a guided interaction.

You are NOT assisting the form creator.
You are NOT allowed to ask configuration, product, or meta questions.

You will be given:

* A global conversation description (for background only)
* A tone of voice
* ONE journey item describing what to ask or say to the respondent

### Your task

Turn the journey item into a single message shown to the respondent.

### Absolute rules

* Speak ONLY to the respondent
* NEVER ask questions about how the form works
* NEVER reference the form, the system, the AI, or the creator
* NEVER introduce new topics beyond the journey item
* Produce exactly ONE message per step

### Message guidelines

* If the journey item is a question, ask it naturally
* If the journey item is an instruction, present it clearly
* Use simple, human language
* Match the selected tone of voice
* Be neutral and professional for sensitive inputs (email, phone, company name)

### Output

Return ONLY the message text shown to the respondent.
No explanations. No formatting. No metadata.\
"""

CONVERSATION_SYSTEM_PROMPT = """\
You are an expert conversation designer for interactive forms.

Transform a high-level situation description into a complete, structured \
conversational form.

You will be given a form context describing the situation, goals and \
audience, plus the desired tone and audience type.

### Rules

* Think in terms of a conversation, not a survey
* Questions should follow a natural order (confirmation, details, preferences)
* Do NOT ask redundant or unnecessary questions
* Use simple, clear language
* Match the requested tone consistently
* Do NOT invent information not implied by the context
* If something is optional or sensitive, mark it as not required

### Question types you may use

short_text, long_text, single_choice, multiple_choice, yes_no, date, number, email, phone

### Output format (strict)

Return ONLY a JSON object with a "questions" array. Each item must have this shape:

{
  "label": string,
  "type": string,
  "required": boolean,
  "options": string[] | null
}\
"""


def build_wording_prompt(req: GenerateWordingRequest) -> str:
    journey = ", ".join(
        f"{i + 1}. {item.label} ({item.type})" for i, item in enumerate(req.journey_items)
    )
    current = req.current_item
    return (
        f'Global description: "{req.description}"\n'
        f"Tone: {req.tone}\n"
        f"Full journey: {journey}\n"
        f'Current journey item to generate: "{current.label}" (type: {current.type})'
    )


def build_conversation_prompt(req: GenerateConversationRequest) -> str:
    prompt = f'Context: "{req.context}"\nTone: {req.tone}'
    if req.audience:
        prompt += f"\nAudience: {req.audience}"
    return prompt


def validate_generated_item(data: Any) -> Optional[GeneratedQuestion]:
    """Coerce one generated item, or None when it has no label or type."""
    if not isinstance(data, dict):
        return None
    if not data.get("label") or not data.get("type"):
        return None
    item_type = data["type"] if data["type"] in GENERATED_QUESTION_TYPES else "short_text"
    options = data.get("options")
    required = data.get("required")
    return GeneratedQuestion(
        label=str(data["label"]),
        type=item_type,
        required=True if required is None else bool(required),
        options=[str(opt) for opt in options] if isinstance(options, list) else None,
    )


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

_client = None


def get_openai_client():
    """Shared async chat client, created on first use.

    Raises:
        AIGenerationError: If no model credentials are configured.
    """
    global _client
    if _client is not None:
        return _client
    if settings.azure_endpoint and settings.azure_api_key:
        _client = AsyncAzureOpenAI(
            api_key=settings.azure_api_key,
            api_version=settings.azure_api_version,
            azure_endpoint=settings.azure_endpoint,
        )
        logger.info("Wording service using Azure OpenAI at %s", settings.azure_endpoint)
    elif settings.openai_api_key:
        _client = AsyncOpenAI(api_key=settings.openai_api_key)
        logger.info("Wording service using OpenAI")
    else:
        raise AIGenerationError("No OpenAI credentials configured")
    return _client


# ---------------------------------------------------------------------------
# WordingService
# ---------------------------------------------------------------------------


class WordingService:
    """Stateless wording and conversation generation."""

    def __init__(self, client=None, model: Optional[str] = None) -> None:
        self._client = client
        self.model = model or settings.openai_model

    @property
    def client(self):
        if self._client is None:
            self._client = get_openai_client()
        return self._client

    async def _complete(self, messages: List[Dict[str, str]], **kwargs) -> str:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            temperature=0.7,
            **kwargs,
        )
        if not response.choices:
            return ""
        return (response.choices[0].message.content or "").strip()

    async def generate_wording(self, req: GenerateWordingRequest) -> str:
        """Respondent-facing message for ``req.current_item``.

        Raises:
            ValueError: If the request has no current item label.
            AIGenerationError: If both attempts fail.
        """
        if req.current_item is None or not req.current_item.label:
            raise ValueError("Current item label is required")

        user_prompt = build_wording_prompt(req)
        last_error: Optional[str] = None
        for attempt in range(MAX_ATTEMPTS):
            messages = [
                {"role": "system", "content": WORDING_SYSTEM_PROMPT},
                {"role": "user", "content": user_prompt},
            ]
            if attempt > 0 and last_error:
                messages.append(
                    {
                        "role": "user",
                        "content": "Your previous response was empty. Please return ONLY "
                        "the message text for the respondent. No JSON, no formatting.",
                    }
                )
            try:
                content = await self._complete(messages, max_tokens=500)
            except AIGenerationError:
                raise
            except Exception as e:
                logger.warning("Wording attempt %d failed: %s", attempt + 1, e)
                last_error = str(e)
                if attempt == MAX_ATTEMPTS - 1:
                    raise AIGenerationError(f"Failed to generate wording: {e}") from e
                continue
            if content:
                return content
            last_error = "Empty response from AI"

        raise AIGenerationError("Failed to generate wording after retries")

    async def generate_conversation(self, req: GenerateConversationRequest) -> List[GeneratedQuestion]:
        """Conversation outline for ``req.context``.

        Raises:
            ValueError: If the context is blank.
            AIGenerationError: If both attempts fail.
        """
        if not req.context.strip():
            raise ValueError("Context is required")

        user_prompt = build_conversation_prompt(req)
        last_error: Optional[str] = None
        for attempt in range(MAX_ATTEMPTS):
            messages = [
                {"role": "system", "content": CONVERSATION_SYSTEM_PROMPT},
                {"role": "user", "content": user_prompt},
            ]
            if attempt > 0 and last_error:
                messages.append(
                    {
                        "role": "user",
                        "content": "Your previous response was invalid. Please try again and "
                        'return ONLY valid JSON with a "questions" array. '
                        f"Error: {last_error}",
                    }
                )
            try:
                content = await self._complete(
                    messages,
                    max_tokens=4000,
                    response_format={"type": "json_object"},
                )
                if not content:
                    last_error = "Empty response from AI"
                    continue
                parsed = json.loads(content)
            except AIGenerationError:
                raise
            except Exception as e:
                logger.warning("Conversation attempt %d failed: %s", attempt + 1, e)
                last_error = str(e)
                if attempt == MAX_ATTEMPTS - 1:
                    raise AIGenerationError(f"Failed to generate conversation: {e}") from e
                continue

            raw_items = []
            if isinstance(parsed, dict):
                raw_items = parsed.get("questions") or parsed.get("nodes") or []
            if not isinstance(raw_items, list) or not raw_items:
                last_error = "Response did not contain a valid questions array"
                continue
            items = [q for q in (validate_generated_item(i) for i in raw_items) if q is not None]
            if not items:
                last_error = "No valid questions in the response"
                continue

            logger.info("Generated %d questions with %s", len(items), self.model)
            return items

        raise AIGenerationError("Failed to generate conversation after retries")
