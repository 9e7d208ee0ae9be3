"""Request/response models for the AI wording API."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from convoform.models.document import DEFAULT_TONE

# Types the conversation generator may emit; anything else becomes short_text.
GENERATED_QUESTION_TYPES = (
    "short_text",
    "long_text",
    "single_choice",
    "multiple_choice",
    "yes_no",
    "date",
    "number",
    "email",
    "phone",
)


class JourneyItem(BaseModel):
    label: str = ""
    type: str = "short_text"


class GenerateWordingRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    description: str = ""
    tone: str = DEFAULT_TONE
    journey_items: List[JourneyItem] = Field(default_factory=list, alias="journeyItems")
    current_item: Optional[JourneyItem] = Field(None, alias="currentItem")

    @field_validator("tone", mode="before")
    @classmethod
    def default_tone(cls, v):
        return v or DEFAULT_TONE


class GenerateWordingResponse(BaseModel):
    message: str


class GenerateConversationRequest(BaseModel):
    context: str = ""
    tone: str = DEFAULT_TONE
    audience: str = ""

    @field_validator("tone", mode="before")
    @classmethod
    def default_tone(cls, v):
        return v or DEFAULT_TONE

    @field_validator("audience", mode="before")
    @classmethod
    def default_audience(cls, v):
        return v or ""


class GeneratedQuestion(BaseModel):
    label: str
    type: str
    required: bool = True
    options: Optional[List[str]] = None


class GenerateConversationResponse(BaseModel):
    questions: List[GeneratedQuestion]
