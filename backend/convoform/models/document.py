"""Canonical (schema version 3) conversation document model.

Every model here is frozen: a document is a value, and the mutation API
produces a new one instead of editing in place. Attribute names are
snake_case; the wire format keeps the historical camelCase names through
aliases, so always dump with ``by_alias=True`` (see :func:`document_to_dict`).
"""

import json
from typing import Any, Dict, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

CURRENT_SCHEMA_VERSION = 3

QUESTION_TYPES = (
    "short_text",
    "long_text",
    "email",
    "phone",
    "number",
    "date",
    "single_choice",
    "multiple_choice",
    "yes_no",
    "file_upload",
    "statement",
    "cta",
)

CHOICE_TYPES = ("single_choice", "multiple_choice")

TONES = ("friendly", "professional", "luxury", "playful")
DEFAULT_TONE = "friendly"

VISUAL_KINDS = ("none", "image", "video")
VISUAL_SOURCES = ("upload", "url")
VISUAL_LAYOUTS = ("center", "left", "right", "fill")

CONTEXT_MAX_CHARS = 2000
OPACITY_MIN = 10
OPACITY_MAX = 100

DEFAULT_END_MESSAGE = "Thank you for your submission!"
DEFAULT_WELCOME_CTA = "Start"

VisualKind = Literal["none", "image", "video"]
VisualSource = Literal["upload", "url"]
VisualLayout = Literal["center", "left", "right", "fill"]
Tone = Literal["friendly", "professional", "luxury", "playful"]


def clamp_opacity(value: Any) -> Optional[int]:
    """Coerce *value* to an integer percentage in [10, 100], or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = int(round(float(value)))
    except (TypeError, ValueError):
        return None
    return max(OPACITY_MIN, min(OPACITY_MAX, number))


class _Frozen(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        extra="ignore",
    )


# ---------------------------------------------------------------------------
# Step parts
# ---------------------------------------------------------------------------


class QuestionOption(_Frozen):
    id: str
    label: str
    value: str


class CTAConfig(_Frozen):
    text: str = "Learn More"
    url: str = ""
    open_in_new_tab: bool = True


class StepVisual(_Frozen):
    """Background visual attached to one screen (a step, welcome or end)."""

    kind: VisualKind = "none"
    source: Optional[VisualSource] = None
    url: Optional[str] = None
    storage_path: Optional[str] = None
    layout: Optional[VisualLayout] = None
    opacity: Optional[int] = None

    @field_validator("opacity", mode="before")
    @classmethod
    def _clamp_opacity(cls, v):
        return clamp_opacity(v)


class Step(_Frozen):
    """One unit of the conversation (a.k.a. question)."""

    id: str
    key: str = ""
    type: str = "short_text"
    label: str = ""
    message: str = ""
    required: bool = False
    options: Tuple[QuestionOption, ...] = ()
    order: int = 0
    cta: Optional[CTAConfig] = None
    visual: Optional[StepVisual] = None
    video_url: Optional[str] = None
    internal_name: Optional[str] = None


# ---------------------------------------------------------------------------
# Document-level parts
# ---------------------------------------------------------------------------


class FormTheme(_Frozen):
    button_style: Optional[Literal["rounded", "square", "pill"]] = None
    spacing: Optional[Literal["compact", "normal", "relaxed"]] = None
    primary_color: Optional[str] = None
    secondary_color: Optional[str] = None
    background_color: Optional[str] = None
    background_type: Optional[Literal["solid", "gradient", "image"]] = None
    background_gradient: Optional[str] = None
    background_image: Optional[str] = None
    font_family: Optional[str] = None
    card_style: Optional[Literal["light", "dark"]] = None
    logo_url: Optional[str] = None
    bubble_style: Optional[Literal["rounded", "minimal"]] = None
    bot_bubble_color: Optional[str] = None
    user_bubble_color: Optional[str] = None
    custom_css: Optional[str] = None


DEFAULT_THEME = FormTheme(
    button_style="rounded",
    spacing="normal",
    primary_color="#111827",
    secondary_color="#64748b",
    background_color="#ffffff",
    background_type="solid",
    font_family="Inter",
    card_style="light",
    bubble_style="rounded",
    bot_bubble_color="#f1f5f9",
    user_bubble_color="#2563eb",
)


class ToneConfig(_Frozen):
    preset: Literal["energetic", "sassy", "witty", "professional", "casual", "concise"] = "professional"
    custom: str = ""
    chattiness: Optional[float] = Field(None, ge=0, le=1)


class AIContext(_Frozen):
    """Authoring context handed to the wording service."""

    context: str = Field("", max_length=CONTEXT_MAX_CHARS)
    tone: Tone = DEFAULT_TONE
    audience: str = ""
    tone_config: Optional[ToneConfig] = None


class FormVisuals(_Frozen):
    """The single document-wide fallback background."""

    kind: VisualKind = "none"
    source: Optional[VisualSource] = None
    url: Optional[str] = None
    storage_path: Optional[str] = None
    updated_at: Optional[str] = None


class FormSettings(_Frozen):
    """Respondent-facing behaviour switches. Unset fields fall back to defaults."""

    colors: Optional[Dict[str, str]] = None
    text_size: Optional[Literal["small", "medium", "large"]] = None
    hide_branding: Optional[bool] = None
    is_closed: Optional[bool] = None
    tracking: Optional[Dict[str, bool]] = None
    legal_disclaimer: Optional[Dict[str, Any]] = None
    notifications: Optional[Dict[str, Any]] = None
    skip_welcome: Optional[bool] = None
    restore_chat: Optional[bool] = None
    strict_data_collection: Optional[bool] = None


DEFAULT_FORM_SETTINGS = FormSettings(
    colors={"background": "#667eea", "text": "#ffffff", "button": "#111827"},
    text_size="medium",
    hide_branding=False,
    is_closed=False,
    tracking={"enabled": True, "excludeBuilderPreview": True, "anonymize": False},
    legal_disclaimer={"enabled": False, "text": ""},
    notifications={"enabled": False, "email": ""},
    skip_welcome=False,
    restore_chat=False,
    strict_data_collection=True,
)


class ConversationDocument(_Frozen):
    """The draft (or published) configuration of one conversation."""

    schema_version: int = CURRENT_SCHEMA_VERSION
    steps: Tuple[Step, ...] = Field(default=(), alias="questions")

    welcome_enabled: bool = True
    welcome_title: str = ""
    welcome_message: str = ""
    welcome_cta: str = DEFAULT_WELCOME_CTA

    end_enabled: bool = True
    end_message: str = DEFAULT_END_MESSAGE
    end_cta_text: str = ""
    end_cta_url: str = ""
    end_redirect_enabled: bool = False
    end_redirect_url: str = ""

    theme: FormTheme = DEFAULT_THEME
    ai_context: AIContext = AIContext()
    visuals: Optional[FormVisuals] = None
    welcome_visual: Optional[StepVisual] = None
    end_visual: Optional[StepVisual] = None
    about_you: str = ""
    train_ai: str = Field("", alias="trainAI")
    settings: Optional[FormSettings] = None
    tone: Optional[ToneConfig] = None

    def step_by_id(self, step_id: str) -> Optional[Step]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def index_of(self, step_id: str) -> int:
        for i, step in enumerate(self.steps):
            if step.id == step_id:
                return i
        return -1


# ---------------------------------------------------------------------------
# Construction & serialization
# ---------------------------------------------------------------------------


def default_document() -> ConversationDocument:
    """Shape of a brand-new conversation."""
    return ConversationDocument()


def document_to_dict(doc: ConversationDocument) -> Dict[str, Any]:
    """Wire (camelCase, JSON-safe) form of *doc*."""
    return doc.model_dump(mode="json", by_alias=True, exclude_none=True)


def serialize_document(doc: ConversationDocument) -> str:
    """Deterministic serialization used for structural comparison."""
    return json.dumps(document_to_dict(doc), sort_keys=True, separators=(",", ":"))


def effective_settings(doc: ConversationDocument) -> FormSettings:
    """Document settings merged over :data:`DEFAULT_FORM_SETTINGS`.

    Nested mappings (colors, tracking, ...) are merged one level deep.
    """
    merged = DEFAULT_FORM_SETTINGS.model_dump()
    if doc.settings is not None:
        for name, value in doc.settings.model_dump(exclude_none=True).items():
            if isinstance(value, dict) and isinstance(merged.get(name), dict):
                merged[name] = {**merged[name], **value}
            else:
                merged[name] = value
    return FormSettings(**merged)
