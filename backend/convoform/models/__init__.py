"""
convoform models

Pydantic models for the conversation document and the collaborator APIs.
"""

from .document import (
    # Document
    ConversationDocument,
    Step,
    QuestionOption,
    CTAConfig,
    StepVisual,
    FormVisuals,
    FormTheme,
    FormSettings,
    AIContext,
    ToneConfig,
    # Constants
    CURRENT_SCHEMA_VERSION,
    QUESTION_TYPES,
    CHOICE_TYPES,
    TONES,
    CONTEXT_MAX_CHARS,
    DEFAULT_THEME,
    DEFAULT_FORM_SETTINGS,
    # Utilities
    default_document,
    document_to_dict,
    serialize_document,
    effective_settings,
)

__all__ = [
    "ConversationDocument",
    "Step",
    "QuestionOption",
    "CTAConfig",
    "StepVisual",
    "FormVisuals",
    "FormTheme",
    "FormSettings",
    "AIContext",
    "ToneConfig",
    "CURRENT_SCHEMA_VERSION",
    "QUESTION_TYPES",
    "CHOICE_TYPES",
    "TONES",
    "CONTEXT_MAX_CHARS",
    "DEFAULT_THEME",
    "DEFAULT_FORM_SETTINGS",
    "default_document",
    "document_to_dict",
    "serialize_document",
    "effective_settings",
]
