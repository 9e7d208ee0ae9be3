"""Historical document shapes understood by the normalizer.

Stored documents carry no reliable version marker, so raw input is
classified by the fields it uses:

- ``DocumentV1``: legacy step field names (``ui_type``, ``user_prompt``,
  ``intent``, ``field_key``), legacy step types (``dropdown``, ``rating``...),
  bare-string options, or a ``visuals`` object tagged by ``type``.
- ``DocumentV2``: current field names, but fields added later (AI context,
  end screen switches, ancillary text) may be missing.
- ``DocumentV3``: canonical shape, tagged ``schemaVersion: 3``.

Each variant wraps the raw mapping; the migrations in
:mod:`convoform.normalizer` turn one variant into the next.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Union

LEGACY_TYPE_MAP = {
    "dropdown": "single_choice",
    "multi_select": "multiple_choice",
    "checkbox": "yes_no",
    "consent": "yes_no",
    "rating": "number",
    "time": "short_text",
}

# Older field names, in precedence order after the current name.
MESSAGE_SOURCES = ("message", "user_prompt")
LABEL_SOURCES = ("label", "intent")
KEY_SOURCES = ("key", "field_key")
TYPE_SOURCES = ("type", "ui_type")

LEGACY_STEP_FIELDS = ("user_prompt", "intent", "field_key", "ui_type")


@dataclass(frozen=True)
class DocumentV1:
    data: Dict[str, Any] = field(default_factory=dict)
    version: int = 1


@dataclass(frozen=True)
class DocumentV2:
    data: Dict[str, Any] = field(default_factory=dict)
    version: int = 2


@dataclass(frozen=True)
class DocumentV3:
    data: Dict[str, Any] = field(default_factory=dict)
    version: int = 3


VersionedDocument = Union[DocumentV1, DocumentV2, DocumentV3]


def _step_is_legacy(step: Any) -> bool:
    if not isinstance(step, Mapping):
        return False
    if any(name in step for name in LEGACY_STEP_FIELDS):
        return True
    step_type = step.get("type")
    if isinstance(step_type, str) and step_type in LEGACY_TYPE_MAP:
        return True
    options = step.get("options")
    if isinstance(options, list) and any(isinstance(opt, str) for opt in options):
        return True
    return False


def has_legacy_markers(raw: Mapping[str, Any]) -> bool:
    """True when *raw* uses any pre-V2 field name or shape."""
    questions = raw.get("questions")
    if isinstance(questions, list) and any(_step_is_legacy(q) for q in questions):
        return True
    visuals = raw.get("visuals")
    if isinstance(visuals, Mapping) and "kind" not in visuals and "type" in visuals:
        return True
    return False


def classify(raw: Mapping[str, Any]) -> VersionedDocument:
    """Wrap *raw* in the variant matching the fields it actually uses."""
    data = dict(raw)
    if has_legacy_markers(data):
        return DocumentV1(data)
    declared = data.get("schemaVersion")
    if isinstance(declared, int) and not isinstance(declared, bool) and declared >= 3:
        return DocumentV3(data)
    return DocumentV2(data)
