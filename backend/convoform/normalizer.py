"""Load-time migration of stored conversation documents.

:func:`normalize` accepts whatever was stored under any earlier schema and
returns a canonical :class:`ConversationDocument`. It never raises:
malformed entries are defaulted (and logged), never rejected, because it
runs once when an editing session opens and a failure here would leave the
author with no usable draft.

The migration is a composition of one function per schema transition::

    DocumentV1 --migrate_v1_to_v2--> DocumentV2 --migrate_v2_to_v3--> DocumentV3

followed by :func:`build_document`, which coerces every field into the
model's types. Identifiers generated for entries that lack one are derived
from their position, so ``normalize(normalize(x)) == normalize(x)``.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from convoform.helpers.keys import option_value_from_label
from convoform.models.document import (
    CONTEXT_MAX_CHARS,
    CURRENT_SCHEMA_VERSION,
    DEFAULT_THEME,
    DEFAULT_TONE,
    TONES,
    VISUAL_KINDS,
    VISUAL_LAYOUTS,
    VISUAL_SOURCES,
    AIContext,
    ConversationDocument,
    CTAConfig,
    FormSettings,
    FormTheme,
    FormVisuals,
    QuestionOption,
    Step,
    StepVisual,
    ToneConfig,
    clamp_opacity,
    document_to_dict,
)
from convoform.models.legacy import (
    KEY_SOURCES,
    LABEL_SOURCES,
    LEGACY_STEP_FIELDS,
    LEGACY_TYPE_MAP,
    MESSAGE_SOURCES,
    TYPE_SOURCES,
    DocumentV1,
    DocumentV2,
    DocumentV3,
    VersionedDocument,
    classify,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------


def _text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return default


def _optional_text(value: Any) -> Optional[str]:
    text = _text(value)
    return text or None


def _flag(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "on")
    if isinstance(value, (int, float)):
        return value != 0
    return default


def _first_non_empty(source: Mapping[str, Any], names) -> Any:
    for name in names:
        value = source.get(name)
        if value not in (None, ""):
            return value
    return None


def _lenient(model_cls: Type[M], data: Mapping[str, Any]) -> Optional[M]:
    """Validate *data*, dropping offending fields until it fits.

    Returns None only when even an empty payload is rejected.
    """
    payload = dict(data)
    for _ in range(len(payload) + 1):
        try:
            return model_cls.model_validate(payload)
        except ValidationError as e:
            bad = {err["loc"][0] for err in e.errors() if err.get("loc")}
            names = set()
            for name, info in model_cls.model_fields.items():
                if name in bad or info.alias in bad:
                    names.update({name, info.alias})
            names |= bad
            trimmed = {k: v for k, v in payload.items() if k not in names}
            if len(trimmed) == len(payload):
                break
            logger.warning(
                "Dropping invalid %s fields: %s", model_cls.__name__, sorted(map(str, bad))
            )
            payload = trimmed
    return None


# ---------------------------------------------------------------------------
# V1 -> V2: legacy names and shapes
# ---------------------------------------------------------------------------


def _upgrade_option(option: Any) -> Any:
    if isinstance(option, str):
        return {"label": option, "value": option_value_from_label(option)}
    return option


def _upgrade_step(step: Any) -> Any:
    if not isinstance(step, Mapping):
        return step
    upgraded = {k: v for k, v in step.items() if k not in LEGACY_STEP_FIELDS}

    raw_type = _first_non_empty(step, TYPE_SOURCES) or "short_text"
    upgraded["type"] = LEGACY_TYPE_MAP.get(raw_type, raw_type) if isinstance(raw_type, str) else raw_type
    upgraded["message"] = _first_non_empty(step, MESSAGE_SOURCES) or ""
    upgraded["label"] = _first_non_empty(step, LABEL_SOURCES) or ""
    upgraded["key"] = _first_non_empty(step, KEY_SOURCES) or ""

    options = step.get("options")
    if isinstance(options, list):
        upgraded["options"] = [_upgrade_option(opt) for opt in options]
    return upgraded


def migrate_v1_to_v2(doc: DocumentV1) -> DocumentV2:
    """Rename legacy step fields, map legacy types, upgrade options and visuals."""
    data = dict(doc.data)

    questions = data.get("questions")
    if isinstance(questions, list):
        data["questions"] = [_upgrade_step(q) for q in questions]

    visuals = data.get("visuals")
    if isinstance(visuals, Mapping) and "kind" not in visuals and "type" in visuals:
        data["visuals"] = {
            "kind": visuals.get("type"),
            "url": visuals.get("url"),
            "source": "url",
        }

    return DocumentV2(data)


# ---------------------------------------------------------------------------
# V2 -> V3: backfill fields introduced later
# ---------------------------------------------------------------------------


def migrate_v2_to_v3(doc: DocumentV2) -> DocumentV3:
    """Backfill later-schema fields with their documented defaults (never null)."""
    data = dict(doc.data)
    if not isinstance(data.get("aiContext"), Mapping):
        data["aiContext"] = {"context": "", "tone": DEFAULT_TONE, "audience": ""}
    if data.get("endEnabled") is None:
        data["endEnabled"] = True
    for name in ("endCtaText", "endCtaUrl", "aboutYou", "trainAI"):
        if not data.get(name):
            data[name] = ""
    data["schemaVersion"] = CURRENT_SCHEMA_VERSION
    return DocumentV3(data)


MIGRATIONS = {
    1: migrate_v1_to_v2,
    2: migrate_v2_to_v3,
}


def migrate(doc: VersionedDocument) -> DocumentV3:
    """Apply every migration from *doc*'s version up to the current one."""
    current: VersionedDocument = doc
    while current.version < CURRENT_SCHEMA_VERSION:
        current = MIGRATIONS[current.version](current)
    return current


# ---------------------------------------------------------------------------
# V3 -> model
# ---------------------------------------------------------------------------


def _unique(candidate: str, seen: set, position: int) -> str:
    value = candidate
    suffix = position
    while value in seen:
        value = f"{candidate}_{suffix}"
        suffix += 1
    seen.add(value)
    return value


def _build_options(raw: Any, step_id: str) -> List[QuestionOption]:
    if not isinstance(raw, list):
        return []
    options: List[QuestionOption] = []
    seen: set = set()
    for j, opt in enumerate(raw):
        opt = _upgrade_option(opt)
        if not isinstance(opt, Mapping):
            if opt is None:
                logger.warning("Skipping empty option %d of step %s", j, step_id)
                continue
            opt = {"label": _text(opt, str(opt))}
        label = _text(opt.get("label"))
        value = _text(opt.get("value")) or label
        option_id = _text(opt.get("id")) or f"{step_id}_o{j}"
        options.append(
            QuestionOption(id=_unique(option_id, seen, j), label=label, value=value)
        )
    return options


def _build_visual(raw: Any, model_cls: Type[M]) -> Optional[M]:
    if not isinstance(raw, Mapping):
        return None
    data = dict(raw)
    kind = data.get("kind")
    if kind not in VISUAL_KINDS:
        kind = data.get("type")
    if kind not in VISUAL_KINDS:
        logger.warning("Ignoring visual with unknown kind %r", kind)
        return None
    data.pop("type", None)
    data["kind"] = kind
    if data.get("source") not in VISUAL_SOURCES:
        data.pop("source", None)
        if data.get("url"):
            data["source"] = "upload" if data.get("storagePath") else "url"
    if "layout" in data and data["layout"] not in VISUAL_LAYOUTS:
        data.pop("layout")
    if "opacity" in data:
        data["opacity"] = clamp_opacity(data["opacity"])
    for name in ("url", "storagePath", "updatedAt"):
        if name in data:
            data[name] = _optional_text(data[name])
    return _lenient(model_cls, data)


def _build_step(raw: Any, position: int, seen_ids: set) -> Optional[Step]:
    if isinstance(raw, str):
        logger.warning("Upgrading bare-string step %d to a step record", position)
        raw = {"label": raw}
    if not isinstance(raw, Mapping):
        logger.warning("Skipping malformed step %d (%s)", position, type(raw).__name__)
        return None

    step_id = _unique(_text(raw.get("id")) or f"q_legacy_{position}", seen_ids, position)
    step_type = _text(raw.get("type")) or "short_text"
    step_type = LEGACY_TYPE_MAP.get(step_type, step_type)

    cta = _lenient(CTAConfig, raw["cta"]) if isinstance(raw.get("cta"), Mapping) else None

    return Step(
        id=step_id,
        key=_text(raw.get("key")),
        type=step_type,
        label=_text(raw.get("label")),
        message=_text(raw.get("message")),
        required=_flag(raw.get("required"), False),
        options=_build_options(raw.get("options"), step_id),
        order=position,
        cta=cta,
        visual=_build_visual(raw.get("visual"), StepVisual),
        video_url=_optional_text(raw.get("videoUrl")),
        internal_name=_optional_text(raw.get("internalName")),
    )


def _build_ai_context(raw: Any) -> AIContext:
    if not isinstance(raw, Mapping):
        return AIContext()
    tone = raw.get("tone")
    if tone not in TONES:
        tone = DEFAULT_TONE
    tone_config = None
    if isinstance(raw.get("toneConfig"), Mapping):
        tone_config = _lenient(ToneConfig, raw["toneConfig"])
    return AIContext(
        context=_text(raw.get("context"))[:CONTEXT_MAX_CHARS],
        tone=tone,
        audience=_text(raw.get("audience")),
        tone_config=tone_config,
    )


def build_document(doc: DocumentV3) -> ConversationDocument:
    """Coerce a current-schema mapping into the canonical model."""
    data = doc.data

    steps: List[Step] = []
    seen_ids: set = set()
    raw_steps = data.get("questions")
    if isinstance(raw_steps, list):
        for raw in raw_steps:
            try:
                step = _build_step(raw, len(steps), seen_ids)
            except Exception:
                logger.warning("Skipping step %d that could not be normalized", len(steps), exc_info=True)
                continue
            if step is not None:
                steps.append(step)
    elif raw_steps is not None:
        logger.warning("Ignoring non-list questions field (%s)", type(raw_steps).__name__)

    theme = DEFAULT_THEME
    if isinstance(data.get("theme"), Mapping):
        theme = _lenient(FormTheme, data["theme"]) or DEFAULT_THEME

    settings = None
    if isinstance(data.get("settings"), Mapping):
        settings = _lenient(FormSettings, data["settings"])

    tone = None
    if isinstance(data.get("tone"), Mapping):
        tone = _lenient(ToneConfig, data["tone"])

    return ConversationDocument(
        schema_version=CURRENT_SCHEMA_VERSION,
        steps=tuple(steps),
        welcome_enabled=_flag(data.get("welcomeEnabled"), True),
        welcome_title=_text(data.get("welcomeTitle")),
        welcome_message=_text(data.get("welcomeMessage")),
        welcome_cta=_text(data.get("welcomeCta"), "Start"),
        end_enabled=_flag(data.get("endEnabled"), True),
        end_message=_text(data.get("endMessage"), "Thank you for your submission!"),
        end_cta_text=_text(data.get("endCtaText")),
        end_cta_url=_text(data.get("endCtaUrl")),
        end_redirect_enabled=_flag(data.get("endRedirectEnabled"), False),
        end_redirect_url=_text(data.get("endRedirectUrl")),
        theme=theme,
        ai_context=_build_ai_context(data.get("aiContext")),
        visuals=_build_visual(data.get("visuals"), FormVisuals),
        welcome_visual=_build_visual(data.get("welcomeVisual"), StepVisual),
        end_visual=_build_visual(data.get("endVisual"), StepVisual),
        about_you=_text(data.get("aboutYou")),
        train_ai=_text(data.get("trainAI")),
        settings=settings,
        tone=tone,
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def normalize(raw: Any) -> ConversationDocument:
    """Migrate a stored document of any schema version to the canonical model.

    Args:
        raw: The stored document (a mapping), an already canonical
            :class:`ConversationDocument`, or anything else (treated as
            missing, yielding the default document).

    Returns:
        The canonical document. Never raises.
    """
    if isinstance(raw, ConversationDocument):
        raw = document_to_dict(raw)
    if not isinstance(raw, Mapping):
        if raw is not None:
            logger.warning(
                "Stored document is not a mapping (%s); using defaults",
                type(raw).__name__,
            )
        raw = {}

    try:
        versioned = classify(raw)
        if versioned.version < CURRENT_SCHEMA_VERSION:
            logger.info("Migrating document from schema v%d", versioned.version)
        return build_document(migrate(versioned))
    except Exception:
        logger.error("Document normalization failed; using defaults", exc_info=True)
        return ConversationDocument()
