"""Mutation API over the conversation document.

Every operation is a pure function ``(doc, ...) -> doc``. The input is never
modified; a new document is returned, or ``doc`` itself when the operation
turns out to be a no-op (unknown id, unchanged value, ``from == to``
reorder). Callers rely on that identity check to skip autosave.

Operations are total: a missing target or an invalid patch value is logged
and ignored, never raised. Whenever the step list changes shape, ``order``
is rewritten to ``0..n-1`` in array order.

Patches are mappings keyed by attribute name (``welcome_title``) or by the
camelCase wire name (``welcomeTitle``).
"""

import logging
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, TypeVar, Union

from pydantic import BaseModel, ValidationError

from convoform.helpers.keys import (
    generate_key_from_label,
    new_option_id,
    new_step_id,
    option_value_from_label,
)
from convoform.models.document import (
    CONTEXT_MAX_CHARS,
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
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

# Nested objects that can be patched as a unit, with the value used when
# the document does not carry one yet.
SECTIONS: Dict[str, type] = {
    "ai_context": AIContext,
    "theme": FormTheme,
    "settings": FormSettings,
    "tone": ToneConfig,
}

# Visual targets other than a step id.
GLOBAL_VISUAL = "global"
WELCOME_VISUAL = "welcome"
END_VISUAL = "end"

VisualTarget = str
VisualPatch = Union[StepVisual, FormVisuals, Mapping[str, Any]]


# ---------------------------------------------------------------------------
# Internals
# ---------------------------------------------------------------------------


def _field_name(model_cls: type, key: str) -> Optional[str]:
    if key in model_cls.model_fields:
        return key
    for name, info in model_cls.model_fields.items():
        if info.alias == key:
            return name
    return None


def _replace(model: M, changes: Mapping[str, Any]) -> M:
    """Copy of *model* with *changes* applied and validated.

    Returns *model* itself when nothing actually changes or the changes
    do not validate.
    """
    model_cls = type(model)
    updates = {}
    for key, value in changes.items():
        name = _field_name(model_cls, key)
        if name is None:
            logger.debug("Ignoring unknown %s field %r", model_cls.__name__, key)
            continue
        if getattr(model, name) != value:
            updates[name] = value
    if not updates:
        return model

    data = {name: getattr(model, name) for name in model_cls.model_fields}
    data.update(updates)
    try:
        return model_cls.model_validate(data)
    except ValidationError as e:
        logger.warning("Rejected %s patch %s: %s", model_cls.__name__, sorted(updates), e)
        return model


def _reindexed(steps: Iterable[Step]) -> Tuple[Step, ...]:
    return tuple(
        step if step.order == i else step.model_copy(update={"order": i})
        for i, step in enumerate(steps)
    )


def _with_steps(doc: ConversationDocument, steps: Iterable[Step]) -> ConversationDocument:
    return doc.model_copy(update={"steps": _reindexed(steps)})


def _locate(doc: ConversationDocument, step_id: str) -> int:
    index = doc.index_of(step_id)
    if index < 0:
        logger.debug("No step with id %r; ignoring", step_id)
    return index


def _replace_step(doc: ConversationDocument, index: int, step: Step) -> ConversationDocument:
    if step is doc.steps[index]:
        return doc
    steps = list(doc.steps)
    steps[index] = step
    return _with_steps(doc, steps)


# ---------------------------------------------------------------------------
# Document and sections
# ---------------------------------------------------------------------------


def patch_document(doc: ConversationDocument, patch: Mapping[str, Any]) -> ConversationDocument:
    """Patch top-level document fields (welcome/end screen, free text...).

    Steps are managed by the step operations below and cannot be replaced
    through this call.
    """
    patch = {k: v for k, v in patch.items() if k not in ("steps", "questions")}
    return _replace(doc, patch)


def patch_section(
    doc: ConversationDocument, section: str, patch: Mapping[str, Any]
) -> ConversationDocument:
    """Merge *patch* over one nested object (``ai_context``, ``theme``, ``settings``, ``tone``)."""
    name = _field_name(ConversationDocument, section)
    if name not in SECTIONS:
        logger.warning("Unknown document section %r; ignoring patch", section)
        return doc

    if name == "ai_context":
        patch = dict(patch)
        context = patch.get("context")
        if isinstance(context, str) and len(context) > CONTEXT_MAX_CHARS:
            patch["context"] = context[:CONTEXT_MAX_CHARS]

    current = getattr(doc, name) or SECTIONS[name]()
    updated = _replace(current, patch)
    if updated is current:
        return doc
    return doc.model_copy(update={name: updated})


def update_ai_context(doc: ConversationDocument, patch: Mapping[str, Any]) -> ConversationDocument:
    return patch_section(doc, "ai_context", patch)


def update_theme(doc: ConversationDocument, patch: Mapping[str, Any]) -> ConversationDocument:
    return patch_section(doc, "theme", patch)


def update_settings(doc: ConversationDocument, patch: Mapping[str, Any]) -> ConversationDocument:
    return patch_section(doc, "settings", patch)


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------


def update_step(
    doc: ConversationDocument, step_id: str, patch: Mapping[str, Any]
) -> ConversationDocument:
    """Patch one step by id.

    A label change without an explicit ``key`` carries the key along only
    while the key is still the auto-derived one (empty, or the slug of the
    previous label). Once the author edits the key by hand it stays put.
    """
    index = _locate(doc, step_id)
    if index < 0:
        return doc
    step = doc.steps[index]

    patch = {k: v for k, v in patch.items() if k not in ("id", "order")}
    if "label" in patch and "key" not in patch:
        if not step.key or step.key == generate_key_from_label(step.label):
            patch["key"] = generate_key_from_label(patch["label"])

    return _replace_step(doc, index, _replace(step, patch))


def set_step_message(doc: ConversationDocument, step_id: str, message: str) -> ConversationDocument:
    return update_step(doc, step_id, {"message": message})


def add_step(doc: ConversationDocument, step_type: str = "short_text") -> ConversationDocument:
    """Append a blank required step with a fresh id."""
    step = Step(
        id=new_step_id(),
        type=step_type,
        required=True,
        order=len(doc.steps),
    )
    return _with_steps(doc, doc.steps + (step,))


def add_cta_step(doc: ConversationDocument) -> ConversationDocument:
    """Append a call-to-action step with a default button."""
    order = len(doc.steps)
    step = Step(
        id=new_step_id(),
        key=f"cta_{order}",
        type="cta",
        label="Call to Action",
        required=False,
        order=order,
        cta=CTAConfig(text="Learn More", url="https://example.com", open_in_new_tab=True),
    )
    return _with_steps(doc, doc.steps + (step,))


def duplicate_step(doc: ConversationDocument, step_id: str) -> ConversationDocument:
    """Append a copy of a step.

    The copy gets a fresh id (and fresh option ids), a ``_copy`` key suffix
    and an empty message, so its respondent wording has to be authored or
    regenerated.
    """
    index = _locate(doc, step_id)
    if index < 0:
        return doc
    source = doc.steps[index]
    copy = source.model_copy(
        update={
            "id": new_step_id(),
            "key": f"{source.key}_copy" if source.key else "",
            "message": "",
            "options": tuple(
                opt.model_copy(update={"id": new_option_id()}) for opt in source.options
            ),
        }
    )
    return _with_steps(doc, doc.steps + (copy,))


def delete_step(doc: ConversationDocument, step_id: str) -> ConversationDocument:
    index = _locate(doc, step_id)
    if index < 0:
        return doc
    return _with_steps(doc, doc.steps[:index] + doc.steps[index + 1:])


def reorder_steps(doc: ConversationDocument, from_index: int, to_index: int) -> ConversationDocument:
    """Move the step at *from_index* to *to_index* (drag-and-drop semantics)."""
    count = len(doc.steps)
    if from_index == to_index:
        return doc
    if not (0 <= from_index < count and 0 <= to_index < count):
        logger.debug("Reorder %d -> %d out of range for %d steps", from_index, to_index, count)
        return doc
    steps = list(doc.steps)
    moved = steps.pop(from_index)
    steps.insert(to_index, moved)
    return _with_steps(doc, steps)


def replace_steps(doc: ConversationDocument, items: Iterable[Mapping[str, Any]]) -> ConversationDocument:
    """Replace every step with a generated conversation outline.

    Each item carries ``label``, ``type``, ``required`` and optionally
    ``options`` (strings or ``{label, value}`` mappings). Keys are derived
    from labels (``question_<i>`` when a label is blank) and options get
    fresh ids.
    """
    steps = []
    for i, item in enumerate(items):
        label = str(item.get("label") or "")
        options = []
        for opt in item.get("options") or ():
            if isinstance(opt, Mapping):
                opt_label = str(opt.get("label") or "")
                value = str(opt.get("value") or "") or option_value_from_label(opt_label)
            else:
                opt_label = str(opt)
                value = option_value_from_label(opt_label)
            options.append(QuestionOption(id=new_option_id(), label=opt_label, value=value))
        steps.append(
            Step(
                id=new_step_id(),
                key=generate_key_from_label(label or f"question_{i}"),
                type=str(item.get("type") or "short_text"),
                label=label,
                required=bool(item.get("required", True)),
                options=tuple(options),
            )
        )
    return _with_steps(doc, steps)


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------


def add_option(doc: ConversationDocument, step_id: str, label: str = "") -> ConversationDocument:
    index = _locate(doc, step_id)
    if index < 0:
        return doc
    step = doc.steps[index]
    label = label or f"Option {len(step.options) + 1}"
    option = QuestionOption(id=new_option_id(), label=label, value=option_value_from_label(label))
    return _replace_step(doc, index, step.model_copy(update={"options": step.options + (option,)}))


def update_option(
    doc: ConversationDocument, step_id: str, option_id: str, patch: Mapping[str, Any]
) -> ConversationDocument:
    """Patch one option. Its value follows label edits unless set explicitly."""
    index = _locate(doc, step_id)
    if index < 0:
        return doc
    step = doc.steps[index]
    options = list(step.options)
    for i, option in enumerate(options):
        if option.id == option_id:
            break
    else:
        logger.debug("No option %r on step %r; ignoring", option_id, step_id)
        return doc

    patch = {k: v for k, v in patch.items() if k != "id"}
    if "label" in patch and "value" not in patch:
        if not option.value or option.value == option_value_from_label(option.label):
            patch["value"] = option_value_from_label(patch["label"])
    updated = _replace(option, patch)
    if updated is option:
        return doc
    options[i] = updated
    return _replace_step(doc, index, step.model_copy(update={"options": tuple(options)}))


def remove_option(doc: ConversationDocument, step_id: str, option_id: str) -> ConversationDocument:
    index = _locate(doc, step_id)
    if index < 0:
        return doc
    step = doc.steps[index]
    options = tuple(opt for opt in step.options if opt.id != option_id)
    if len(options) == len(step.options):
        return doc
    return _replace_step(doc, index, step.model_copy(update={"options": options}))


# ---------------------------------------------------------------------------
# Visuals
# ---------------------------------------------------------------------------


def _coerce_visual(model_cls: type, visual: VisualPatch):
    if isinstance(visual, BaseModel):
        visual = visual.model_dump(by_alias=True, exclude_none=True)
    try:
        return model_cls.model_validate(dict(visual))
    except ValidationError as e:
        logger.warning("Rejected %s: %s", model_cls.__name__, e)
        return None


def set_visual(doc: ConversationDocument, target: VisualTarget, visual: VisualPatch) -> ConversationDocument:
    """Attach a background visual.

    *target* is :data:`GLOBAL_VISUAL` (the document-wide fallback),
    :data:`WELCOME_VISUAL`, :data:`END_VISUAL` or a step id. Opacity is
    clamped to [10, 100] by the model.
    """
    if target == GLOBAL_VISUAL:
        value = _coerce_visual(FormVisuals, visual)
        if value is None or value == doc.visuals:
            return doc
        return doc.model_copy(update={"visuals": value})

    value = _coerce_visual(StepVisual, visual)
    if value is None:
        return doc
    if target in (WELCOME_VISUAL, END_VISUAL):
        name = f"{target}_visual"
        if getattr(doc, name) == value:
            return doc
        return doc.model_copy(update={name: value})

    index = _locate(doc, target)
    if index < 0:
        return doc
    step = doc.steps[index]
    if step.visual == value:
        return doc
    return _replace_step(doc, index, step.model_copy(update={"visual": value}))


def clear_visual(doc: ConversationDocument, target: VisualTarget) -> ConversationDocument:
    """Remove the visual at *target* so the screen falls back to the global one."""
    if target == GLOBAL_VISUAL:
        name = "visuals"
    elif target in (WELCOME_VISUAL, END_VISUAL):
        name = f"{target}_visual"
    else:
        index = _locate(doc, target)
        if index < 0 or doc.steps[index].visual is None:
            return doc
        step = doc.steps[index]
        return _replace_step(doc, index, step.model_copy(update={"visual": None}))

    if getattr(doc, name) is None:
        return doc
    return doc.model_copy(update={name: None})
