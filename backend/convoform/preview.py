"""Preview addressing and background visual resolution.

A preview target names what the author is focused on: nothing (``None``),
the welcome screen, the end screen, or ``StepTarget(step=i)``. Step targets
are positional: ``StepTarget(1)`` always means "whatever step is at index 1
now", so after a reorder the preview follows the slot, not the step that
used to occupy it.

Visual precedence for the resolved screen:

1. the screen's own visual (an explicit ``kind="none"`` wins and means
   "no visual");
2. the document-wide fallback in ``visuals``;
3. nothing, i.e. the default gradient.
"""

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from convoform.models.document import (
    OPACITY_MAX,
    ConversationDocument,
    FormVisuals,
    Step,
    StepVisual,
    clamp_opacity,
)

logger = logging.getLogger(__name__)

WELCOME = "welcome"
END = "end"
STEP = "step"

DEFAULT_LAYOUT = "fill"
DEFAULT_OPACITY = OPACITY_MAX
GRADIENT_KEY = "gradient"


@dataclass(frozen=True)
class StepTarget:
    """Focus on the step currently at position ``step``."""

    step: int


PreviewTarget = Union[None, str, StepTarget]


@dataclass(frozen=True)
class ResolvedVisual:
    """Background layer handed to the renderer."""

    kind: str
    url: str
    layout: str = DEFAULT_LAYOUT
    opacity: int = DEFAULT_OPACITY
    origin: str = "screen"  # "screen" or "global"


@dataclass(frozen=True)
class ResolvedPreview:
    screen: str
    step_index: Optional[int] = None
    step: Optional[Step] = None
    visual: Optional[ResolvedVisual] = None

    @property
    def key(self) -> str:
        """Cross-dissolve identity of the background."""
        return visual_key(self.visual)


def parse_preview_target(raw: Any) -> PreviewTarget:
    """Accept ``None``, ``"welcome"``, ``"end"``, ``{"step": i}`` or a :class:`StepTarget`."""
    if raw is None or isinstance(raw, StepTarget):
        return raw
    if raw in (WELCOME, END):
        return raw
    if isinstance(raw, Mapping):
        index = raw.get("step")
        if isinstance(index, int) and not isinstance(index, bool):
            return StepTarget(index)
    logger.warning("Unrecognised preview target %r; treating as no focus", raw)
    return None


def visual_key(visual: Optional[ResolvedVisual]) -> str:
    if visual is None or visual.kind == "none":
        return GRADIENT_KEY
    return f"{visual.kind}:{visual.url or ''}"


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


def _natural_start(doc: ConversationDocument) -> ResolvedPreview:
    if doc.welcome_enabled:
        return ResolvedPreview(screen=WELCOME)
    if doc.steps:
        return ResolvedPreview(screen=STEP, step_index=0, step=doc.steps[0])
    return ResolvedPreview(screen=END)


def _screen(doc: ConversationDocument, target: PreviewTarget) -> ResolvedPreview:
    if target == WELCOME:
        return ResolvedPreview(screen=WELCOME)
    if target == END:
        return ResolvedPreview(screen=END)
    if isinstance(target, StepTarget):
        if 0 <= target.step < len(doc.steps):
            return ResolvedPreview(
                screen=STEP, step_index=target.step, step=doc.steps[target.step]
            )
        logger.debug("Step target %d out of range; using natural start", target.step)
    return _natural_start(doc)


def _has_media(visual: Union[StepVisual, FormVisuals, None]) -> bool:
    return visual is not None and visual.kind != "none" and bool(visual.url)


def _resolve_visual(doc: ConversationDocument, preview: ResolvedPreview) -> Optional[ResolvedVisual]:
    if preview.screen == WELCOME:
        explicit = doc.welcome_visual
    elif preview.screen == END:
        explicit = doc.end_visual
    else:
        explicit = preview.step.visual if preview.step is not None else None

    if explicit is not None:
        if explicit.kind == "none":
            return None
        if _has_media(explicit):
            return ResolvedVisual(
                kind=explicit.kind,
                url=explicit.url,
                layout=explicit.layout or DEFAULT_LAYOUT,
                opacity=clamp_opacity(explicit.opacity) or DEFAULT_OPACITY,
            )

    if _has_media(doc.visuals):
        return ResolvedVisual(kind=doc.visuals.kind, url=doc.visuals.url, origin="global")
    return None


def resolve_preview(doc: ConversationDocument, target: Any = None) -> ResolvedPreview:
    """Resolve which screen and which background the preview shows for *target*.

    Out-of-range step indexes and ``None`` resolve to the natural start of
    the conversation: welcome if enabled, else the first step, else the end
    screen.
    """
    preview = _screen(doc, parse_preview_target(target))
    visual = _resolve_visual(doc, preview)
    if visual is None:
        return preview
    return ResolvedPreview(
        screen=preview.screen,
        step_index=preview.step_index,
        step=preview.step,
        visual=visual,
    )
