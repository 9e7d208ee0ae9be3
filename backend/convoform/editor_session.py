"""
Editing session: one author working on one conversation.

Ties the engine together::

    load -> normalize -> [mutation -> commit -> autosave / dirty] * -> publish

The session owns the single current document reference. Every edit goes
through a pure mutation and :meth:`EditorSession.commit`, which swaps the
reference, bumps the revision, schedules an autosave and recomputes dirty.
Network actions (upload, AI wording, publish) apply their result to the
document that is current when they finish, so edits made while they were
in flight are kept.

Only loading can fail the session (:class:`LoadError`). Other failures are
reported through the notifier and leave the document untouched.

Usage:
    session = await EditorSession.open(form_id)
    session.update_step(step_id, {"label": "Destination?"})
    await session.publish()
    session.close()
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional

from convoform import mutations
from convoform.ai_client import AIClient, BatchWordingResult
from convoform.autosave import AutosaveScheduler
from convoform.config import settings
from convoform.exceptions import (
    AIGenerationError,
    AssetUploadError,
    LoadError,
    PersistenceError,
    PublishError,
    SaveError,
)
from convoform.helpers.keys import share_url
from convoform.models.document import (
    ConversationDocument,
    FormVisuals,
    StepVisual,
    default_document,
)
from convoform.normalizer import normalize
from convoform.persistence_client import FormsApiClient, UploadedVisual
from convoform.preview import (
    DEFAULT_LAYOUT,
    DEFAULT_OPACITY,
    ResolvedPreview,
    parse_preview_target,
    resolve_preview,
)
from convoform.publish_controller import PublishController, PublishState

logger = logging.getLogger(__name__)

UPLOAD_KINDS = ("image", "video")


# ============================================================================
# Notifications
# ============================================================================


@dataclass(frozen=True)
class Notice:
    """A message for the author (rendered as a toast by the UI)."""

    title: str
    description: str = ""
    variant: str = "default"  # "default" or "destructive"


Notifier = Callable[[Notice], None]


def log_notifier(notice: Notice) -> None:
    if notice.variant == "destructive":
        logger.warning("%s: %s", notice.title, notice.description)
    else:
        logger.info("%s: %s", notice.title, notice.description)


# ============================================================================
# Session
# ============================================================================


class EditorSession:
    """Stateful editing session over a single conversation."""

    def __init__(
        self,
        form_id: str,
        forms: Optional[FormsApiClient] = None,
        ai: Optional[AIClient] = None,
        notifier: Optional[Notifier] = None,
        autosave_delay: Optional[float] = None,
        public_origin: Optional[str] = None,
    ):
        self.form_id = form_id
        self.forms = forms or FormsApiClient()
        self.ai = ai or AIClient()
        self.notify: Notifier = notifier or log_notifier
        self.public_origin = public_origin or settings.public_origin

        self.name = ""
        self.document: ConversationDocument = default_document()
        self.revision = 0
        self.preview_target: Any = None
        self.settings_step_id: Optional[str] = None

        self.uploading_visual = False
        self.generating_step_id: Optional[str] = None
        self.generating_conversation = False
        self.generating_all_wording = False

        self.autosave = AutosaveScheduler(
            self._save, delay=autosave_delay, on_error=self._on_save_error
        )
        self.publisher = PublishController(flush=self._flush, cut=self._cut)
        self.loaded = False
        self.closed = False

    @classmethod
    async def open(cls, form_id: str, **kwargs) -> "EditorSession":
        """Create a session and load the conversation.

        Raises:
            LoadError: If the form cannot be fetched.
        """
        session = cls(form_id, **kwargs)
        await session.load()
        return session

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load(self) -> None:
        """Fetch and normalize the draft and the published snapshot."""
        try:
            record = await self.forms.fetch_form(self.form_id)
        except PersistenceError as e:
            logger.error("Failed to load form %s: %s", self.form_id, e)
            self.notify(Notice("Error", "Failed to load form", "destructive"))
            raise LoadError(f"Failed to load form {self.form_id}") from e

        self.name = record.name or ""
        if record.current_config is not None:
            self.document = normalize(record.current_config)
        else:
            self.document = default_document()
        published = (
            normalize(record.published_config)
            if record.published_config is not None
            else None
        )
        self.publisher = PublishController(
            flush=self._flush,
            cut=self._cut,
            published=published,
            status=record.status or "draft",
            version=record.version or 0,
            slug=record.slug,
        )
        self.publisher.recompute(self.document)
        self.revision = 0
        self.loaded = True
        logger.info(
            "Loaded form %s (%d steps, status=%s, version=%d)",
            self.form_id, len(self.document.steps), self.publisher.state.value,
            self.publisher.version,
        )

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    def commit(self, doc: ConversationDocument) -> bool:
        """Make *doc* the current document.

        Returns False (and does nothing) when the session is closed or *doc*
        is the current document or equal to it.
        """
        if self.closed:
            logger.warning("Ignoring edit to closed session %s", self.form_id)
            return False
        if doc is self.document or doc == self.document:
            return False
        self.document = doc
        self.revision += 1
        self.autosave.schedule(self.name, doc)
        self.publisher.recompute(doc)
        return True

    def apply(self, operation: Callable[..., ConversationDocument], *args, **kwargs) -> bool:
        """Run a mutation against the current document and commit the result."""
        return self.commit(operation(self.document, *args, **kwargs))

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def rename(self, name: str) -> None:
        if self.closed:
            logger.warning("Ignoring rename of closed session %s", self.form_id)
            return
        if name == self.name:
            return
        self.name = name
        self.autosave.schedule(self.name, self.document)

    def patch_document(self, patch: Mapping[str, Any]) -> bool:
        return self.apply(mutations.patch_document, patch)

    def update_ai_context(self, patch: Mapping[str, Any]) -> bool:
        return self.apply(mutations.update_ai_context, patch)

    def update_theme(self, patch: Mapping[str, Any]) -> bool:
        return self.apply(mutations.update_theme, patch)

    def update_settings(self, patch: Mapping[str, Any]) -> bool:
        return self.apply(mutations.update_settings, patch)

    def update_step(self, step_id: str, patch: Mapping[str, Any]) -> bool:
        return self.apply(mutations.update_step, step_id, patch)

    def add_step(self, step_type: str = "short_text") -> Optional[str]:
        """Append a step and return its id (None once the session is closed)."""
        if self.apply(mutations.add_step, step_type):
            return self.document.steps[-1].id
        return None

    def add_cta_step(self) -> Optional[str]:
        if self.apply(mutations.add_cta_step):
            return self.document.steps[-1].id
        return None

    def duplicate_step(self, step_id: str) -> Optional[str]:
        """Duplicate a step; returns the copy's id, or None if *step_id* is unknown."""
        if self.apply(mutations.duplicate_step, step_id):
            return self.document.steps[-1].id
        return None

    def delete_step(self, step_id: str) -> bool:
        if self.settings_step_id == step_id:
            self.settings_step_id = None
        return self.apply(mutations.delete_step, step_id)

    def reorder_steps(self, from_index: int, to_index: int) -> bool:
        return self.apply(mutations.reorder_steps, from_index, to_index)

    def add_option(self, step_id: str, label: str = "") -> bool:
        return self.apply(mutations.add_option, step_id, label)

    def update_option(self, step_id: str, option_id: str, patch: Mapping[str, Any]) -> bool:
        return self.apply(mutations.update_option, step_id, option_id, patch)

    def remove_option(self, step_id: str, option_id: str) -> bool:
        return self.apply(mutations.remove_option, step_id, option_id)

    def set_visual(self, target: str, visual: Any) -> bool:
        return self.apply(mutations.set_visual, target, visual)

    def clear_visual(self, target: str) -> bool:
        return self.apply(mutations.clear_visual, target)

    # ------------------------------------------------------------------
    # Focus & preview
    # ------------------------------------------------------------------

    def focus(self, target: Any) -> None:
        self.preview_target = parse_preview_target(target)

    def open_settings(self, step_id: Optional[str]) -> None:
        if step_id is not None and self.document.step_by_id(step_id) is None:
            return
        self.settings_step_id = step_id

    @property
    def preview(self) -> ResolvedPreview:
        return resolve_preview(self.document, self.preview_target)

    # ------------------------------------------------------------------
    # Publish state
    # ------------------------------------------------------------------

    @property
    def dirty(self) -> bool:
        return self.publisher.dirty

    @property
    def state(self) -> PublishState:
        return self.publisher.state

    @property
    def status_label(self) -> str:
        return self.publisher.status_label

    @property
    def cta_label(self) -> str:
        return self.publisher.cta_label

    @property
    def can_publish(self) -> bool:
        return self.publisher.can_publish

    @property
    def saving(self) -> bool:
        return self.autosave.in_flight > 0

    @property
    def share_url(self) -> Optional[str]:
        if not self.publisher.slug:
            return None
        return share_url(self.public_origin, self.publisher.slug)

    async def publish(self) -> bool:
        """Flush the draft and publish it. Returns True on success."""
        if not self.publisher.can_publish:
            return False
        try:
            published = await self.publisher.publish(
                self.document, revision=self.revision, latest=lambda: self.document
            )
        except PublishError as e:
            logger.error("Publish of %s failed: %s", self.form_id, e)
            self.notify(Notice("Error", "Failed to publish", "destructive"))
            return False
        if published:
            self.notify(Notice("Published!", "Your form is now live."))
        return published

    # ------------------------------------------------------------------
    # Visual upload
    # ------------------------------------------------------------------

    async def upload_visual(
        self,
        filename: str,
        content: bytes,
        content_type: str,
        kind: str,
        target: str = mutations.GLOBAL_VISUAL,
    ) -> Optional[UploadedVisual]:
        """Upload a background and attach it to *target*.

        On failure the previous visual stays in place and None is returned.
        """
        if kind not in UPLOAD_KINDS:
            self.notify(Notice("Upload failed", f"Unsupported visual kind: {kind}", "destructive"))
            return None

        self.uploading_visual = True
        try:
            uploaded = await self.forms.upload_visual(
                self.form_id, filename, content, content_type, kind
            )
        except AssetUploadError as e:
            logger.error("Visual upload for %s failed: %s", self.form_id, e)
            self.notify(Notice("Upload failed", str(e), "destructive"))
            return None
        finally:
            self.uploading_visual = False

        if target == mutations.GLOBAL_VISUAL:
            visual = FormVisuals(
                kind=uploaded.kind,
                source="upload",
                url=uploaded.url,
                storage_path=uploaded.storage_path,
                updated_at=datetime.now(timezone.utc).isoformat(),
            )
        else:
            visual = StepVisual(
                kind=uploaded.kind,
                source="upload",
                url=uploaded.url,
                storage_path=uploaded.storage_path,
                **self._compositing(target),
            )
        self.set_visual(target, visual)
        self.notify(Notice("Uploaded", "Visual background updated"))
        return uploaded

    def _compositing(self, target: str) -> dict:
        """Layout and opacity of the visual currently at *target*, kept across uploads."""
        if target == mutations.WELCOME_VISUAL:
            current = self.document.welcome_visual
        elif target == mutations.END_VISUAL:
            current = self.document.end_visual
        else:
            step = self.document.step_by_id(target)
            current = step.visual if step is not None else None
        if current is None:
            return {"layout": DEFAULT_LAYOUT, "opacity": DEFAULT_OPACITY}
        return {"layout": current.layout, "opacity": current.opacity}

    # ------------------------------------------------------------------
    # AI wording
    # ------------------------------------------------------------------

    async def generate_step_wording(self, step_id: str) -> Optional[str]:
        """Generate the respondent message for one step (needs a label)."""
        step = self.document.step_by_id(step_id)
        if step is None or not step.label:
            return None

        self.generating_step_id = step_id
        try:
            message = await self.ai.generate_step_wording(self.document, step)
        except AIGenerationError as e:
            logger.error("Wording for step %s failed: %s", step_id, e)
            self.notify(Notice("Error", str(e) or "Failed to generate wording", "destructive"))
            return None
        finally:
            self.generating_step_id = None

        self.apply(mutations.set_step_message, step_id, message)
        return message

    async def generate_all_wording(self) -> Optional[BatchWordingResult]:
        """Best-effort wording for every step; failed steps keep their message."""
        self.generating_all_wording = True
        try:
            result = await self.ai.generate_all_wording(self.document)
        finally:
            self.generating_all_wording = False
        self._merge_wording(result)
        if result.failed:
            self.notify(
                Notice(
                    "Some wording missing",
                    f"{result.failed} of {result.succeeded + result.failed} steps could not be worded.",
                    "destructive",
                )
            )
        return result

    async def generate_conversation(self) -> Optional[BatchWordingResult]:
        """Replace the steps with an AI-generated outline, then word each step.

        Returns the wording batch result, or None if generation failed.
        """
        ctx = self.document.ai_context
        if not ctx.context.strip():
            self.notify(
                Notice("Missing context", "Please describe your situation first.", "destructive")
            )
            return None

        self.generating_conversation = True
        try:
            items = await self.ai.generate_conversation(
                ctx.context, tone=ctx.tone, audience=ctx.audience
            )
        except AIGenerationError as e:
            logger.error("Conversation generation for %s failed: %s", self.form_id, e)
            self.notify(Notice("Error", str(e) or "Failed to generate conversation", "destructive"))
            self.generating_conversation = False
            return None

        try:
            self.apply(mutations.replace_steps, items)
            self.notify(
                Notice(
                    "Conversation generated!",
                    f"{len(self.document.steps)} questions created. Generating conversational wording...",
                )
            )
            result = await self.generate_all_wording()
        finally:
            self.generating_conversation = False
        self.notify(Notice("All done!", "Questions and conversational wording are ready."))
        return result

    def _merge_wording(self, result: BatchWordingResult) -> None:
        doc = self.document
        for step in result.steps:
            current = doc.step_by_id(step.id)
            if current is not None and step.message and step.message != current.message:
                doc = mutations.set_step_message(doc, step.id, step.message)
        self.commit(doc)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def close(self) -> None:
        """End the session: the pending autosave is dropped and later edits are ignored."""
        if self.closed:
            return
        self.autosave.close()
        self.closed = True
        logger.info("Closed editing session for %s", self.form_id)

    async def aclose(self) -> None:
        """Close and wait for saves already in flight to settle."""
        self.close()
        await self.autosave.wait_idle()

    # ------------------------------------------------------------------
    # Collaborator callbacks
    # ------------------------------------------------------------------

    async def _save(self, name: str, doc: ConversationDocument) -> Any:
        return await self.forms.save_form(self.form_id, name, doc)

    async def _flush(self, doc: ConversationDocument) -> Any:
        return await self.autosave.flush(self.name, doc)

    async def _cut(self) -> Any:
        return await self.forms.publish_form(self.form_id)

    def _on_save_error(self, error: SaveError) -> None:
        self.notify(Notice("Error", "Failed to save", "destructive"))
