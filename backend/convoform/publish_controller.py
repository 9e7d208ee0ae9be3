"""Draft/live state machine and the dirty check that gates publishing.

States::

    draft --publish--> live --edit--> edited --publish--> live

``dirty`` compares the serialized current document with the serialized
published snapshot (key order independent), so two structurally equal
documents are never dirty no matter how they were built. Before the first
publish there is no snapshot and nothing is dirty.
"""

import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from convoform.exceptions import ConvoformError, PublishError
from convoform.models.document import ConversationDocument, serialize_document
from convoform.normalizer import normalize

logger = logging.getLogger(__name__)

FlushFunc = Callable[[ConversationDocument], Awaitable[Any]]
CutFunc = Callable[[], Awaitable[Any]]


class PublishState(str, Enum):
    DRAFT = "draft"
    LIVE = "live"
    EDITED = "edited"


STATUS_LABELS = {
    PublishState.DRAFT: "Draft",
    PublishState.LIVE: "Live",
    PublishState.EDITED: "Edited",
}


class PublishController:
    """Tracks the published snapshot and publishes the current draft.

    Args:
        flush: Persists a document immediately (normally
            :meth:`AutosaveScheduler.flush` bound to the form name).
        cut: Asks the persistence service to publish the stored draft and
            returns the updated form record (``status``, ``slug``,
            ``version``, ``published_config``).
        published: Snapshot loaded with the form, if it was published before.
        status: Persisted status (``draft`` or ``live``).
        version: Persisted publish counter.
        slug: Persisted share slug.
    """

    def __init__(
        self,
        flush: FlushFunc,
        cut: CutFunc,
        published: Optional[ConversationDocument] = None,
        status: str = "draft",
        version: int = 0,
        slug: Optional[str] = None,
    ):
        self._flush = flush
        self._cut = cut
        self._snapshot = published
        self._snapshot_key = serialize_document(published) if published is not None else None
        self.status = status if published is not None else "draft"
        self.version = version
        self.slug = slug
        self.dirty = False
        self.publishing = False
        self.published_revision: Optional[int] = None

    # ------------------------------------------------------------------
    # Dirty tracking
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> Optional[ConversationDocument]:
        return self._snapshot

    def recompute(self, current: ConversationDocument) -> bool:
        """Recompute ``dirty`` for *current*. Call after every commit."""
        if self._snapshot_key is None:
            self.dirty = False
        else:
            self.dirty = serialize_document(current) != self._snapshot_key
        return self.dirty

    @property
    def state(self) -> PublishState:
        if self.status == "draft" or self._snapshot is None:
            return PublishState.DRAFT
        return PublishState.EDITED if self.dirty else PublishState.LIVE

    @property
    def status_label(self) -> str:
        return STATUS_LABELS[self.state]

    @property
    def cta_label(self) -> str:
        if self.publishing:
            return "Publishing..."
        state = self.state
        if state == PublishState.DRAFT:
            return "Publish"
        return "Republish" if state == PublishState.EDITED else "Published"

    @property
    def can_publish(self) -> bool:
        return not self.publishing and self.state != PublishState.LIVE

    # ------------------------------------------------------------------
    # Publish
    # ------------------------------------------------------------------

    async def publish(
        self,
        draft: ConversationDocument,
        revision: Optional[int] = None,
        latest: Optional[Callable[[], ConversationDocument]] = None,
    ) -> bool:
        """Publish exactly *draft*.

        Args:
            draft: The document to publish.
            revision: Session revision of *draft*, recorded on success.
            latest: Returns the current document once the publish settles;
                dirty is recomputed against it, so edits made while the
                publish was in flight leave the state ``edited``.

        Returns:
            True when published, False when publishing was refused
            (already in flight, or live and not dirty).

        Raises:
            PublishError: If the flush or the snapshot cut fails. Local
                state is left as it was.
        """
        if not self.can_publish:
            logger.info("Publish refused (state=%s, publishing=%s)", self.state.value, self.publishing)
            return False

        self.publishing = True
        try:
            await self._flush(draft)
            record = await self._cut()
        except ConvoformError as e:
            logger.error("Publish failed: %s", e)
            raise PublishError(f"Failed to publish: {e}") from e
        except Exception as e:
            logger.error("Publish failed: %s", e, exc_info=True)
            raise PublishError("Failed to publish") from e
        finally:
            self.publishing = False

        server_config = getattr(record, "published_config", None)
        if server_config is not None and normalize(server_config) != draft:
            logger.warning("Server snapshot differs from the flushed draft; keeping the local draft")

        self._snapshot = draft
        self._snapshot_key = serialize_document(draft)
        self.status = getattr(record, "status", None) or "live"
        self.version = getattr(record, "version", self.version + 1)
        self.slug = getattr(record, "slug", None) or self.slug
        self.published_revision = revision
        self.recompute(latest() if latest is not None else draft)
        logger.info("Published version %s (slug=%s)", self.version, self.slug)
        return True
