"""
Unit Tests for the Publish Controller

Covers:
- Draft / Live / Edited state derivation and labels
- Structural dirty check
- Successful publish and republish
- Failed publish leaving state untouched
- Edits made while a publish is in flight

Usage:
    cd backend && pytest tests/test_publish_controller.py -v
"""

import asyncio
import pytest
import sys
import os
from unittest.mock import AsyncMock

# Add backend to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from convoform import mutations
from convoform.exceptions import PersistenceError, PublishError
from convoform.models.document import ConversationDocument, default_document, document_to_dict
from convoform.persistence_client import FormRecord
from convoform.publish_controller import PublishController, PublishState


# ============================================================================
# TEST DATA FACTORIES
# ============================================================================

def make_doc(label: str = "Name") -> ConversationDocument:
    doc = mutations.add_step(default_document())
    return mutations.update_step(doc, doc.steps[0].id, {"label": label})


def make_record(doc: ConversationDocument, version: int = 1, slug: str = "my-form-a1b2c") -> FormRecord:
    return FormRecord(
        id="form-1",
        name="My Form",
        status="live",
        slug=slug,
        version=version,
        current_config=document_to_dict(doc),
        published_config=document_to_dict(doc),
    )


def make_controller(doc=None, published=None, status="draft", version=0, slug=None, record=None):
    flush = AsyncMock(return_value=None)
    cut = AsyncMock(return_value=record if record is not None else make_record(doc or make_doc()))
    controller = PublishController(flush, cut, published=published, status=status, version=version, slug=slug)
    if doc is not None:
        controller.recompute(doc)
    return controller, flush, cut


# ============================================================================
# STATE
# ============================================================================

class TestState:

    def test_never_published_is_draft(self):
        controller, _, _ = make_controller(make_doc())

        assert controller.state == PublishState.DRAFT
        assert controller.status_label == "Draft"
        assert controller.cta_label == "Publish"
        assert controller.dirty is False
        assert controller.can_publish is True

    def test_live_and_clean(self):
        doc = make_doc()
        controller, _, _ = make_controller(doc, published=doc, status="live", version=1)

        assert controller.state == PublishState.LIVE
        assert controller.status_label == "Live"
        assert controller.cta_label == "Published"
        assert controller.can_publish is False

    def test_live_and_edited(self):
        published = make_doc("Name")
        controller, _, _ = make_controller(make_doc("Full name"), published=published, status="live", version=1)

        assert controller.state == PublishState.EDITED
        assert controller.status_label == "Edited"
        assert controller.cta_label == "Republish"
        assert controller.can_publish is True

    def test_dirty_is_structural(self):
        published = make_doc()
        rebuilt = ConversationDocument.model_validate(document_to_dict(published))
        controller, _, _ = make_controller(rebuilt, published=published, status="live")

        assert rebuilt is not published
        assert controller.dirty is False

    def test_reverting_an_edit_clears_dirty(self):
        published = make_doc()
        controller, _, _ = make_controller(published, published=published, status="live")
        edited = mutations.update_step(published, published.steps[0].id, {"label": "Other"})

        assert controller.recompute(edited) is True
        assert controller.recompute(published) is False

    def test_snapshot_without_live_status_is_draft(self):
        doc = make_doc()
        controller, _, _ = make_controller(doc, published=doc, status="draft")
        assert controller.state == PublishState.DRAFT


# ============================================================================
# PUBLISH
# ============================================================================

class TestPublish:

    def test_first_publish(self):
        doc = make_doc()
        controller, flush, cut = make_controller(doc, record=make_record(doc))

        published = asyncio.run(controller.publish(doc, revision=3))

        assert published is True
        flush.assert_awaited_once_with(doc)
        cut.assert_awaited_once()
        assert controller.state == PublishState.LIVE
        assert controller.snapshot is doc
        assert controller.slug == "my-form-a1b2c"
        assert controller.version == 1
        assert controller.published_revision == 3
        assert controller.cta_label == "Published"

    def test_republish_after_edit(self):
        published = make_doc("Name")
        edited = make_doc("Full name")
        controller, _, _ = make_controller(
            edited, published=published, status="live", version=1, slug="my-form-a1b2c",
            record=make_record(edited, version=2),
        )

        assert asyncio.run(controller.publish(edited)) is True
        assert controller.version == 2
        assert controller.slug == "my-form-a1b2c"
        assert controller.dirty is False

    def test_refused_when_live_and_clean(self):
        doc = make_doc()
        controller, flush, cut = make_controller(doc, published=doc, status="live", version=1)

        assert asyncio.run(controller.publish(doc)) is False
        flush.assert_not_awaited()
        cut.assert_not_awaited()

    def test_refused_while_in_flight(self):
        doc = make_doc()
        controller, flush, _ = make_controller(doc)
        controller.publishing = True

        assert controller.cta_label == "Publishing..."
        assert asyncio.run(controller.publish(doc)) is False
        flush.assert_not_awaited()

    def test_cut_failure_leaves_state_unchanged(self):
        published = make_doc("Name")
        edited = make_doc("Full name")
        controller, _, cut = make_controller(edited, published=published, status="live", version=1)
        cut.side_effect = PersistenceError("boom", status_code=500)

        with pytest.raises(PublishError):
            asyncio.run(controller.publish(edited))

        assert controller.snapshot is published
        assert controller.version == 1
        assert controller.state == PublishState.EDITED
        assert controller.publishing is False

    def test_flush_failure_skips_cut(self):
        doc = make_doc()
        controller, flush, cut = make_controller(doc)
        flush.side_effect = RuntimeError("network down")

        with pytest.raises(PublishError):
            asyncio.run(controller.publish(doc))

        cut.assert_not_awaited()
        assert controller.state == PublishState.DRAFT

    def test_edits_during_publish_stay_dirty(self):
        draft = make_doc("Name")
        later = make_doc("Changed while publishing")
        controller, _, _ = make_controller(draft, record=make_record(draft))

        asyncio.run(controller.publish(draft, latest=lambda: later))

        assert controller.snapshot is draft
        assert controller.dirty is True
        assert controller.state == PublishState.EDITED
