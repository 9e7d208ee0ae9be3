"""
Unit Tests for Document Normalization

Covers load-time migration of stored conversation documents:
- Version classification (legacy / pre-backfill / canonical)
- Legacy type mapping and field coalescing
- Bare-string option and legacy visuals upgrades
- Backfilled defaults
- Graceful handling of malformed input
- Idempotence

Usage:
    cd backend && pytest tests/test_normalizer.py -v
"""

import pytest
import sys
import os
from typing import Any, Dict
from unittest.mock import patch

# Add backend to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from convoform.models.document import (
    ConversationDocument,
    DEFAULT_THEME,
    document_to_dict,
)
from convoform.models.legacy import (
    DocumentV1,
    DocumentV2,
    DocumentV3,
    classify,
)
from convoform import normalizer
from convoform.normalizer import migrate_v1_to_v2, migrate_v2_to_v3, normalize


# ============================================================================
# TEST DATA FACTORIES
# ============================================================================

def make_legacy_document() -> Dict[str, Any]:
    """A document written by the earliest editor versions."""
    return {
        "questions": [
            {
                "ui_type": "dropdown",
                "user_prompt": "Which plan suits you?",
                "intent": "Plan",
                "field_key": "plan",
                "options": ["Option A", "Option B"],
                "required": True,
            },
            {
                "type": "rating",
                "message": "",
                "user_prompt": "How would you rate us?",
                "label": "Rating",
            },
            {"type": "consent", "label": "Consent"},
            {"type": "time", "label": "Preferred time"},
        ],
        "visuals": {"type": "image", "url": "https://cdn.example.com/bg.jpg"},
        "welcomeTitle": "Hello",
    }


def make_v2_document() -> Dict[str, Any]:
    """Current field names, later fields missing."""
    return {
        "questions": [
            {
                "id": "q_1",
                "key": "email",
                "type": "email",
                "label": "Email",
                "message": "What's your email?",
                "required": True,
                "options": [],
                "order": 0,
            }
        ],
        "welcomeEnabled": True,
        "endMessage": "Thanks!",
    }


# ============================================================================
# CLASSIFICATION
# ============================================================================

class TestClassify:
    """Raw documents are classified by the fields they use."""

    def test_legacy_field_names_are_v1(self):
        assert isinstance(classify({"questions": [{"ui_type": "short_text"}]}), DocumentV1)

    def test_legacy_type_is_v1(self):
        assert isinstance(classify({"questions": [{"type": "dropdown"}]}), DocumentV1)

    def test_bare_string_options_are_v1(self):
        assert isinstance(classify({"questions": [{"type": "single_choice", "options": ["A"]}]}), DocumentV1)

    def test_type_tagged_visuals_are_v1(self):
        assert isinstance(classify({"visuals": {"type": "image", "url": "x"}}), DocumentV1)

    def test_schema_version_3_is_v3(self):
        assert isinstance(classify({"schemaVersion": 3, "questions": []}), DocumentV3)

    def test_unversioned_current_shape_is_v2(self):
        assert isinstance(classify(make_v2_document()), DocumentV2)


# ============================================================================
# MIGRATIONS
# ============================================================================

class TestMigrations:
    """Each migration handles exactly one schema transition."""

    def test_v1_to_v2_coalesces_fields(self):
        migrated = migrate_v1_to_v2(DocumentV1(make_legacy_document()))
        first = migrated.data["questions"][0]

        assert first["type"] == "single_choice"
        assert first["message"] == "Which plan suits you?"
        assert first["label"] == "Plan"
        assert first["key"] == "plan"
        assert "ui_type" not in first
        assert "user_prompt" not in first

    def test_v1_to_v2_prefers_first_non_empty_source(self):
        migrated = migrate_v1_to_v2(DocumentV1(make_legacy_document()))
        second = migrated.data["questions"][1]

        assert second["message"] == "How would you rate us?"
        assert second["type"] == "number"

    def test_v1_to_v2_upgrades_visuals(self):
        migrated = migrate_v1_to_v2(DocumentV1(make_legacy_document()))
        assert migrated.data["visuals"] == {
            "kind": "image",
            "url": "https://cdn.example.com/bg.jpg",
            "source": "url",
        }

    def test_v2_to_v3_backfills(self):
        migrated = migrate_v2_to_v3(DocumentV2(make_v2_document()))

        assert migrated.data["aiContext"] == {"context": "", "tone": "friendly", "audience": ""}
        assert migrated.data["endEnabled"] is True
        assert migrated.data["endCtaText"] == ""
        assert migrated.data["aboutYou"] == ""
        assert migrated.data["trainAI"] == ""
        assert migrated.data["schemaVersion"] == 3

    def test_v2_to_v3_keeps_explicit_end_disabled(self):
        doc = make_v2_document()
        doc["endEnabled"] = False
        assert migrate_v2_to_v3(DocumentV2(doc)).data["endEnabled"] is False


# ============================================================================
# NORMALIZE
# ============================================================================

class TestNormalizeLegacy:
    """End-to-end normalization of a legacy document."""

    def test_legacy_types_are_mapped(self):
        doc = normalize(make_legacy_document())
        assert [s.type for s in doc.steps] == ["single_choice", "number", "yes_no", "short_text"]

    def test_bare_string_options_are_upgraded(self):
        doc = normalize(make_legacy_document())
        options = doc.steps[0].options

        assert [o.label for o in options] == ["Option A", "Option B"]
        assert [o.value for o in options] == ["option_a", "option_b"]
        assert len({o.id for o in options}) == 2

    def test_missing_ids_are_positional(self):
        doc = normalize(make_legacy_document())
        assert [s.id for s in doc.steps] == ["q_legacy_0", "q_legacy_1", "q_legacy_2", "q_legacy_3"]

    def test_order_is_array_position(self):
        raw = make_v2_document()
        raw["questions"].append(dict(raw["questions"][0], id="q_2", order=7))
        raw["questions"][0]["order"] = 5

        doc = normalize(raw)
        assert [s.order for s in doc.steps] == [0, 1]

    def test_visuals_are_canonical(self):
        doc = normalize(make_legacy_document())

        assert doc.visuals.kind == "image"
        assert doc.visuals.source == "url"
        assert doc.visuals.url == "https://cdn.example.com/bg.jpg"

    def test_backfilled_defaults_are_never_null(self):
        doc = normalize(make_legacy_document())

        assert doc.ai_context.tone == "friendly"
        assert doc.ai_context.context == ""
        assert doc.end_enabled is True
        assert doc.end_cta_text == ""
        assert doc.end_cta_url == ""
        assert doc.about_you == ""
        assert doc.train_ai == ""
        assert doc.schema_version == 3
        assert doc.theme == DEFAULT_THEME

    def test_unknown_types_pass_through(self):
        doc = normalize({"questions": [{"type": "signature", "label": "Sign here"}]})
        assert doc.steps[0].type == "signature"


class TestNormalizeMalformed:
    """Malformed input is defaulted, never rejected."""

    @pytest.mark.parametrize("raw", [None, "garbage", 42, [1, 2, 3]])
    def test_non_mapping_becomes_default(self, raw):
        assert normalize(raw) == ConversationDocument()

    def test_string_step_becomes_labelled_step(self):
        doc = normalize({"questions": ["What's your name?", 42, None]})

        assert len(doc.steps) == 1
        assert doc.steps[0].label == "What's your name?"
        assert doc.steps[0].order == 0

    def test_non_list_questions_are_ignored(self):
        assert normalize({"questions": "nope"}).steps == ()

    def test_duplicate_ids_are_made_unique(self):
        doc = normalize({"questions": [{"id": "a", "label": "x"}, {"id": "a", "label": "y"}]})
        assert doc.steps[0].id == "a"
        assert doc.steps[1].id != "a"

    def test_unknown_tone_degrades_to_friendly(self):
        doc = normalize({"aiContext": {"tone": "grumpy", "context": "c"}})
        assert doc.ai_context.tone == "friendly"
        assert doc.ai_context.context == "c"

    def test_context_is_capped(self):
        doc = normalize({"aiContext": {"context": "x" * 3000}})
        assert len(doc.ai_context.context) == 2000

    def test_opacity_is_clamped(self):
        doc = normalize({
            "questions": [
                {"id": "a", "visual": {"kind": "image", "url": "u", "opacity": 150}},
                {"id": "b", "visual": {"kind": "image", "url": "u", "opacity": 2}},
            ]
        })
        assert doc.steps[0].visual.opacity == 100
        assert doc.steps[1].visual.opacity == 10

    def test_invalid_theme_values_are_dropped(self):
        doc = normalize({"theme": {"buttonStyle": "wobbly", "primaryColor": "#ff0000"}})
        assert doc.theme.button_style is None
        assert doc.theme.primary_color == "#ff0000"

    def test_string_flags_are_coerced(self):
        doc = normalize({"questions": [{"id": "a", "required": "true"}]})
        assert doc.steps[0].required is True

    @pytest.mark.parametrize("bad_type", [["dropdown"], {"name": "dropdown"}])
    def test_unhashable_step_type_keeps_the_document(self, bad_type):
        doc = normalize({
            "welcomeTitle": "Hello",
            "aiContext": {"context": "Trip planning"},
            "questions": [
                {"id": "a", "label": "Name", "type": "short_text"},
                {"id": "b", "label": "Plan", "type": bad_type},
            ],
        })

        assert doc.welcome_title == "Hello"
        assert doc.ai_context.context == "Trip planning"
        assert [s.id for s in doc.steps] == ["a", "b"]
        assert doc.steps[1].type == "short_text"
        assert normalize(doc) == doc

    def test_step_that_fails_to_build_is_skipped_alone(self):
        raw = {
            "welcomeTitle": "Hello",
            "questions": [{"id": "a", "label": "Name"}, {"id": "b", "label": "Broken"}],
        }
        real_build = normalizer._build_step

        def flaky_build(step, position, seen_ids):
            if step.get("id") == "b":
                raise RuntimeError("unexpected shape")
            return real_build(step, position, seen_ids)

        with patch.object(normalizer, "_build_step", side_effect=flaky_build):
            doc = normalize(raw)

        assert doc.welcome_title == "Hello"
        assert [s.id for s in doc.steps] == ["a"]

    def test_numeric_labels_are_coerced_to_text(self):
        doc = normalize({"questions": [{"id": "a", "label": 42}]})
        assert doc.steps[0].label == "42"


class TestNormalizeIdempotence:
    """normalize(normalize(x)) == normalize(x)."""

    @pytest.mark.parametrize(
        "raw",
        [
            make_legacy_document(),
            make_v2_document(),
            {},
            {"questions": ["Bare", {"options": ["A", {"label": "B"}]}]},
            {"questions": [{"id": "a"}, {"id": "a"}], "aiContext": {"tone": "odd"}},
        ],
    )
    def test_idempotent(self, raw):
        once = normalize(raw)

        assert normalize(once) == once
        assert normalize(document_to_dict(once)) == once

    def test_same_input_gives_equal_documents(self):
        assert normalize(make_legacy_document()) == normalize(make_legacy_document())
