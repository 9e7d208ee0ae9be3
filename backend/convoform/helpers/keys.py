"""Identifier and slug helpers shared by the normalizer and mutation API."""

import re
import secrets
import time
import uuid
from typing import Optional

KEY_MAX_LENGTH = 40
SHARE_SLUG_MAX_LENGTH = 40

_APOSTROPHES = re.compile(r"['’]")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify(text: str, separator: str = "_", max_length: Optional[int] = None) -> str:
    """Lowercase *text* and collapse every non ``[a-z0-9]`` run into *separator*.

    Apostrophes are dropped rather than replaced so that contractions stay
    one word ("What's" -> "whats").
    """
    if not isinstance(text, str):
        text = "" if text is None else str(text)
    slug = _APOSTROPHES.sub("", text.lower())
    slug = _NON_ALNUM.sub(separator, slug).strip(separator)
    if max_length is not None:
        slug = slug[:max_length]
    return slug


def generate_key_from_label(label: str) -> str:
    """Machine-readable step key derived from its author-facing label."""
    return slugify(label, "_", KEY_MAX_LENGTH)


def option_value_from_label(label: str) -> str:
    """Stored value of a choice option derived from its label."""
    return slugify(label, "_")


def new_step_id() -> str:
    """Fresh, never-reused step identifier."""
    return f"q_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


def new_option_id() -> str:
    """Fresh option identifier, unique within its step."""
    return f"o_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


def generate_share_slug(name: str) -> str:
    """Public share slug: hyphenated name plus a short random suffix.

    Assigned once, at first publish, and never regenerated afterwards.
    """
    base = slugify(name or "form", "-", SHARE_SLUG_MAX_LENGTH).strip("-") or "form"
    return f"{base}-{secrets.token_hex(3)[:5]}"


def share_url(origin: str, slug: str) -> str:
    """Public address of a published conversation."""
    return f"{origin.rstrip('/')}/f/{slug}"
