"""Shared dependencies for the reference API routers.

Centralises the form store, visual storage and wording service singletons
and the ``_safe_error`` helper so that every router module can
``from convoform.deps import …`` without importing ``main``. Tests swap
any of them through ``app.dependency_overrides``.
"""

import logging

from convoform.form_store import InMemoryFormStore
from convoform.storage import VisualStorage
from convoform.wording_service import WordingService

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Singletons
# ---------------------------------------------------------------------------
_form_store = InMemoryFormStore()
_visual_storage = VisualStorage()
_wording_service = WordingService()


def get_form_store() -> InMemoryFormStore:
    return _form_store


def get_visual_storage() -> VisualStorage:
    return _visual_storage


def get_wording_service() -> WordingService:
    return _wording_service


# ---------------------------------------------------------------------------
# Small utility helpers
# ---------------------------------------------------------------------------


def _safe_error(operation: str, e: Exception) -> str:
    """Log the full exception but return a safe message without internal details."""
    logger.exception("Error during %s", operation)
    return f"{operation} failed. Please try again or contact support."
