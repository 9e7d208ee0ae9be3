"""In-process form store behind the reference forms API.

Holds form records as plain JSON-shaped dicts, the same shape the forms
API returns. Records are copied on the way in and out, so callers never
share state with the store.

The publish cut copies the stored ``current_config`` into
``published_config``, bumps ``version``, marks the form ``live`` and
assigns a share slug the first time only. Each cut also appends a version
history entry.
"""

import copy
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from convoform.exceptions import FormNotFoundError
from convoform.helpers.keys import generate_share_slug
from convoform.models.document import default_document, document_to_dict

logger = logging.getLogger(__name__)

# Fields a PATCH may touch.
UPDATABLE_FIELDS = ("name", "current_config", "status", "slug")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class InMemoryFormStore:
    """Dict-backed form records plus their published version history."""

    def __init__(self):
        self._forms: Dict[str, Dict[str, Any]] = {}
        self._versions: Dict[str, List[Dict[str, Any]]] = {}

    def create(self, name: str, current_config: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """Create a draft form with the default document (or *current_config*)."""
        form_id = str(uuid.uuid4())
        now = _now()
        record = {
            "id": form_id,
            "name": name,
            "status": "draft",
            "slug": None,
            "version": 0,
            "is_published": False,
            "current_config": copy.deepcopy(dict(current_config))
            if current_config is not None
            else document_to_dict(default_document()),
            "published_config": None,
            "published_at": None,
            "created_at": now,
            "updated_at": now,
        }
        self._forms[form_id] = record
        self._versions[form_id] = []
        logger.info("Created form %s (%s)", form_id, name)
        return copy.deepcopy(record)

    def put(self, record: Mapping[str, Any]) -> Dict[str, Any]:
        """Insert or replace a raw record, e.g. one holding a legacy config."""
        stored = copy.deepcopy(dict(record))
        stored.setdefault("id", str(uuid.uuid4()))
        stored.setdefault("name", "Untitled Form")
        stored.setdefault("status", "draft")
        stored.setdefault("version", 0)
        stored.setdefault("slug", None)
        stored.setdefault("current_config", None)
        stored.setdefault("published_config", None)
        stored.setdefault("published_at", None)
        stored.setdefault("updated_at", _now())
        self._forms[stored["id"]] = stored
        self._versions.setdefault(stored["id"], [])
        return copy.deepcopy(stored)

    def _require(self, form_id: str) -> Dict[str, Any]:
        record = self._forms.get(form_id)
        if record is None:
            raise FormNotFoundError(f"Form {form_id} not found")
        return record

    def get(self, form_id: str) -> Dict[str, Any]:
        """Raises FormNotFoundError if the form does not exist."""
        return copy.deepcopy(self._require(form_id))

    def update(self, form_id: str, fields: Mapping[str, Any]) -> Dict[str, Any]:
        """Apply a partial update restricted to :data:`UPDATABLE_FIELDS`.

        Raises:
            FormNotFoundError: Unknown form.
            ValueError: No updatable field in *fields*.
        """
        record = self._require(form_id)
        updates = {k: fields[k] for k in UPDATABLE_FIELDS if fields.get(k) is not None}
        if not updates:
            raise ValueError("No valid fields to update")
        record.update(copy.deepcopy(updates))
        record["updated_at"] = _now()
        return copy.deepcopy(record)

    def cut_published_snapshot(self, form_id: str) -> Dict[str, Any]:
        """Publish the stored draft and return the updated record."""
        record = self._require(form_id)
        version = (record.get("version") or 0) + 1
        now = _now()

        record["published_config"] = copy.deepcopy(record.get("current_config"))
        record["is_published"] = True
        record["status"] = "live"
        record["version"] = version
        record["published_at"] = now
        record["updated_at"] = now
        if not record.get("slug"):
            record["slug"] = generate_share_slug(record.get("name") or "form")

        self._versions.setdefault(form_id, []).append(
            {
                "form_id": form_id,
                "version_number": version,
                "config_snapshot": copy.deepcopy(record["published_config"]),
                "created_at": now,
            }
        )

        logger.info("Published form %s as version %d (slug=%s)", form_id, version, record["slug"])
        return copy.deepcopy(record)

    def versions(self, form_id: str) -> List[Dict[str, Any]]:
        self._require(form_id)
        return copy.deepcopy(self._versions.get(form_id, []))
