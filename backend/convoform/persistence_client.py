"""
Forms API client (persistence collaborator).

Wraps the four calls the editing session makes against the forms service:

- ``GET  /api/forms/{id}``          fetch the form record
- ``PATCH /api/forms/{id}``         partial update (autosave: name + current_config)
- ``POST /api/forms/{id}/publish``  cut a published snapshot from the stored draft
- ``POST /api/forms/{id}/visual``   multipart visual upload

Usage:
    client = FormsApiClient()
    record = await client.fetch_form(form_id)
    await client.save_form(form_id, record.name, doc)
"""

import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field

from convoform.config import settings
from convoform.exceptions import AssetUploadError, PersistenceError
from convoform.helpers.http import JsonApiClient
from convoform.models.document import ConversationDocument, document_to_dict

logger = logging.getLogger(__name__)


# ============================================================================
# Data Models
# ============================================================================


class FormRecord(BaseModel):
    """A form as stored by the forms service."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str = "Untitled Form"
    status: str = "draft"
    slug: Optional[str] = None
    version: int = 0
    current_config: Optional[Dict[str, Any]] = None
    published_config: Optional[Dict[str, Any]] = None
    published_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class UploadedVisual(BaseModel):
    """Response of a visual upload."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    kind: str
    url: str
    storage_path: str = Field(alias="storagePath")


# ============================================================================
# Client
# ============================================================================


class FormsApiClient(JsonApiClient):
    """Async HTTP client for the forms service."""

    error_cls = PersistenceError
    service_name = "Forms API"

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(
            base_url or settings.forms_api_base_url,
            token=token,
            timeout=timeout,
            transport=transport,
        )

    def _error(self, message: str, status_code: Optional[int] = None) -> PersistenceError:
        return PersistenceError(message, status_code=status_code)

    async def fetch_form(self, form_id: str) -> FormRecord:
        data = await self._request("GET", f"/api/forms/{form_id}")
        return FormRecord.model_validate(data)

    async def update_form(self, form_id: str, **fields: Any) -> FormRecord:
        """PATCH any of ``name``, ``current_config``, ``status``, ``slug``."""
        data = await self._request("PATCH", f"/api/forms/{form_id}", json=fields)
        return FormRecord.model_validate(data)

    async def save_form(
        self, form_id: str, name: str, document: ConversationDocument
    ) -> FormRecord:
        """Persist the draft (the autosave payload)."""
        return await self.update_form(
            form_id, name=name, current_config=document_to_dict(document)
        )

    async def publish_form(self, form_id: str) -> FormRecord:
        data = await self._request("POST", f"/api/forms/{form_id}/publish")
        logger.info("Forms API published %s", form_id)
        return FormRecord.model_validate(data)

    async def upload_visual(
        self,
        form_id: str,
        filename: str,
        content: bytes,
        content_type: str,
        kind: str,
    ) -> UploadedVisual:
        """Upload a background visual.

        Raises:
            AssetUploadError: If the upload is rejected or fails.
        """
        try:
            data = await self._request(
                "POST",
                f"/api/forms/{form_id}/visual",
                files={"file": (filename, content, content_type)},
                data={"kind": kind},
            )
        except PersistenceError as e:
            raise AssetUploadError(str(e)) from e
        return UploadedVisual.model_validate(data)
