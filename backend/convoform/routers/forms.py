"""Forms router: fetch, partial update, publish and visual upload."""

import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status

from convoform.deps import _safe_error, get_form_store, get_visual_storage
from convoform.exceptions import FormNotFoundError
from convoform.form_store import InMemoryFormStore
from convoform.models.forms import (
    FormCreate,
    FormResponse,
    FormUpdate,
    FormVersionList,
    VisualUploadResponse,
)
from convoform.storage import VisualStorage, VisualValidationError

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/forms", tags=["forms"])


def _not_found(form_id: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Form not found")


@router.post("", response_model=FormResponse, status_code=status.HTTP_201_CREATED)
async def create_form(
    body: FormCreate,
    store: InMemoryFormStore = Depends(get_form_store),
):
    """Create a draft form with the default conversation."""
    try:
        return store.create(body.name)
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("form creation", e),
        ) from e


@router.get("/{form_id}", response_model=FormResponse)
async def get_form(form_id: str, store: InMemoryFormStore = Depends(get_form_store)):
    try:
        return store.get(form_id)
    except FormNotFoundError as e:
        raise _not_found(form_id) from e


@router.patch("/{form_id}", response_model=FormResponse)
async def update_form(
    form_id: str,
    body: FormUpdate,
    store: InMemoryFormStore = Depends(get_form_store),
):
    """Partial update of ``name``, ``current_config``, ``status`` or ``slug``."""
    try:
        return store.update(form_id, body.model_dump(exclude_none=True))
    except FormNotFoundError as e:
        raise _not_found(form_id) from e
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("form update", e),
        ) from e


@router.post("/{form_id}/publish", response_model=FormResponse)
async def publish_form(form_id: str, store: InMemoryFormStore = Depends(get_form_store)):
    """Cut a published snapshot from the stored draft."""
    try:
        return store.cut_published_snapshot(form_id)
    except FormNotFoundError as e:
        raise _not_found(form_id) from e
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("form publish", e),
        ) from e


@router.get("/{form_id}/versions", response_model=FormVersionList)
async def list_versions(form_id: str, store: InMemoryFormStore = Depends(get_form_store)):
    """Published version history, oldest first."""
    try:
        versions = store.versions(form_id)
    except FormNotFoundError as e:
        raise _not_found(form_id) from e
    return FormVersionList(versions=versions, total=len(versions))


@router.post("/{form_id}/visual", response_model=VisualUploadResponse)
async def upload_visual(
    form_id: str,
    file: UploadFile = File(...),
    kind: str = Form(...),
    store: InMemoryFormStore = Depends(get_form_store),
    storage: VisualStorage = Depends(get_visual_storage),
):
    """Store a background image or video for a form."""
    try:
        store.get(form_id)
    except FormNotFoundError as e:
        raise _not_found(form_id) from e

    data = await file.read()
    try:
        stored = await storage.upload(
            form_id=form_id,
            filename=file.filename or "",
            data=data,
            content_type=file.content_type or "",
            kind=kind,
        )
    except VisualValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("visual upload", e),
        ) from e

    return VisualUploadResponse(kind=stored.kind, url=stored.url, storage_path=stored.storage_path)
