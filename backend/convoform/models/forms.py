"""Request/response models for the reference forms API."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class FormCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Form name is required")
        return v


class FormUpdate(BaseModel):
    """Partial update. Only these fields are accepted; at least one is required."""

    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    current_config: Optional[Dict[str, Any]] = None
    status: Optional[str] = None
    slug: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in ("draft", "live"):
            raise ValueError("status must be 'draft' or 'live'")
        return v


class FormResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    status: str = "draft"
    slug: Optional[str] = None
    version: int = 0
    is_published: bool = False
    current_config: Optional[Dict[str, Any]] = None
    published_config: Optional[Dict[str, Any]] = None
    published_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class FormVersion(BaseModel):
    form_id: str
    version_number: int
    config_snapshot: Optional[Dict[str, Any]] = None
    created_at: str


class FormVersionList(BaseModel):
    versions: List[FormVersion]
    total: int


class VisualUploadResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    kind: str
    url: str
    storage_path: str = Field(alias="storagePath")
