"""
Frame API models for FastAPI endpoints.
"""

from pydantic import BaseModel
from typing import List, Optional

from .models import ColorStr, Record, ThemeStyles


class GroupCreateRequest(Record):
    """Request to create an empty group."""
    name: str
    theme_id: Optional[str] = None


class GroupUpdateRequest(Record):
    """Rename a group or change its theme. Omitted fields are left as they are."""
    name: Optional[str] = None
    theme_id: Optional[str] = None


class ProductUpdateRequest(Record):
    name: Optional[str] = None
    is_active: Optional[bool] = None


class BackgroundColorRequest(Record):
    value: ColorStr


class ThemeCreateRequest(Record):
    name: str
    styles: ThemeStyles


class BlobUploadResponse(BaseModel):
    id: str
    size: int


class FrameItemResponse(BaseModel):
    product_id: str
    name: str
    x: int
    y: int
    status: str  # rendered, missing, decode_error


class FrameDataUrlResponse(BaseModel):
    """Frame returned inline instead of as a download."""
    filename: str
    data_url: str
    width: int
    height: int
    background: str
    items: List[FrameItemResponse]
    font_fallbacks: List[str]


class OrphanReportResponse(BaseModel):
    orphans: List[str]
    count: int
