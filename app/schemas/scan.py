# app/schemas/scan.py
from datetime import date
from pydantic import BaseModel, Field
from typing import List, Optional
from app.schemas.base import BaseSchema, CreatedMixin, TimestampMixin
from app.schemas.tag import TagSummary


class ScanCreate(BaseModel):
    """Validated column values for a new scan row."""
    filename: str = Field(min_length=1)
    object_name: str = Field(min_length=1)
    scan_date: Optional[date] = None
    notes: Optional[str] = None
    scanner_model: Optional[str] = None
    resolution: Optional[str] = None
    accuracy: Optional[str] = None
    file_path: str = Field(min_length=1)
    file_format: str = Field(min_length=1)
    file_size: int = Field(gt=0)
    thumbnail_path: Optional[str] = None
    project_id: Optional[int] = None
    created_by: Optional[str] = None


class ScanUpdate(BaseModel):
    """
    Partial update. Storage-bound fields (file_path, file_format, file_size),
    the owner and the version counter are deliberately absent.
    """
    filename: Optional[str] = Field(default=None, min_length=1)
    object_name: Optional[str] = Field(default=None, min_length=1)
    scan_date: Optional[date] = None
    notes: Optional[str] = None
    scanner_model: Optional[str] = None
    resolution: Optional[str] = None
    accuracy: Optional[str] = None
    project_id: Optional[int] = None
    created_by: Optional[str] = None
    tags: Optional[List[int]] = None


class ScanVersion(CreatedMixin, BaseSchema):
    id: int
    scan_id: int
    version_number: int
    file_path: str
    file_size: int
    change_notes: Optional[str] = None


class Scan(TimestampMixin, BaseSchema):
    id: int
    user_id: Optional[int] = None
    filename: str
    object_name: str
    scan_date: Optional[date] = None
    notes: Optional[str] = None
    scanner_model: Optional[str] = None
    resolution: Optional[str] = None
    accuracy: Optional[str] = None
    file_path: str
    file_format: str
    file_size: int
    thumbnail_path: Optional[str] = None
    current_version: int = 1
    project_id: Optional[int] = None
    project_name: Optional[str] = None
    created_by: Optional[str] = None
    tags: List[TagSummary] = []


class ScanDetail(Scan):
    versions: List[ScanVersion] = []


class Pagination(BaseModel):
    total: int
    limit: int
    offset: int


class ScanPage(BaseModel):
    data: List[Scan]
    pagination: Pagination


class FileUrlResponse(BaseModel):
    url: str
