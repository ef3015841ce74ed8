# app/schemas/tag.py
from pydantic import BaseModel, Field
from typing import Optional
from app.schemas.base import BaseSchema, CreatedMixin

DEFAULT_TAG_COLOR = "#6366f1"
COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"


class TagCreate(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    color: str = Field(default=DEFAULT_TAG_COLOR, pattern=COLOR_PATTERN)


class TagUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    color: Optional[str] = Field(default=None, pattern=COLOR_PATTERN)


class TagSummary(BaseSchema):
    """Tag as embedded in a scan."""
    id: int
    name: str
    color: str


class Tag(TagSummary, CreatedMixin):
    usage_count: int = 0
