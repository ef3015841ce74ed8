# app/schemas/project.py
from pydantic import BaseModel, Field
from typing import Optional
from app.schemas.base import BaseSchema, TimestampMixin


class ProjectBase(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None


class ProjectCreate(ProjectBase):
    pass


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = None


class Project(ProjectBase, TimestampMixin, BaseSchema):
    id: int
    scan_count: int = 0
