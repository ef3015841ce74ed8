# app/schemas/base.py
from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class BaseSchema(BaseModel):
    """Base schema with common configuration"""
    class Config:
        from_attributes = True


class CreatedMixin(BaseModel):
    created_at: Optional[datetime] = None


class TimestampMixin(CreatedMixin):
    """Timestamp fields for database models"""
    updated_at: Optional[datetime] = None


class ErrorResponse(BaseModel):
    """Body returned for every non-2xx response."""
    error: str
