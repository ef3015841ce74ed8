# app/schemas/user.py
from pydantic import BaseModel, EmailStr, Field
from app.schemas.base import BaseSchema, TimestampMixin


class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6, max_length=128)
    name: str = Field(min_length=1, max_length=120)


class LoginRequest(BaseModel):
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)


class AuthUser(BaseSchema):
    """Public identity fields, as carried in the bearer token."""
    id: int
    email: str
    name: str


class UserInDB(AuthUser, TimestampMixin):
    password_hash: str


class AuthResponse(BaseModel):
    token: str
    user: AuthUser


class MeResponse(BaseModel):
    user: AuthUser
