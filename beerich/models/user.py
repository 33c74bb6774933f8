from pydantic import BaseModel, EmailStr, Field
from uuid import uuid4
from datetime import datetime, timezone


class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8)


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class UserInDB(BaseModel):
    user_id: str = Field(default_factory=lambda: uuid4().hex)
    email: EmailStr
    name: str = ""
    password_hash: str
    created_at: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    updated_at: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class UserPublic(BaseModel):
    """A user as exposed to handlers and templates, never carrying the password hash."""

    user_id: str
    email: EmailStr
    name: str = ""
    created_at: str
    updated_at: str
