from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from taskhub.project_manager.enums import UserRole


class UserBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr


class UserCreate(UserBase):
    password: str = Field(..., min_length=6)
    role: Optional[UserRole] = None


class LoginIn(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class UserUpdate(BaseModel):
    # falsy values are treated as absent by the update handler
    name: Optional[str] = Field(None, max_length=200)
    email: Optional[EmailStr] = None
    role: Optional[UserRole] = None


class UserOut(UserBase):
    id: str
    role: UserRole

    class Config:
        from_attributes = True


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
