"""
Pydantic schemas for user-related request/response validation.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, EmailStr, Field


class UserCreate(BaseModel):
    username: str = Field(..., min_length=3, max_length=100, pattern=r"^[a-zA-Z0-9_.]+$")
    email: Optional[EmailStr] = None
    phone: str = Field(..., min_length=6, max_length=20)
    # bcrypt only looks at the first 72 bytes
    password: str = Field(..., min_length=6, max_length=72)


class UserLogin(BaseModel):
    username: str = Field(..., min_length=1, description="Username or email")
    password: str


class UserResponse(BaseModel):
    id: int
    email: str
    username: str
    phone: Optional[str]
    role: str
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    role: str = "user"
