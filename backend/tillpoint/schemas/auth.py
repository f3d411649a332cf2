"""Authentication schemas."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    staff_code: str = Field(..., min_length=1, max_length=20)
    pin: str = Field(..., min_length=4, max_length=10)


class StaffResponse(BaseModel):
    id: int
    staff_code: str
    full_name: str
    role: str
    is_active: bool
    last_login: Optional[datetime] = None

    model_config = {"from_attributes": True}


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    staff: StaffResponse
