"""Schemas for staff and purchaser management."""

from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class StaffCreate(BaseModel):
    """A stockist's staff member. Image and Aadhaar card are already-uploaded URLs."""
    full_name: str = Field(..., min_length=1, max_length=255)
    contact: str = Field(..., min_length=1, max_length=32)
    email: Optional[EmailStr] = None
    address: Optional[str] = Field(None, max_length=255)
    image: str = Field(..., min_length=1)
    aadhar_card: str = Field(..., min_length=1)
