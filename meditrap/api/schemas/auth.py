from datetime import date
from typing import Any, Dict, Optional

from pydantic import BaseModel, EmailStr, Field


class UserCreate(BaseModel):
    """Medical-store owner registration."""
    medical_name: str = Field(..., min_length=1, max_length=100)
    owner_name: str = Field(..., min_length=1, max_length=50)
    address: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    contact_no: str = Field(..., min_length=1, max_length=32)
    drug_license_no: str = Field(..., min_length=1, max_length=64)
    drug_license_image: Optional[str] = None
    password: str = Field(..., min_length=6)


class StockistCreate(BaseModel):
    """Stockist signup, also used by admins creating a stockist directly."""
    name: str = Field(..., min_length=1, max_length=255)
    contact_person: Optional[str] = None
    phone: Optional[str] = None
    email: EmailStr
    password: Optional[str] = Field(None, min_length=6)
    address: Dict[str, Any] = Field(default_factory=dict)
    license_number: Optional[str] = None
    license_expiry: Optional[date] = None
    license_image_url: Optional[str] = None
    dob: Optional[date] = None
    blood_group: Optional[str] = None
    profile_image_url: Optional[str] = None
    role_type: Optional[str] = None
    cntx_number: Optional[str] = None


class PurchaserCreate(BaseModel):
    """Purchaser self-signup."""
    full_name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=6)
    address: str = ""
    contact_no: str = ""
    aadhar_no: Optional[str] = Field(None, max_length=16)
    aadhar_image: str = Field(..., min_length=1)
    photo: str = Field(..., min_length=1)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str
    # stockist | medicalOwner (alias: user) | purchaser
    role: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    kind: str
    account: Dict[str, Any]


class ForgotPasswordRequest(BaseModel):
    email: str


class ResetPasswordRequest(BaseModel):
    token: str
    email: str
    new_password: str = Field(..., min_length=6)


class ProfileUpdate(BaseModel):
    """Store-owner profile edit. Omitted or empty fields keep their value."""
    medical_name: Optional[str] = Field(None, max_length=100)
    owner_name: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = Field(None, max_length=200)
    contact_no: Optional[str] = Field(None, max_length=32)
    drug_license_image: Optional[str] = None
