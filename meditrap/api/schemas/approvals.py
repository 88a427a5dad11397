"""Schemas for purchasing-card approval endpoints."""

from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field


class PurchasingCardRequestCreate(BaseModel):
    stockist_ids: List[UUID] = Field(..., description="Candidate approvers (at least 3)")


class PurchaserData(BaseModel):
    full_name: Optional[str] = None
    address: Optional[str] = None
    contact_no: Optional[str] = None
    email: Optional[EmailStr] = None
    aadhar_no: Optional[str] = Field(None, max_length=16)
    aadhar_image: Optional[str] = None
    photo: Optional[str] = None


class PurchasingRequestCreate(BaseModel):
    """Request for a purchaser profile approved by stockists."""
    stockist_ids: List[UUID]
    purchaser_data: PurchaserData = Field(default_factory=PurchaserData)


class RejectRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class ApprovalOutcomeResponse(BaseModel):
    success: bool = True
    message: str
    request_id: str
    status: str
    approval_count: int
    threshold: int
    duplicate: bool = False
    grant_status: str


class DecisionRequest(BaseModel):
    note: Optional[str] = Field(None, max_length=500)


class RequestCreatedResponse(BaseModel):
    success: bool = True
    message: str
    request_id: str
    request: Dict[str, Any]
