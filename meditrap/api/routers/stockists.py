"""Stockist directory and admin review of stockist accounts."""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from meditrap.api.deps import get_audit_context, get_db, get_onboarding_service, require_admin
from meditrap.api.schemas.approvals import DecisionRequest
from meditrap.api.schemas.auth import StockistCreate
from meditrap.core.approval import AuditContext, OnboardingService, OnboardingStatus
from meditrap.core.approval.onboarding import stockist_to_dict
from meditrap.core.errors import ConflictError
from meditrap.core.identity import Principal, PrincipalKind, find_account_by_email
from meditrap.core.security import get_password_hash
from meditrap.db.models import Stockist

router = APIRouter(prefix="/stockists", tags=["stockists"])
logger = logging.getLogger(__name__)


@router.get("")
def list_stockists(
    status_filter: Optional[str] = Query(None, alias="status", description="processing | approved | declined"),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    service: OnboardingService = Depends(get_onboarding_service),
):
    """Public stockist directory, used by requesters to pick approvers."""
    return {"success": True, **service.list_entities(PrincipalKind.STOCKIST, status_filter, page, per_page)}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_stockist(
    stockist_in: StockistCreate,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Create a stockist directly. Admin-created stockists start approved."""
    email = stockist_in.email.lower()
    if find_account_by_email(db, PrincipalKind.STOCKIST, email):
        raise ConflictError("Email already registered.")

    data = stockist_in.model_dump(exclude={"password", "email"})
    stockist = Stockist(
        **data,
        email=email,
        password_hash=get_password_hash(stockist_in.password) if stockist_in.password else None,
        status=OnboardingStatus.APPROVED.value,
        approved_at=datetime.utcnow(),
        approved_by=admin.id,
    )
    db.add(stockist)
    db.commit()
    db.refresh(stockist)
    logger.info(f"Stockist {stockist.id} created by {admin.ref}")
    return {"success": True, "stockist": stockist_to_dict(stockist)}


@router.patch("/{stockist_id}/approve")
def approve_stockist(
    stockist_id: str,
    body: Optional[DecisionRequest] = None,
    admin: Principal = Depends(require_admin),
    context: AuditContext = Depends(get_audit_context),
    service: OnboardingService = Depends(get_onboarding_service),
):
    context.note = body.note if body else None
    stockist = service.approve(PrincipalKind.STOCKIST, stockist_id, admin, context)
    return {"success": True, "message": "Stockist approved successfully", "stockist": stockist}


@router.patch("/{stockist_id}/decline")
def decline_stockist(
    stockist_id: str,
    body: Optional[DecisionRequest] = None,
    admin: Principal = Depends(require_admin),
    context: AuditContext = Depends(get_audit_context),
    service: OnboardingService = Depends(get_onboarding_service),
):
    context.note = body.note if body else None
    stockist = service.decline(PrincipalKind.STOCKIST, stockist_id, admin, context)
    return {"success": True, "message": "Stockist declined successfully", "stockist": stockist}
