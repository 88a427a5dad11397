"""Admin review of medical-store owner accounts."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from meditrap.api.deps import get_audit_context, get_onboarding_service, require_admin
from meditrap.api.schemas.approvals import DecisionRequest
from meditrap.core.approval import AuditContext, OnboardingService
from meditrap.core.identity import Principal, PrincipalKind

router = APIRouter(prefix="/users", tags=["users"])


@router.get("")
def list_users(
    status_filter: Optional[str] = Query(None, alias="status", description="processing | approved | declined"),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    admin: Principal = Depends(require_admin),
    service: OnboardingService = Depends(get_onboarding_service),
):
    """List users, optionally filtered by review status."""
    return {"success": True, **service.list_entities(PrincipalKind.USER, status_filter, page, per_page)}


@router.get("/{user_id}")
def get_user(
    user_id: str,
    admin: Principal = Depends(require_admin),
    service: OnboardingService = Depends(get_onboarding_service),
):
    return {"success": True, "user": service.get_entity(PrincipalKind.USER, user_id)}


@router.patch("/{user_id}/approve")
def approve_user(
    user_id: str,
    body: Optional[DecisionRequest] = None,
    admin: Principal = Depends(require_admin),
    context: AuditContext = Depends(get_audit_context),
    service: OnboardingService = Depends(get_onboarding_service),
):
    context.note = body.note if body else None
    user = service.approve(PrincipalKind.USER, user_id, admin, context)
    return {"success": True, "message": "User approved successfully", "user": user}


@router.patch("/{user_id}/decline")
def decline_user(
    user_id: str,
    body: Optional[DecisionRequest] = None,
    admin: Principal = Depends(require_admin),
    context: AuditContext = Depends(get_audit_context),
    service: OnboardingService = Depends(get_onboarding_service),
):
    context.note = body.note if body else None
    user = service.decline(PrincipalKind.USER, user_id, admin, context)
    return {"success": True, "message": "User declined successfully", "user": user}
