"""Purchasing-card approval endpoints.

Stockists approve either through the authenticated API or through the
single-use link mailed to them. Both paths go through the same engine.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from meditrap.api.deps import (
    get_approval_service,
    get_current_principal,
    require_admin,
    require_stockist,
)
from meditrap.api.schemas.approvals import (
    ApprovalOutcomeResponse,
    PurchasingCardRequestCreate,
    PurchasingRequestCreate,
    RejectRequest,
    RequestCreatedResponse,
)
from meditrap.core.approval import ApprovalOutcome, GrantKind, RequestStatus, ThresholdApprovalService
from meditrap.core.identity import Principal, PrincipalKind

router = APIRouter(prefix="/purchasing-card", tags=["purchasing-card"])
requests_router = APIRouter(prefix="/purchasing-requests", tags=["purchasing-card"])


def _outcome_response(outcome: ApprovalOutcome) -> ApprovalOutcomeResponse:
    if outcome.duplicate:
        message = "Already approved"
    elif outcome.status == RequestStatus.APPROVED.value:
        message = "Request approved"
    else:
        message = f"Approval recorded ({outcome.approval_count}/{outcome.threshold})"
    return ApprovalOutcomeResponse(message=message, **outcome.to_dict())


@router.post("/request", response_model=RequestCreatedResponse, status_code=status.HTTP_201_CREATED)
def create_purchasing_card_request(
    body: PurchasingCardRequestCreate,
    principal: Principal = Depends(get_current_principal),
    service: ThresholdApprovalService = Depends(get_approval_service),
):
    """Ask at least three stockists to vouch for a purchasing card."""
    request = service.create_request(principal, body.stockist_ids, grant_kind=GrantKind.PURCHASING_CARD)
    return RequestCreatedResponse(
        message="Request submitted and stockists notified",
        request_id=request["id"],
        request=request,
    )


@router.get("/requests")
def list_requests(
    principal: Principal = Depends(get_current_principal),
    service: ThresholdApprovalService = Depends(get_approval_service),
):
    """
    Stockists see requests still waiting on them; requesters see their own.
    """
    if principal.kind == PrincipalKind.STOCKIST:
        requests = [service.request_to_dict(r) for r in service.list_pending_for(principal.id)]
    else:
        requests = service.list_for_requester(principal)
    return {"success": True, "requests": requests}


@router.get("/approve-web", response_model=ApprovalOutcomeResponse)
def approve_via_link(
    token: str = Query(..., min_length=1),
    service: ThresholdApprovalService = Depends(get_approval_service),
):
    """Redeem a mailed approval link. No login required."""
    return _outcome_response(service.redeem_token(token))


@router.post("/approve/{request_id}", response_model=ApprovalOutcomeResponse)
def approve_request(
    request_id: str,
    principal: Principal = Depends(require_stockist),
    service: ThresholdApprovalService = Depends(get_approval_service),
):
    """Approve as the authenticated stockist."""
    return _outcome_response(service.record_approval(request_id, principal.id))


@router.get("/{request_id}")
def get_request(
    request_id: str,
    principal: Principal = Depends(get_current_principal),
    service: ThresholdApprovalService = Depends(get_approval_service),
):
    return {"success": True, "request": service.get_request(request_id, viewer=principal)}


@router.post("/{request_id}/reject")
def reject_request(
    request_id: str,
    body: Optional[RejectRequest] = None,
    admin: Principal = Depends(require_admin),
    service: ThresholdApprovalService = Depends(get_approval_service),
):
    request = service.reject_request(request_id, admin, reason=body.reason if body else None)
    return {"success": True, "message": "Request rejected", "request": request}


@router.post("/{request_id}/retry-grant")
def retry_grant(
    request_id: str,
    admin: Principal = Depends(require_admin),
    service: ThresholdApprovalService = Depends(get_approval_service),
):
    """Re-run a grant that failed after the request was approved."""
    request = service.retry_grant(request_id, admin)
    return {"success": True, "message": f"Grant {request['grant_status']}", "request": request}


@requests_router.post("", response_model=RequestCreatedResponse, status_code=status.HTTP_201_CREATED)
def create_purchasing_request(
    body: PurchasingRequestCreate,
    principal: Principal = Depends(get_current_principal),
    service: ThresholdApprovalService = Depends(get_approval_service),
):
    """Ask stockists to approve a new purchaser profile."""
    request = service.create_request(
        principal,
        body.stockist_ids,
        payload=body.purchaser_data.model_dump(exclude_none=True),
        grant_kind=GrantKind.PURCHASER_PROFILE,
    )
    return RequestCreatedResponse(
        message="Request submitted and stockists notified",
        request_id=request["id"],
        request=request,
    )
