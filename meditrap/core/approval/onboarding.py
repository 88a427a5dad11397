"""Single-admin approve/decline decisions for user and stockist onboarding."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from meditrap.core.errors import ForbiddenError, InvalidRequestError, NotFoundError
from meditrap.core.identity import Principal, PrincipalKind, find_account
from meditrap.db.models import AdminAudit, AuditAction, Purchaser, Stockist, User

from .machine import ApprovalStateMachine, PermissionDeniedError
from .states import OnboardingDecision, OnboardingStatus

logger = logging.getLogger(__name__)

ONBOARDING_KINDS = (PrincipalKind.USER, PrincipalKind.STOCKIST)


@dataclass
class AuditContext:
    """Request metadata copied into the audit trail."""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    note: Optional[str] = None


def user_to_dict(user: User) -> Dict[str, Any]:
    return {
        "id": str(user.id),
        "kind": PrincipalKind.USER.value,
        "medical_name": user.medical_name,
        "owner_name": user.owner_name,
        "address": user.address,
        "email": user.email,
        "contact_no": user.contact_no,
        "drug_license_no": user.drug_license_no,
        "drug_license_image": user.drug_license_image,
        "role": user.role,
        "status": user.status,
        "approved_at": user.approved_at.isoformat() if user.approved_at else None,
        "approved_by": str(user.approved_by) if user.approved_by else None,
        "declined_at": user.declined_at.isoformat() if user.declined_at else None,
        "has_purchasing_card": user.has_purchasing_card,
        "purchasing_card_requested": user.purchasing_card_requested,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def stockist_to_dict(stockist: Stockist) -> Dict[str, Any]:
    return {
        "id": str(stockist.id),
        "kind": PrincipalKind.STOCKIST.value,
        "name": stockist.name,
        "contact_person": stockist.contact_person,
        "phone": stockist.phone,
        "email": stockist.email,
        "address": stockist.address or {},
        "license_number": stockist.license_number,
        "license_expiry": stockist.license_expiry.isoformat() if stockist.license_expiry else None,
        "license_image_url": stockist.license_image_url,
        "role_type": stockist.role_type,
        "status": stockist.status,
        "approved_at": stockist.approved_at.isoformat() if stockist.approved_at else None,
        "approved_by": str(stockist.approved_by) if stockist.approved_by else None,
        "declined_at": stockist.declined_at.isoformat() if stockist.declined_at else None,
        "created_at": stockist.created_at.isoformat() if stockist.created_at else None,
    }


def purchaser_to_dict(purchaser: Purchaser) -> Dict[str, Any]:
    return {
        "id": str(purchaser.id),
        "kind": PrincipalKind.PURCHASER.value,
        "full_name": purchaser.full_name,
        "address": purchaser.address,
        "contact_no": purchaser.contact_no,
        "email": purchaser.email,
        "aadhar_no": purchaser.aadhar_no,
        "aadhar_image": purchaser.aadhar_image,
        "photo": purchaser.photo,
        "verified": purchaser.verified,
        "approval_request_id": str(purchaser.approval_request_id) if purchaser.approval_request_id else None,
        "created_at": purchaser.created_at.isoformat() if purchaser.created_at else None,
    }


def entity_to_dict(kind: PrincipalKind, entity) -> Dict[str, Any]:
    """Public projection of any account. Password hashes are never included."""
    kind = PrincipalKind(kind)
    if kind == PrincipalKind.USER:
        return user_to_dict(entity)
    if kind == PrincipalKind.STOCKIST:
        return stockist_to_dict(entity)
    return purchaser_to_dict(entity)


class OnboardingService:
    """
    Admin approval of users and stockists.

    A decision is applied by one admin and may later be reversed. Applying
    the decision an entity already has is a successful no-op on state, but
    every call writes its own audit entry.
    """

    def __init__(self, db: Session):
        self.db = db

    def approve(
        self,
        kind: PrincipalKind,
        entity_id: Any,
        admin: Principal,
        context: Optional[AuditContext] = None,
    ) -> Dict[str, Any]:
        """
        Approve an onboarding entity.

        Args:
            kind: USER or STOCKIST
            entity_id: Account ID
            admin: Deciding admin
            context: Client metadata for the audit entry

        Returns:
            Projection of the entity after the decision

        Raises:
            NotFoundError: Entity missing or ID malformed
        """
        return self._decide(kind, entity_id, admin, OnboardingDecision.APPROVE, context)

    def decline(
        self,
        kind: PrincipalKind,
        entity_id: Any,
        admin: Principal,
        context: Optional[AuditContext] = None,
    ) -> Dict[str, Any]:
        """Decline an onboarding entity. Same contract as ``approve``."""
        return self._decide(kind, entity_id, admin, OnboardingDecision.DECLINE, context)

    def _decide(
        self,
        kind: PrincipalKind,
        entity_id: Any,
        admin: Principal,
        decision: OnboardingDecision,
        context: Optional[AuditContext],
    ) -> Dict[str, Any]:
        kind = PrincipalKind(kind)
        if kind not in ONBOARDING_KINDS:
            raise InvalidRequestError(f"{kind.value} accounts are not onboarded by admins.")
        context = context or AuditContext()

        entity = find_account(self.db, kind, entity_id)
        if entity is None:
            raise NotFoundError(f"{kind.value.capitalize()} not found.")

        previous = entity.status or OnboardingStatus.PROCESSING.value
        machine = ApprovalStateMachine(entity.id, previous, is_admin=admin.is_admin)
        try:
            new_status = machine.transition(decision, actor_id=admin.id)
        except PermissionDeniedError as e:
            raise ForbiddenError("Admin access required.") from e

        now = datetime.utcnow()
        if machine.changed:
            entity.status = new_status
            if decision == OnboardingDecision.APPROVE:
                entity.approved_at = now
                entity.approved_by = admin.id
                entity.declined_at = None
            else:
                entity.declined_at = now
                entity.approved_at = None
                entity.approved_by = None

        action = AuditAction.APPROVE if decision == OnboardingDecision.APPROVE else AuditAction.DECLINE
        self.db.add(AdminAudit.create_entry(
            action,
            kind.value,
            entity.id,
            actor_kind=admin.kind.value,
            actor_id=admin.id,
            actor_email=admin.email,
            note=context.note,
            details={"previous_status": previous, "new_status": new_status},
            ip_address=context.ip_address,
            user_agent=context.user_agent,
        ))
        self.db.commit()
        self.db.refresh(entity)

        if machine.changed:
            logger.info(f"{kind.value} {entity.id} {previous} -> {new_status} by {admin.ref}")
        else:
            logger.info(f"{kind.value} {entity.id} already {new_status}; {decision.value} by {admin.ref} audited")

        return entity_to_dict(kind, entity)

    def list_entities(
        self,
        kind: PrincipalKind,
        status: Optional[str] = None,
        page: int = 1,
        per_page: int = 20,
    ) -> Dict[str, Any]:
        """
        List onboarding entities, optionally filtered by status.

        Returns:
            Dictionary with items and pagination info
        """
        kind = PrincipalKind(kind)
        if kind not in ONBOARDING_KINDS:
            raise InvalidRequestError(f"{kind.value} accounts are not onboarded by admins.")
        model = User if kind == PrincipalKind.USER else Stockist

        query = self.db.query(model)
        if status:
            try:
                query = query.filter(model.status == OnboardingStatus(status).value)
            except ValueError as e:
                raise InvalidRequestError(f"Unknown status filter: {status}") from e

        total = query.count()
        items = (
            query.order_by(model.created_at.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
            .all()
        )
        return {
            "items": [entity_to_dict(kind, e) for e in items],
            "total": total,
            "page": page,
            "per_page": per_page,
            "pages": (total + per_page - 1) // per_page,
        }

    def get_entity(self, kind: PrincipalKind, entity_id: Any) -> Dict[str, Any]:
        kind = PrincipalKind(kind)
        entity = find_account(self.db, kind, entity_id)
        if entity is None:
            raise NotFoundError(f"{kind.value.capitalize()} not found.")
        return entity_to_dict(kind, entity)
