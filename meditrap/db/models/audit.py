"""Admin audit model.

Entries are IMMUTABLE - ORM event hooks refuse UPDATE and DELETE flushes.
Every admin onboarding decision writes one entry, including decisions that
leave the target's status unchanged.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any
from sqlalchemy import Column, String, DateTime, JSON, Text, Uuid, event

from meditrap.db.base import Base


class AuditAction(str, Enum):
    """Admin actions recorded in the audit trail."""
    APPROVE = "approve"
    DECLINE = "decline"


class ImmutableAuditError(Exception):
    """Raised when code tries to modify or delete an audit entry."""


class AdminAudit(Base):
    """
    Immutable record of one admin decision.

    Written by the onboarding engine, read only by operators.
    """
    __tablename__ = "admin_audits"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    # Actor information
    actor_kind = Column(String(20), nullable=True)
    actor_id = Column(Uuid, nullable=True, index=True)
    actor_email = Column(String(255), nullable=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)

    # Action details
    action = Column(String(20), nullable=False, index=True)
    target_kind = Column(String(20), nullable=False)
    target_id = Column(Uuid, nullable=False, index=True)
    note = Column(String(500), nullable=True)
    details = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    def __repr__(self) -> str:
        return f"<AdminAudit {self.action} on {self.target_kind} {self.target_id} by {self.actor_id}>"

    @classmethod
    def create_entry(
        cls,
        action: AuditAction,
        target_kind: str,
        target_id: uuid.UUID,
        *,
        actor_kind: Optional[str] = None,
        actor_id: Optional[uuid.UUID] = None,
        actor_email: Optional[str] = None,
        note: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> "AdminAudit":
        """
        Factory method to create a new audit entry.

        Args:
            action: Decision taken (approve or decline)
            target_kind: Kind of account decided on ('user', 'stockist')
            target_id: ID of the account
            actor_kind: Principal kind of the admin
            actor_id: ID of the admin (None for system actions)
            actor_email: Admin email at the time of the action
            note: Optional free-text note (max 500 chars)
            details: Additional context, e.g. previous and new status
            ip_address: Client IP address
            user_agent: Client user agent string
        """
        return cls(
            action=action.value if isinstance(action, AuditAction) else action,
            target_kind=target_kind,
            target_id=target_id,
            actor_kind=actor_kind,
            actor_id=actor_id,
            actor_email=actor_email,
            note=note[:500] if note else None,
            details=details,
            ip_address=ip_address,
            user_agent=user_agent,
        )


@event.listens_for(AdminAudit, "before_update")
def _refuse_update(mapper, connection, target):
    raise ImmutableAuditError(f"Audit entry {target.id} is immutable")


@event.listens_for(AdminAudit, "before_delete")
def _refuse_delete(mapper, connection, target):
    raise ImmutableAuditError(f"Audit entry {target.id} cannot be deleted")
