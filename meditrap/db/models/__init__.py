"""Database models for the MediTrap backend."""

from meditrap.db.models.user import User
from meditrap.db.models.stockist import Stockist
from meditrap.db.models.purchaser import Purchaser
from meditrap.db.models.staff import Staff
from meditrap.db.models.audit import AdminAudit, AuditAction, ImmutableAuditError
from meditrap.db.models.password_reset_token import PasswordResetToken
from meditrap.db.models.approval import (
    ApprovalRequest,
    ApprovalCandidate,
    ApprovalRecord,
    ApprovalToken,
)

__all__ = [
    "User",
    "Stockist",
    "Purchaser",
    "Staff",
    "AdminAudit",
    "AuditAction",
    "ImmutableAuditError",
    "PasswordResetToken",
    "ApprovalRequest",
    "ApprovalCandidate",
    "ApprovalRecord",
    "ApprovalToken",
]
