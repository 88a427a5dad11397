"""Approval workflow module for MediTrap.

Implements the threshold approval engine for purchasing-card requests and
the single-admin onboarding decisions for users and stockists.
"""

from .states import (
    GrantStatus,
    OnboardingDecision,
    OnboardingStatus,
    RequestStatus,
    RequestTransition,
)
from .machine import ApprovalStateMachine, PermissionDeniedError, TransitionError
from .locks import RequestLockManager
from .grants import (
    GrantExecutor,
    GrantKind,
    GrantRegistry,
    PurchaserProfileGrant,
    PurchasingCardGrant,
    default_grant_registry,
)
from .service import ApprovalOutcome, PendingApprovals, ThresholdApprovalService
from .onboarding import AuditContext, OnboardingService

__all__ = [
    "GrantStatus",
    "OnboardingDecision",
    "OnboardingStatus",
    "RequestStatus",
    "RequestTransition",
    "ApprovalStateMachine",
    "PermissionDeniedError",
    "TransitionError",
    "RequestLockManager",
    "GrantExecutor",
    "GrantKind",
    "GrantRegistry",
    "PurchaserProfileGrant",
    "PurchasingCardGrant",
    "default_grant_registry",
    "ApprovalOutcome",
    "PendingApprovals",
    "ThresholdApprovalService",
    "AuditContext",
    "OnboardingService",
]
