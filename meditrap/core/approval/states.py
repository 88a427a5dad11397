"""Approval workflow states and transitions.

Purchasing-card request lifecycle:

    ┌──────────┐
    │ PENDING  │ ← Initial state (request submitted)
    └────┬─────┘
         │
         ├──────────────────┐
         │                  │
    ┌────▼─────┐      ┌─────▼────┐
    │ APPROVED │      │ REJECTED │
    └──────────┘      └──────────┘

Both outcomes are terminal. The grant fires on PENDING → APPROVED only.

Onboarding lifecycle (users and stockists):

    ┌────────────┐
    │ PROCESSING │ ← Initial state (signup)
    └─────┬──────┘
          │
    ┌─────┴──────┐
    │            │
┌───▼────┐  ┌────▼─────┐
│APPROVED│◄─►│ DECLINED │  (admin may reverse a decision)
└────────┘  └──────────┘
"""

from enum import Enum
from typing import Set, Dict, Optional, NamedTuple


class RequestStatus(str, Enum):
    """States of a purchasing-card approval request."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class RequestTransition(str, Enum):
    """Actions that move a request out of PENDING."""
    REACH_THRESHOLD = "reach_threshold"  # PENDING → APPROVED
    REJECT = "reject"                    # PENDING → REJECTED (admin only)


class GrantStatus(str, Enum):
    """Progress of the side effect fired on approval."""
    WAITING = "waiting"    # grant has not run yet
    GRANTED = "granted"
    FAILED = "failed"      # approval stands; needs manual remediation


class OnboardingStatus(str, Enum):
    """Admin review states of a user or stockist account."""
    PROCESSING = "processing"
    APPROVED = "approved"
    DECLINED = "declined"


class OnboardingDecision(str, Enum):
    """Single-admin decisions on an onboarding entity."""
    APPROVE = "approve"
    DECLINE = "decline"


class TransitionRule(NamedTuple):
    """Defines a valid state transition."""
    from_state: str
    to_state: str
    transition: str
    requires_admin: bool = False


REQUEST_RULES: list[TransitionRule] = [
    TransitionRule(RequestStatus.PENDING, RequestStatus.APPROVED, RequestTransition.REACH_THRESHOLD),
    TransitionRule(RequestStatus.PENDING, RequestStatus.REJECTED, RequestTransition.REJECT, requires_admin=True),
]

# Re-applying a decision is a valid self-transition
ONBOARDING_RULES: list[TransitionRule] = [
    TransitionRule(OnboardingStatus.PROCESSING, OnboardingStatus.APPROVED, OnboardingDecision.APPROVE, True),
    TransitionRule(OnboardingStatus.PROCESSING, OnboardingStatus.DECLINED, OnboardingDecision.DECLINE, True),
    TransitionRule(OnboardingStatus.APPROVED, OnboardingStatus.APPROVED, OnboardingDecision.APPROVE, True),
    TransitionRule(OnboardingStatus.APPROVED, OnboardingStatus.DECLINED, OnboardingDecision.DECLINE, True),
    TransitionRule(OnboardingStatus.DECLINED, OnboardingStatus.APPROVED, OnboardingDecision.APPROVE, True),
    TransitionRule(OnboardingStatus.DECLINED, OnboardingStatus.DECLINED, OnboardingDecision.DECLINE, True),
]

# Build lookup tables for efficient access
TRANSITION_TARGETS: Dict[tuple[str, str], TransitionRule] = {}


def _key(value) -> str:
    return getattr(value, "value", value)


for rule in REQUEST_RULES + ONBOARDING_RULES:
    TRANSITION_TARGETS[(_key(rule.from_state), _key(rule.transition))] = rule


# Terminal request states (never move back to PENDING)
TERMINAL_STATES: Set[str] = {
    RequestStatus.APPROVED.value,
    RequestStatus.REJECTED.value,
}


def can_transition(from_state: str, transition: str) -> bool:
    """Check if a transition is valid from the given state."""
    return (_key(from_state), _key(transition)) in TRANSITION_TARGETS


def get_transition_rule(from_state: str, transition: str) -> Optional[TransitionRule]:
    """Get the transition rule for a state/action combination."""
    return TRANSITION_TARGETS.get((_key(from_state), _key(transition)))


def get_target_state(from_state: str, transition: str) -> Optional[str]:
    """Get the target state for a transition."""
    rule = get_transition_rule(from_state, transition)
    return rule.to_state if rule else None
