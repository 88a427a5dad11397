"""Approval state machine implementation.

Validates transitions against the rule tables in ``states`` and keeps an
in-memory history of what was applied. Persistence is the caller's job.
"""

from datetime import datetime
from typing import Optional, Dict, Any
from uuid import UUID

from .states import (
    TERMINAL_STATES,
    can_transition,
    get_transition_rule,
)


class TransitionError(Exception):
    """Raised when a state transition is invalid."""

    def __init__(self, message: str, from_state: str, transition: str):
        super().__init__(message)
        self.from_state = from_state
        self.transition = transition


class PermissionDeniedError(Exception):
    """Raised when the actor lacks admin capability for a transition."""

    def __init__(self, transition: str):
        super().__init__(f"Permission denied: {transition} requires an admin")
        self.transition = transition


def _value(state) -> str:
    return getattr(state, "value", state)


class ApprovalStateMachine:
    """
    State machine shared by approval requests and onboarding entities.

    Manages transitions between states with:
    - Validation of valid transitions
    - Admin checks for protected transitions
    - A record of every applied transition
    """

    def __init__(
        self,
        entity_id: UUID,
        current_state: str,
        *,
        is_admin: bool = False,
    ):
        """
        Initialize the state machine.

        Args:
            entity_id: ID of the request or account
            current_state: Current state value
            is_admin: Whether the acting principal is an admin
        """
        self.entity_id = entity_id
        self._state = _value(current_state)
        self.is_admin = is_admin
        self._transition_history: list[Dict[str, Any]] = []

    @property
    def state(self) -> str:
        """Current state of the entity."""
        return self._state

    @property
    def is_terminal(self) -> bool:
        """Check if current state is a terminal request state."""
        return self._state in TERMINAL_STATES

    def can_perform(self, transition) -> bool:
        """Check if a transition can be performed from current state."""
        rule = get_transition_rule(self._state, transition)
        if rule is None:
            return False
        return not rule.requires_admin or self.is_admin

    def transition(
        self,
        transition,
        *,
        actor_id: Optional[UUID] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Perform a state transition.

        Args:
            transition: The transition to perform
            actor_id: ID of the principal performing the transition
            metadata: Additional metadata to record

        Returns:
            The new state after transition

        Raises:
            TransitionError: If the transition is invalid
            PermissionDeniedError: If the actor is not an admin
        """
        if not can_transition(self._state, transition):
            raise TransitionError(
                f"Cannot perform {_value(transition)} from state {self._state}",
                self._state,
                _value(transition),
            )

        rule = get_transition_rule(self._state, transition)
        if rule.requires_admin and not self.is_admin:
            raise PermissionDeniedError(_value(transition))

        from_state = self._state
        self._state = _value(rule.to_state)
        self._transition_history.append({
            "entity_id": self.entity_id,
            "from_state": from_state,
            "to_state": self._state,
            "transition": _value(transition),
            "actor_id": actor_id,
            "metadata": metadata or {},
            "timestamp": datetime.utcnow(),
        })
        return self._state

    @property
    def changed(self) -> bool:
        """True if any applied transition moved the entity to a new state."""
        return any(h["from_state"] != h["to_state"] for h in self._transition_history)

    def get_history(self) -> list[Dict[str, Any]]:
        """Get the transition history for this entity."""
        return self._transition_history.copy()
