"""Grant executors fired when an approval request reaches its threshold.

Executors trust the threshold engine's at-most-once transition and do not
deduplicate. If that guarantee were broken, PurchaserProfileGrant would
create a second purchaser; the unique ``approval_request_id`` column on
purchasers is the last line that turns such a duplicate into an error.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from meditrap.core.errors import GrantExecutionError, InvalidRequestError
from meditrap.core.identity import Principal, PrincipalKind, find_account
from meditrap.db.models import ApprovalRequest, Purchaser, User

logger = logging.getLogger(__name__)


class GrantKind(str, Enum):
    """What an approved request materializes."""
    PURCHASING_CARD = "purchasing_card"
    PURCHASER_PROFILE = "purchaser_profile"


class GrantExecutor(ABC):
    """Base class for grant executors."""

    kind: GrantKind
    requester_kinds: tuple = (PrincipalKind.USER,)

    def prepare(self, db: Session, requester: Principal, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Validate the requester and normalize the payload before the request is stored.

        Raises:
            InvalidRequestError: If this grant cannot be requested by the caller
        """
        if requester.kind not in self.requester_kinds:
            raise InvalidRequestError(
                f"A {requester.kind.value} cannot request a {self.kind.value} grant."
            )
        return dict(payload or {})

    @abstractmethod
    def grant(self, db: Session, request: ApprovalRequest) -> Optional[UUID]:
        """Materialize the grant inside the caller's transaction.

        Returns:
            ID of the created or modified resource, if any

        Raises:
            GrantExecutionError: If the resource cannot be materialized
        """

    def on_rejected(self, db: Session, request: ApprovalRequest) -> None:
        """Undo anything ``prepare`` flagged on the requester."""


class PurchasingCardGrant(GrantExecutor):
    """Flips the purchasing-card capability on the requesting user."""

    kind = GrantKind.PURCHASING_CARD

    def _requester(self, db: Session, request: ApprovalRequest) -> Optional[User]:
        return find_account(db, PrincipalKind.USER, request.requester_id)

    def prepare(self, db, requester, payload):
        payload = super().prepare(db, requester, payload)
        user = find_account(db, PrincipalKind.USER, requester.id)
        if user is None:
            raise InvalidRequestError("Requesting user not found.")
        user.purchasing_card_requested = True
        return payload

    def grant(self, db, request):
        user = self._requester(db, request)
        if user is None:
            raise GrantExecutionError(
                f"Requester {request.requester_id} no longer exists.",
                details={"request_id": str(request.id)},
            )
        user.has_purchasing_card = True
        user.purchasing_card_requested = False
        return user.id

    def on_rejected(self, db, request):
        user = self._requester(db, request)
        if user is not None:
            user.purchasing_card_requested = False


class PurchaserProfileGrant(GrantExecutor):
    """Creates a purchaser profile from the request payload."""

    kind = GrantKind.PURCHASER_PROFILE
    requester_kinds = (PrincipalKind.USER, PrincipalKind.STOCKIST)

    FIELDS = ("full_name", "address", "contact_no", "email", "aadhar_no", "aadhar_image", "photo")

    def prepare(self, db, requester, payload):
        payload = super().prepare(db, requester, payload)
        return {field: payload.get(field) for field in self.FIELDS if payload.get(field) is not None}

    def grant(self, db, request):
        data = request.payload or {}
        email = (data.get("email") or "").strip().lower() or None
        purchaser = Purchaser(
            full_name=data.get("full_name") or "Unnamed",
            address=data.get("address") or "",
            contact_no=data.get("contact_no") or "",
            email=email,
            aadhar_no=data.get("aadhar_no"),
            aadhar_image=data.get("aadhar_image") or "",
            photo=data.get("photo") or "",
            created_by=request.requester_id,
            approval_request_id=request.id,
        )
        db.add(purchaser)
        try:
            db.flush()
        except SQLAlchemyError as e:
            raise GrantExecutionError(
                f"Could not create purchaser profile: {e.__class__.__name__}",
                details={"request_id": str(request.id)},
            ) from e
        return purchaser.id


class GrantRegistry:
    """Maps grant kinds to their executors."""

    def __init__(self):
        self._executors: Dict[str, GrantExecutor] = {}

    def register(self, executor: GrantExecutor) -> None:
        kind = executor.kind.value
        if kind in self._executors:
            logger.warning(f"Overwriting existing grant executor: {kind}")
        self._executors[kind] = executor

    def get(self, kind) -> GrantExecutor:
        """Look up an executor.

        Raises:
            InvalidRequestError: If no executor handles the kind
        """
        key = getattr(kind, "value", kind)
        executor = self._executors.get(key)
        if executor is None:
            raise InvalidRequestError(f"Unknown grant kind: {key}", details={"known": self.list_kinds()})
        return executor

    def list_kinds(self) -> List[str]:
        return list(self._executors.keys())


def default_grant_registry() -> GrantRegistry:
    registry = GrantRegistry()
    registry.register(PurchasingCardGrant())
    registry.register(PurchaserProfileGrant())
    return registry
