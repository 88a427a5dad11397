"""Threshold approval service for purchasing-card style requests.

A request names at least ``threshold`` candidate stockists. Each candidate
may approve once, either through the authenticated API or by redeeming the
single-use token mailed to them. Both entry points share one append-and-check
core that runs under three guards:

- a per-request lock taken through the key-value store,
- a ``SELECT ... FOR UPDATE`` load of the request row,
- conditional UPDATEs (status, version, token ``used`` flag) whose row
  count decides the winner.

The grant fires in its own transaction right after the approving commit, so
a failing grant is recorded on the request without undoing the approval.
"""

import logging
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import exists, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from meditrap.core.config import Settings, get_settings
from meditrap.core.errors import (
    AlreadyProcessedError,
    ConcurrencyConflictError,
    ForbiddenError,
    InvalidRequestError,
    InvalidTokenError,
    MeditrapError,
    NotFoundError,
    UnauthorizedApproverError,
)
from meditrap.core.identity import Principal, PrincipalKind, display_name, find_requester, parse_uuid
from meditrap.core.security import generate_secure_token, hash_token
from meditrap.services.notifications import build_approval_messages
from meditrap.db.models import (
    ApprovalCandidate,
    ApprovalRecord,
    ApprovalRequest,
    ApprovalToken,
    Stockist,
)

from .grants import GrantKind, GrantRegistry, default_grant_registry
from .locks import RequestLockManager
from .machine import ApprovalStateMachine, PermissionDeniedError, TransitionError
from .states import GrantStatus, OnboardingStatus, RequestStatus, RequestTransition

logger = logging.getLogger(__name__)

MAX_TOKEN_LENGTH = 256


@dataclass
class ApprovalOutcome:
    """Result of one approval attempt."""
    request_id: UUID
    status: str
    approval_count: int
    threshold: int
    duplicate: bool = False
    grant_status: str = GrantStatus.WAITING.value

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["request_id"] = str(self.request_id)
        return data


class PendingApprovals:
    """
    Requests still waiting on one approver, newest first.

    Each iteration runs a fresh query and streams rows in batches, so the
    sequence is lazy, finite and can be iterated again to see current state.
    """

    def __init__(self, db: Session, approver_id: Optional[UUID], batch_size: int = 50):
        self.db = db
        self.approver_id = approver_id
        self.batch_size = batch_size

    def _query(self):
        already_approved = exists().where(
            ApprovalRecord.request_id == ApprovalRequest.id,
            ApprovalRecord.approver_id == self.approver_id,
        )
        return (
            self.db.query(ApprovalRequest)
            .join(ApprovalCandidate, ApprovalCandidate.request_id == ApprovalRequest.id)
            .filter(
                ApprovalCandidate.approver_id == self.approver_id,
                ApprovalRequest.status == RequestStatus.PENDING.value,
                ~already_approved,
            )
            .order_by(ApprovalRequest.created_at.desc(), ApprovalRequest.id)
        )

    def __iter__(self) -> Iterator[ApprovalRequest]:
        if self.approver_id is None:
            return iter(())
        return iter(self._query().yield_per(self.batch_size))


class ThresholdApprovalService:
    """
    Multi-party approval engine.

    Handles:
    - Creating requests and mailing single-use approval links
    - Recording approvals by identity or by token
    - Firing the grant exactly once at the threshold
    - Rejection and manual grant retry by admins
    """

    def __init__(
        self,
        db: Session,
        locks: RequestLockManager,
        *,
        notifier=None,
        grants: Optional[GrantRegistry] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize the approval service.

        Args:
            db: Database session
            locks: Per-request lock manager
            notifier: ApprovalNotifier used for approval mail; None disables mail
            grants: Grant executor registry (defaults to the built-in grants)
            settings: Application settings
        """
        self.db = db
        self.locks = locks
        self.notifier = notifier
        self.grants = grants or default_grant_registry()
        self.settings = settings or get_settings()

    @property
    def threshold(self) -> int:
        return self.settings.approval_threshold

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_request(
        self,
        requester: Principal,
        candidate_approver_ids: Sequence[Any],
        payload: Optional[Dict[str, Any]] = None,
        grant_kind: GrantKind = GrantKind.PURCHASING_CARD,
    ) -> Dict[str, Any]:
        """
        Create a pending request and notify every candidate approver.

        Args:
            requester: Principal asking for the grant
            candidate_approver_ids: Stockist IDs eligible to approve
            payload: Data the grant needs once approved
            grant_kind: Which grant executor materializes the request

        Returns:
            Projection of the stored request (never includes tokens)

        Raises:
            InvalidRequestError: Too few distinct approvers, unknown or
                unapproved stockists, or a grant the requester may not ask for
        """
        executor = self.grants.get(grant_kind)

        approver_ids: List[UUID] = []
        for raw in candidate_approver_ids or []:
            parsed = parse_uuid(raw)
            if parsed is None:
                raise InvalidRequestError(f"Invalid approver id: {raw}")
            if parsed not in approver_ids:
                approver_ids.append(parsed)

        if len(approver_ids) < self.threshold:
            raise InvalidRequestError(
                f"Please select at least {self.threshold} distinct stockists.",
                details={"selected": len(approver_ids), "required": self.threshold},
            )
        if requester.kind == PrincipalKind.STOCKIST and requester.id in approver_ids:
            raise InvalidRequestError("A stockist cannot approve their own request.")

        stockists = self.db.query(Stockist).filter(Stockist.id.in_(approver_ids)).all()
        found = {s.id: s for s in stockists}
        missing = [str(a) for a in approver_ids if a not in found]
        if missing:
            raise InvalidRequestError("Invalid stockist selection.", details={"unknown": missing})
        unapproved = [str(s.id) for s in stockists if s.status != OnboardingStatus.APPROVED.value]
        if unapproved:
            raise InvalidRequestError(
                "Only approved stockists can approve requests.",
                details={"unapproved": unapproved},
            )

        requester_account = find_requester(self.db, requester)
        if requester_account is None:
            raise InvalidRequestError("Requester account not found.")

        stored_payload = executor.prepare(self.db, requester, payload or {})

        request = ApprovalRequest(
            requester_kind=requester.kind.value,
            requester_id=requester.id,
            grant_kind=executor.kind.value,
            payload=stored_payload,
            status=RequestStatus.PENDING.value,
            threshold=self.threshold,
            grant_status=GrantStatus.WAITING.value,
        )
        raw_tokens: Dict[UUID, str] = {}
        for position, approver_id in enumerate(approver_ids):
            raw = generate_secure_token()
            raw_tokens[approver_id] = raw
            request.candidates.append(ApprovalCandidate(approver_id=approver_id, position=position))
            request.tokens.append(ApprovalToken(approver_id=approver_id, token_hash=hash_token(raw)))

        self.db.add(request)
        self.db.commit()
        self.db.refresh(request)

        logger.info(
            f"Approval request {request.id} ({request.grant_kind}) created by "
            f"{requester.ref} with {len(approver_ids)} candidates"
        )

        self._notify_candidates(
            request,
            [(found[a], raw_tokens[a]) for a in approver_ids],
            display_name(requester.kind, requester_account),
        )
        return self.request_to_dict(request)

    def _notify_candidates(self, request: ApprovalRequest, recipients, requester_name: str) -> None:
        if self.notifier is None:
            logger.debug(f"No notifier configured; skipping mail for request {request.id}")
            return

        try:
            messages = build_approval_messages(
                request_id=request.id,
                grant_kind=request.grant_kind,
                requester_name=requester_name,
                recipients=recipients,
                settings=self.settings,
            )
            self.notifier.dispatch(messages)
        except Exception:
            logger.exception(f"Failed to dispatch approval notifications for request {request.id}")

    # ------------------------------------------------------------------
    # Approval entry points
    # ------------------------------------------------------------------

    def record_approval(self, request_id: Any, approver_id: Any) -> ApprovalOutcome:
        """
        Record an approval by an authenticated approver.

        Approving twice is a successful no-op that reports the current state.

        Raises:
            NotFoundError: Request does not exist
            AlreadyProcessedError: Request is no longer pending
            UnauthorizedApproverError: Approver is not a candidate
            ConcurrencyConflictError: Request stayed locked past the timeout
        """
        rid = self._parse_request_id(request_id)
        aid = parse_uuid(approver_id)
        if aid is None:
            raise UnauthorizedApproverError("You are not an approver for this request.")

        with self.locks.hold(rid):
            try:
                outcome, transitioned = self._append_and_check(rid, aid, via="api")
                self.db.commit()
            except MeditrapError:
                self.db.rollback()
                raise
            if transitioned:
                outcome.grant_status = self._run_grant(rid)
        return outcome

    def redeem_token(self, token: Any) -> ApprovalOutcome:
        """
        Approve on behalf of the stockist a mailed token was issued to.

        The token is burned even when the request has meanwhile become
        terminal, so any second redemption fails with InvalidTokenError.

        Raises:
            InvalidTokenError: Token unknown, malformed or already used
            AlreadyProcessedError: Request is no longer pending
            ConcurrencyConflictError: Request stayed locked past the timeout
        """
        if not isinstance(token, str) or not token or len(token) > MAX_TOKEN_LENGTH:
            raise InvalidTokenError("Invalid or already used approval token.")

        token_row = (
            self.db.query(ApprovalToken)
            .filter(ApprovalToken.token_hash == hash_token(token))
            .one_or_none()
        )
        if token_row is None or token_row.used:
            raise InvalidTokenError("Invalid or already used approval token.")
        rid, aid, token_id = token_row.request_id, token_row.approver_id, token_row.id

        with self.locks.hold(rid):
            try:
                outcome, transitioned = self._append_and_check(rid, aid, via="token", token_id=token_id)
                self.db.commit()
            except AlreadyProcessedError:
                # keep the burned token
                self.db.commit()
                raise
            except MeditrapError:
                self.db.rollback()
                raise
            if transitioned:
                outcome.grant_status = self._run_grant(rid)
        return outcome

    def _append_and_check(
        self,
        request_id: UUID,
        approver_id: UUID,
        *,
        via: str,
        token_id: Optional[UUID] = None,
    ) -> tuple[ApprovalOutcome, bool]:
        """Shared core of both entry points. Caller holds the lock and commits.

        Returns:
            The outcome and whether this call moved the request to APPROVED
        """
        now = datetime.utcnow()

        if token_id is not None:
            claimed = self.db.execute(
                update(ApprovalToken)
                .where(ApprovalToken.id == token_id, ApprovalToken.used.is_(False))
                .values(used=True, used_at=now)
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount != 1:
                raise InvalidTokenError("Invalid or already used approval token.")

        request = self._load_for_update(request_id)
        machine = ApprovalStateMachine(request.id, request.status)
        if machine.is_terminal:
            raise AlreadyProcessedError(
                f"Request already {request.status}.",
                details={"status": request.status},
            )

        if approver_id not in {c.approver_id for c in request.candidates}:
            raise UnauthorizedApproverError("You are not an approver for this request.")

        count = len(request.approvals)
        if approver_id in {a.approver_id for a in request.approvals}:
            logger.info(f"Duplicate approval by {approver_id} on request {request.id}")
            return ApprovalOutcome(
                request_id=request.id,
                status=request.status,
                approval_count=count,
                threshold=request.threshold,
                duplicate=True,
                grant_status=request.grant_status,
            ), False

        count += 1
        self.db.add(ApprovalRecord(
            request_id=request.id,
            approver_id=approver_id,
            sequence=count,
            via=via,
            decided_at=now,
        ))
        try:
            self.db.flush()
        except IntegrityError as e:
            raise ConcurrencyConflictError("Approval was recorded concurrently; retry.") from e

        values: Dict[str, Any] = {"version": ApprovalRequest.version + 1, "updated_at": now}
        transitioned = count >= request.threshold
        if transitioned:
            machine.transition(RequestTransition.REACH_THRESHOLD, actor_id=approver_id)
            values.update(status=machine.state, approved_at=now)

        result = self.db.execute(
            update(ApprovalRequest)
            .where(
                ApprovalRequest.id == request.id,
                ApprovalRequest.status == RequestStatus.PENDING.value,
                ApprovalRequest.version == request.version,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConcurrencyConflictError("Request changed while approving; retry.")

        logger.info(
            f"Approval {count}/{request.threshold} by {approver_id} via {via} on request {request.id}"
        )
        return ApprovalOutcome(
            request_id=request.id,
            status=machine.state,
            approval_count=count,
            threshold=request.threshold,
        ), transitioned

    # ------------------------------------------------------------------
    # Grant execution
    # ------------------------------------------------------------------

    def _run_grant(self, request_id: UUID) -> str:
        """Fire the grant for a freshly approved request. Never raises.

        Returns:
            The resulting grant status
        """
        request = self.db.get(ApprovalRequest, request_id, populate_existing=True)
        try:
            executor = self.grants.get(request.grant_kind)
            resource_id = executor.grant(self.db, request)
            request.grant_status = GrantStatus.GRANTED.value
            request.granted_resource_id = resource_id
            request.grant_error = None
            self.db.commit()
            logger.info(f"Grant {request.grant_kind} fired for request {request_id}")
            return GrantStatus.GRANTED.value
        except Exception as e:
            self.db.rollback()
            logger.exception(f"Grant {request.grant_kind} failed for approved request {request_id}")
            request = self.db.get(ApprovalRequest, request_id, populate_existing=True)
            request.grant_status = GrantStatus.FAILED.value
            request.grant_error = str(e)[:1000] or e.__class__.__name__
            self.db.commit()
            return GrantStatus.FAILED.value

    def retry_grant(self, request_id: Any, admin: Principal) -> Dict[str, Any]:
        """
        Re-run a grant for manual remediation.

        Covers grants that failed and grants that never ran because the
        process stopped between the approval commit and the grant.

        Raises:
            ForbiddenError: Caller is not an admin
            NotFoundError: Request does not exist
            InvalidRequestError: Request is not approved, or its grant already fired
        """
        if not admin.is_admin:
            raise ForbiddenError("Admin access required.")
        rid = self._parse_request_id(request_id)

        with self.locks.hold(rid):
            request = self._load_for_update(rid)
            if (
                request.status != RequestStatus.APPROVED.value
                or request.grant_status == GrantStatus.GRANTED.value
            ):
                self.db.rollback()
                raise InvalidRequestError(
                    "Only approved requests whose grant has not fired can be retried.",
                    details={"status": request.status, "grant_status": request.grant_status},
                )
            self.db.commit()
            logger.info(f"Admin {admin.ref} retrying grant for request {rid}")
            self._run_grant(rid)

        return self.get_request(rid)

    # ------------------------------------------------------------------
    # Rejection and queries
    # ------------------------------------------------------------------

    def reject_request(self, request_id: Any, admin: Principal, reason: Optional[str] = None) -> Dict[str, Any]:
        """
        Move a pending request to REJECTED.

        Raises:
            ForbiddenError: Caller is not an admin
            NotFoundError: Request does not exist
            AlreadyProcessedError: Request is no longer pending
        """
        rid = self._parse_request_id(request_id)

        with self.locks.hold(rid):
            try:
                request = self._load_for_update(rid)
                machine = ApprovalStateMachine(request.id, request.status, is_admin=admin.is_admin)
                try:
                    machine.transition(RequestTransition.REJECT, actor_id=admin.id)
                except PermissionDeniedError as e:
                    raise ForbiddenError("Admin access required.") from e
                except TransitionError as e:
                    raise AlreadyProcessedError(
                        f"Request already {request.status}.",
                        details={"status": request.status},
                    ) from e

                now = datetime.utcnow()
                result = self.db.execute(
                    update(ApprovalRequest)
                    .where(
                        ApprovalRequest.id == rid,
                        ApprovalRequest.status == RequestStatus.PENDING.value,
                    )
                    .values(
                        status=machine.state,
                        rejected_at=now,
                        rejected_by=admin.id,
                        rejection_reason=(reason or None),
                        version=ApprovalRequest.version + 1,
                        updated_at=now,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise AlreadyProcessedError("Request is no longer pending.")

                self.grants.get(request.grant_kind).on_rejected(self.db, request)
                self.db.commit()
            except MeditrapError:
                self.db.rollback()
                raise

        logger.info(f"Request {rid} rejected by {admin.ref}")
        return self.get_request(rid)

    def get_request(self, request_id: Any, viewer: Optional[Principal] = None) -> Dict[str, Any]:
        """
        Get a request projection.

        Args:
            request_id: Request ID
            viewer: If given, must be the requester, a candidate or an admin

        Raises:
            NotFoundError: Request does not exist
            ForbiddenError: Viewer may not see the request
        """
        rid = self._parse_request_id(request_id)
        request = self.db.get(ApprovalRequest, rid, populate_existing=True)
        if request is None:
            raise NotFoundError("Request not found.")

        if viewer is not None and not viewer.is_admin:
            is_requester = viewer.kind.value == request.requester_kind and viewer.id == request.requester_id
            is_candidate = viewer.kind == PrincipalKind.STOCKIST and viewer.id in {
                c.approver_id for c in request.candidates
            }
            if not (is_requester or is_candidate):
                raise ForbiddenError("You cannot view this request.")

        return self.request_to_dict(request)

    def list_pending_for(self, approver_id: Any) -> Iterable[ApprovalRequest]:
        """Pending requests where the approver is a candidate and has not yet approved."""
        return PendingApprovals(self.db, parse_uuid(approver_id))

    def list_for_requester(self, requester: Principal) -> List[Dict[str, Any]]:
        """All requests submitted by a principal, newest first."""
        requests = (
            self.db.query(ApprovalRequest)
            .filter(
                ApprovalRequest.requester_kind == requester.kind.value,
                ApprovalRequest.requester_id == requester.id,
            )
            .order_by(ApprovalRequest.created_at.desc())
            .all()
        )
        return [self.request_to_dict(r) for r in requests]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _parse_request_id(self, request_id: Any) -> UUID:
        rid = parse_uuid(request_id)
        if rid is None:
            raise NotFoundError("Request not found.")
        return rid

    def _load_for_update(self, request_id: UUID) -> ApprovalRequest:
        # collections loaded earlier in this session may be stale
        self.db.expire_all()
        request = (
            self.db.query(ApprovalRequest)
            .filter(ApprovalRequest.id == request_id)
            .with_for_update()
            .populate_existing()
            .one_or_none()
        )
        if request is None:
            raise NotFoundError("Request not found.")
        return request

    @staticmethod
    def request_to_dict(request: ApprovalRequest) -> Dict[str, Any]:
        """Convert a request to its public projection. Tokens are never included."""
        return {
            "id": str(request.id),
            "requester": {"kind": request.requester_kind, "id": str(request.requester_id)},
            "grant_kind": request.grant_kind,
            "payload": request.payload or {},
            "status": request.status,
            "threshold": request.threshold,
            "approval_count": len(request.approvals),
            "candidates": [
                {
                    "id": str(c.approver_id),
                    "name": c.approver.name if c.approver else None,
                    "email": c.approver.email if c.approver else None,
                }
                for c in request.candidates
            ],
            "approvals": [
                {
                    "approver_id": str(a.approver_id),
                    "decided_at": a.decided_at.isoformat() if a.decided_at else None,
                    "via": a.via,
                }
                for a in request.approvals
            ],
            "grant_status": request.grant_status,
            "grant_error": request.grant_error,
            "granted_resource_id": str(request.granted_resource_id) if request.granted_resource_id else None,
            "rejection_reason": request.rejection_reason,
            "created_at": request.created_at.isoformat() if request.created_at else None,
            "approved_at": request.approved_at.isoformat() if request.approved_at else None,
            "rejected_at": request.rejected_at.isoformat() if request.rejected_at else None,
        }
