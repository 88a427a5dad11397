from functools import lru_cache
from typing import Any, Dict, Generator, List, Optional, Sequence

from fastapi import BackgroundTasks, Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from meditrap.core.approval import (
    AuditContext,
    OnboardingService,
    RequestLockManager,
    ThresholdApprovalService,
)
from meditrap.core.config import Settings, get_settings
from meditrap.core.directory import DirectoryService
from meditrap.core.errors import AuthenticationError, ForbiddenError
from meditrap.core.identity import Principal, PrincipalKind, find_account, principal_for
from meditrap.core.kv_store import KeyValueStore, create_store
from meditrap.core.security import decode_token
from meditrap.db.session import new_session
from meditrap.services.document_verification import TextExtractor
from meditrap.services.notifications import (
    ApprovalNotifier,
    DeliveryResult,
    DeliveryStatus,
    EmailMessage,
    NotificationService,
)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def get_db() -> Generator:
    """Database session dependency."""
    db = new_session()
    try:
        yield db
    finally:
        db.close()


@lru_cache
def _default_store() -> KeyValueStore:
    return create_store()


def get_kv_store() -> KeyValueStore:
    """Key-value store for the token blacklist and approval locks."""
    return _default_store()


def get_lock_manager(
    store: KeyValueStore = Depends(get_kv_store),
    settings: Settings = Depends(get_settings),
) -> RequestLockManager:
    return RequestLockManager(
        store,
        timeout=settings.approval_lock_timeout,
        ttl=settings.approval_lock_ttl,
    )


def get_mailer(settings: Settings = Depends(get_settings)) -> ApprovalNotifier:
    return NotificationService(settings)


class BackgroundNotifier(ApprovalNotifier):
    """Hands messages to a FastAPI background task so mail never delays a response."""

    def __init__(self, background_tasks: BackgroundTasks, sender: ApprovalNotifier):
        self.background_tasks = background_tasks
        self.sender = sender

    def dispatch(self, messages: Sequence[EmailMessage]) -> List[DeliveryResult]:
        messages = list(messages)
        if messages:
            self.background_tasks.add_task(self.sender.dispatch, messages)
        return [DeliveryResult(m.recipient, DeliveryStatus.QUEUED) for m in messages]


def get_notifier(
    background_tasks: BackgroundTasks,
    sender: ApprovalNotifier = Depends(get_mailer),
) -> ApprovalNotifier:
    return BackgroundNotifier(background_tasks, sender)


def get_token_claims(
    token: Optional[str] = Depends(oauth2_scheme),
    store: KeyValueStore = Depends(get_kv_store),
) -> Dict[str, Any]:
    """Decoded claims of a valid, unrevoked bearer token."""
    if not token:
        raise AuthenticationError("Not authenticated.")
    return decode_token(token, store)


def get_current_principal(
    claims: Dict[str, Any] = Depends(get_token_claims),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> Principal:
    """Resolve the token's principal against the one table its kind names."""
    kind = PrincipalKind(claims["kind"])
    account = find_account(db, kind, claims["sub"])
    if account is None:
        raise AuthenticationError("Token is valid but the account no longer exists.")
    if kind == PrincipalKind.USER and not account.is_active:
        raise ForbiddenError("Inactive account.")
    return principal_for(kind, account, settings)


def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    if not principal.is_admin:
        raise ForbiddenError("Admin access required.")
    return principal


def require_stockist(principal: Principal = Depends(get_current_principal)) -> Principal:
    if principal.kind != PrincipalKind.STOCKIST:
        raise ForbiddenError("Only stockists can approve requests.")
    return principal


def get_approval_service(
    db: Session = Depends(get_db),
    locks: RequestLockManager = Depends(get_lock_manager),
    notifier: ApprovalNotifier = Depends(get_notifier),
    settings: Settings = Depends(get_settings),
) -> ThresholdApprovalService:
    return ThresholdApprovalService(db, locks, notifier=notifier, settings=settings)


def get_onboarding_service(db: Session = Depends(get_db)) -> OnboardingService:
    return OnboardingService(db)


def get_directory_service(db: Session = Depends(get_db)) -> DirectoryService:
    return DirectoryService(db)


def get_audit_context(request: Request) -> AuditContext:
    return AuditContext(
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


def get_text_extractor() -> Optional[TextExtractor]:
    """OCR backend. None until a deployment overrides this dependency."""
    return None
