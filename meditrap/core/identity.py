"""Principal kinds and identity lookup.

A bearer token names exactly one principal kind, so an authenticated caller
is resolved once against one table and carried through the call chain as a
``Principal``. Nothing downstream probes users, stockists and purchasers in
turn.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union
from uuid import UUID

from sqlalchemy.orm import Session

from meditrap.core.config import Settings, get_settings
from meditrap.db.models import Purchaser, Stockist, User


class PrincipalKind(str, Enum):
    """Kinds of account that can authenticate."""
    USER = "user"
    STOCKIST = "stockist"
    PURCHASER = "purchaser"


ACCOUNT_MODELS = {
    PrincipalKind.USER: User,
    PrincipalKind.STOCKIST: Stockist,
    PrincipalKind.PURCHASER: Purchaser,
}

Account = Union[User, Stockist, Purchaser]


@dataclass(frozen=True)
class Principal:
    """An authenticated caller."""
    kind: PrincipalKind
    id: UUID
    email: Optional[str] = None
    is_admin: bool = False

    @property
    def ref(self) -> str:
        return f"{self.kind.value}:{self.id}"


def parse_uuid(value) -> Optional[UUID]:
    """Coerce a UUID or string to UUID; None if malformed."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        return None


def is_admin_account(kind: PrincipalKind, account: Account, settings: Optional[Settings] = None) -> bool:
    """Only medical-store owner accounts can be admins.

    A user is an admin with the admin role, or once approved while their
    email is listed in ``extra_admin_emails``. Stockists and purchasers never
    are, whatever their email.
    """
    if kind != PrincipalKind.USER or not account.is_active:
        return False
    if account.role == "admin":
        return True
    if account.status != "approved":
        return False
    settings = settings or get_settings()
    return (account.email or "").lower() in settings.extra_admin_emails_list


def principal_for(kind: PrincipalKind, account: Account, settings: Optional[Settings] = None) -> Principal:
    return Principal(
        kind=kind,
        id=account.id,
        email=account.email,
        is_admin=is_admin_account(kind, account, settings),
    )


def find_account(db: Session, kind: PrincipalKind, account_id) -> Optional[Account]:
    """Load one account of the given kind, or None."""
    parsed = parse_uuid(account_id)
    if parsed is None:
        return None
    model = ACCOUNT_MODELS[PrincipalKind(kind)]
    return db.get(model, parsed)


def find_account_by_email(db: Session, kind: PrincipalKind, email: str) -> Optional[Account]:
    model = ACCOUNT_MODELS[PrincipalKind(kind)]
    return db.query(model).filter(model.email == email.strip().lower()).first()


def find_requester(db: Session, principal: Principal) -> Optional[Account]:
    return find_account(db, principal.kind, principal.id)


def display_name(kind: PrincipalKind, account: Account) -> str:
    """Human-readable name used in outgoing mail."""
    if kind == PrincipalKind.USER:
        return account.medical_name or account.email
    if kind == PrincipalKind.STOCKIST:
        return account.name or account.contact_person or "Stockist"
    return account.full_name or account.email or "Unknown"
