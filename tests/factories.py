"""Factory functions for creating test database records.

Each factory creates a model instance, adds it to the session, and flushes
so that database-generated fields (id, created_at, etc.) are populated.
All fields have sensible defaults but can be overridden via keyword arguments.

Usage::

    from tests.factories import create_stockist, create_user

    def test_something(db_session):
        owner = create_user(db_session, medical_name="Acme Pharmacy")
        stockist = create_stockist(db_session, status="approved")
        assert owner.status == "processing"
"""

from datetime import timedelta
from functools import lru_cache
from typing import Optional

from sqlalchemy.orm import Session

from meditrap.core.identity import Principal, PrincipalKind, principal_for
from meditrap.core.security import create_access_token, get_password_hash
from meditrap.db.models import Purchaser, Staff, Stockist, User


_counter = 0

TEST_PASSWORD = "testpass123"


@lru_cache
def _default_password_hash() -> str:
    """bcrypt is slow, so the default password is hashed once per run."""
    return get_password_hash(TEST_PASSWORD)


def _password_hash(password: Optional[str]) -> str:
    if password is None or password == TEST_PASSWORD:
        return _default_password_hash()
    return get_password_hash(password)


def _next_id() -> int:
    """Return a monotonically increasing integer for unique default values."""
    global _counter
    _counter += 1
    return _counter


# ---------------------------------------------------------------------------
# User (medical-store owner)
# ---------------------------------------------------------------------------


def create_user(
    session: Session,
    *,
    email: Optional[str] = None,
    medical_name: Optional[str] = None,
    password: Optional[str] = None,
    role: str = "user",
    status: str = "processing",
    is_active: bool = True,
    has_purchasing_card: bool = False,
) -> User:
    n = _next_id()
    user = User(
        medical_name=medical_name or f"Test Pharmacy {n}",
        owner_name=f"Owner {n}",
        address=f"{n} Market Road",
        email=email or f"owner-{n}@example.com",
        contact_no=f"98{n:08d}",
        drug_license_no=f"DL-{n:06d}",
        password_hash=_password_hash(password),
        role=role,
        status=status,
        is_active=is_active,
        has_purchasing_card=has_purchasing_card,
    )
    session.add(user)
    session.flush()
    return user


def create_admin(session: Session, **kwargs) -> User:
    kwargs.setdefault("status", "approved")
    return create_user(session, role="admin", **kwargs)


# ---------------------------------------------------------------------------
# Stockist
# ---------------------------------------------------------------------------


def create_stockist(
    session: Session,
    *,
    email: Optional[str] = None,
    name: Optional[str] = None,
    password: Optional[str] = None,
    status: str = "approved",
    with_email: bool = True,
) -> Stockist:
    n = _next_id()
    stockist = Stockist(
        name=name or f"Test Stockist {n}",
        contact_person=f"Contact {n}",
        phone=f"97{n:08d}",
        email=(email or f"stockist-{n}@example.com") if with_email else None,
        password_hash=_password_hash(password),
        address={"city": "Pune", "pincode": "411001"},
        license_number=f"LIC-{n:06d}",
        status=status,
    )
    session.add(stockist)
    session.flush()
    return stockist


# ---------------------------------------------------------------------------
# Purchaser
# ---------------------------------------------------------------------------


def create_purchaser(
    session: Session,
    *,
    email: Optional[str] = None,
    full_name: Optional[str] = None,
    password: Optional[str] = None,
    created_by=None,
) -> Purchaser:
    n = _next_id()
    purchaser = Purchaser(
        full_name=full_name or f"Purchaser {n}",
        email=email or f"purchaser-{n}@example.com",
        password_hash=_password_hash(password),
        aadhar_image=f"https://blobs.example.com/aadhar-{n}.png",
        photo=f"https://blobs.example.com/photo-{n}.png",
        created_by=created_by,
    )
    session.add(purchaser)
    session.flush()
    return purchaser


# ---------------------------------------------------------------------------
# Staff
# ---------------------------------------------------------------------------


def create_staff(
    session: Session,
    stockist: Stockist,
    *,
    full_name: Optional[str] = None,
) -> Staff:
    n = _next_id()
    staff = Staff(
        full_name=full_name or f"Staff {n}",
        contact=f"96{n:08d}",
        email=f"staff-{n}@example.com",
        address=f"{n} Godown Lane",
        image=f"https://blobs.example.com/staff-{n}.png",
        aadhar_card=f"https://blobs.example.com/staff-aadhar-{n}.png",
        stockist_id=stockist.id,
    )
    session.add(staff)
    session.flush()
    return staff


# ---------------------------------------------------------------------------
# Principals and tokens
# ---------------------------------------------------------------------------


KIND_BY_MODEL = {
    User: PrincipalKind.USER,
    Stockist: PrincipalKind.STOCKIST,
    Purchaser: PrincipalKind.PURCHASER,
}


def principal_of(account) -> Principal:
    return principal_for(KIND_BY_MODEL[type(account)], account)


def auth_headers(account, expires_delta: Optional[timedelta] = None) -> dict:
    """Bearer header for an account, as returned by login."""
    token = create_access_token(principal_of(account), expires_delta=expires_delta)
    return {"Authorization": f"Bearer {token}"}
