import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from meditrap.api.deps import (
    get_current_principal,
    get_db,
    get_directory_service,
    get_kv_store,
    get_notifier,
    get_token_claims,
)
from meditrap.api.schemas.auth import (
    ForgotPasswordRequest,
    LoginRequest,
    ProfileUpdate,
    PurchaserCreate,
    ResetPasswordRequest,
    StockistCreate,
    Token,
    UserCreate,
)
from meditrap.core import password_reset
from meditrap.core.approval.onboarding import entity_to_dict
from meditrap.core.approval.states import OnboardingStatus
from meditrap.core.config import Settings, get_settings
from meditrap.core.directory import DirectoryService
from meditrap.core.errors import AuthenticationError, ConflictError, ForbiddenError, InvalidRequestError
from meditrap.core.identity import (
    Principal,
    PrincipalKind,
    find_account,
    find_account_by_email,
    principal_for,
)
from meditrap.core.kv_store import KeyValueStore
from meditrap.core.security import create_access_token, get_password_hash, revoke_token, verify_password
from meditrap.db.models import Purchaser, Stockist, User

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)

LOGIN_ROLES = {
    "stockist": PrincipalKind.STOCKIST,
    "medicalOwner": PrincipalKind.USER,
    "user": PrincipalKind.USER,
    "purchaser": PrincipalKind.PURCHASER,
}


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(user_in: UserCreate, db: Session = Depends(get_db)):
    """Register a medical-store owner. The account waits for admin approval."""
    email = user_in.email.lower()
    if find_account_by_email(db, PrincipalKind.USER, email):
        raise ConflictError("Email already registered.")
    if db.query(User).filter(User.drug_license_no == user_in.drug_license_no).first():
        raise ConflictError("Drug license number already registered.")

    user = User(
        medical_name=user_in.medical_name,
        owner_name=user_in.owner_name,
        address=user_in.address,
        email=email,
        contact_no=user_in.contact_no,
        drug_license_no=user_in.drug_license_no,
        drug_license_image=user_in.drug_license_image,
        password_hash=get_password_hash(user_in.password),
        status=OnboardingStatus.PROCESSING.value,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"User {user.id} registered")

    return {
        "success": True,
        "message": "Registration submitted. Your account is under review.",
        "user": entity_to_dict(PrincipalKind.USER, user),
    }


@router.post("/stockist-signup", status_code=status.HTTP_201_CREATED)
def stockist_signup(stockist_in: StockistCreate, db: Session = Depends(get_db)):
    """Stockist self-signup. Login is refused until an admin approves."""
    if not stockist_in.password:
        raise InvalidRequestError("Password is required.")
    email = stockist_in.email.lower()
    if find_account_by_email(db, PrincipalKind.STOCKIST, email):
        raise ConflictError("Email already registered.")

    data = stockist_in.model_dump(exclude={"password", "email"})
    stockist = Stockist(
        **data,
        email=email,
        password_hash=get_password_hash(stockist_in.password),
        status=OnboardingStatus.PROCESSING.value,
    )
    db.add(stockist)
    db.commit()
    db.refresh(stockist)
    logger.info(f"Stockist {stockist.id} signed up")

    return {
        "success": True,
        "message": "Signup submitted. Your account is under review.",
        "stockist": entity_to_dict(PrincipalKind.STOCKIST, stockist),
    }


@router.post("/purchaser-signup", status_code=status.HTTP_201_CREATED)
def purchaser_signup(purchaser_in: PurchaserCreate, db: Session = Depends(get_db)):
    """Purchaser self-signup with references to already-uploaded documents."""
    email = purchaser_in.email.lower()
    if find_account_by_email(db, PrincipalKind.PURCHASER, email):
        raise ConflictError("Email already registered.")

    purchaser = Purchaser(
        full_name=purchaser_in.full_name,
        email=email,
        password_hash=get_password_hash(purchaser_in.password),
        address=purchaser_in.address,
        contact_no=purchaser_in.contact_no,
        aadhar_no=purchaser_in.aadhar_no,
        aadhar_image=purchaser_in.aadhar_image,
        photo=purchaser_in.photo,
    )
    db.add(purchaser)
    db.commit()
    db.refresh(purchaser)
    logger.info(f"Purchaser {purchaser.id} signed up")

    return {
        "success": True,
        "message": "Purchaser registered successfully.",
        "purchaser": entity_to_dict(PrincipalKind.PURCHASER, purchaser),
    }


@router.post("/login", response_model=Token)
def login(
    credentials: LoginRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Login as the account kind named by ``role`` and get an access token."""
    kind = LOGIN_ROLES.get(credentials.role)
    if kind is None:
        raise InvalidRequestError("Invalid role.")

    account = find_account_by_email(db, kind, credentials.email)
    if account is None or not verify_password(credentials.password, account.password_hash):
        raise AuthenticationError("Invalid credentials.")

    if kind == PrincipalKind.STOCKIST and account.status != OnboardingStatus.APPROVED.value:
        if account.status == OnboardingStatus.DECLINED.value:
            raise ForbiddenError("Your registration was declined by admin.")
        raise ForbiddenError("Your account is under review. Please wait for admin approval.")
    if kind == PrincipalKind.USER and not account.is_active:
        raise ForbiddenError("Inactive account.")

    principal = principal_for(kind, account, settings)
    logger.info(f"Login for {principal.ref}")
    return Token(
        access_token=create_access_token(principal),
        kind=kind.value,
        account=entity_to_dict(kind, account),
    )


@router.get("/me")
def get_me(
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """Get the current account."""
    account = find_account(db, principal.kind, principal.id)
    return {
        "success": True,
        "kind": principal.kind.value,
        "is_admin": principal.is_admin,
        "account": entity_to_dict(principal.kind, account),
    }


@router.put("/profile")
def update_profile(
    changes: ProfileUpdate,
    principal: Principal = Depends(get_current_principal),
    service: DirectoryService = Depends(get_directory_service),
):
    """Update the calling store owner's profile."""
    user = service.update_profile(principal, changes.model_dump(exclude_none=True))
    return {"success": True, "message": "Profile updated successfully", "user": user}


@router.post("/logout")
def logout(
    claims: Dict[str, Any] = Depends(get_token_claims),
    store: KeyValueStore = Depends(get_kv_store),
):
    """Revoke the presented token until it expires."""
    revoke_token(claims, store)
    logger.info(f"Token {claims['jti']} revoked for {claims['kind']}:{claims['sub']}")
    return {"success": True, "message": "Logout successful"}


@router.post("/forgot-password")
def forgot_password(
    body: ForgotPasswordRequest,
    db: Session = Depends(get_db),
    notifier=Depends(get_notifier),
):
    message = password_reset.forgot_password(db, body.email, notifier=notifier)
    return {"success": True, "message": message}


@router.post("/reset-password")
def reset_password(body: ResetPasswordRequest, db: Session = Depends(get_db)):
    password_reset.reset_password(body.token, body.email, body.new_password, db)
    return {"success": True, "message": "Password reset successful"}
