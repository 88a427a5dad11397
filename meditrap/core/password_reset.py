"""Password reset functionality."""

import hmac
import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from meditrap.core.config import get_settings
from meditrap.core.errors import InvalidRequestError, InvalidTokenError
from meditrap.core.identity import Account, PrincipalKind, display_name, find_account_by_email
from meditrap.core.security import get_password_hash, hash_token
from meditrap.db.models import PasswordResetToken
from meditrap.services.notifications import build_password_reset_message

logger = logging.getLogger(__name__)

RESET_ACCOUNT_KINDS = (PrincipalKind.USER, PrincipalKind.STOCKIST)

FORGOT_PASSWORD_MESSAGE = "If an account exists, a reset email has been sent."


def generate_reset_token() -> tuple[str, str]:
    """Generate a password reset token.

    Returns:
        (token, token_hash) tuple
        - token: The actual token to send to the account owner
        - token_hash: Hash to store in database
    """
    token = secrets.token_urlsafe(32)
    return token, hash_token(token)


def find_reset_account(db: Session, email: str) -> Optional[Tuple[PrincipalKind, Account]]:
    """Look the email up among users first, then stockists."""
    if not email:
        return None
    for kind in RESET_ACCOUNT_KINDS:
        account = find_account_by_email(db, kind, email)
        if account is not None:
            return kind, account
    return None


def create_reset_token(
    kind: PrincipalKind,
    account_id,
    db: Session,
    expires_in_minutes: Optional[int] = None,
) -> tuple[PasswordResetToken, str]:
    """Create a password reset token for an account.

    Returns:
        (token_model, plain_token) tuple
    """
    if expires_in_minutes is None:
        expires_in_minutes = get_settings().password_reset_expire_minutes

    # Invalidate any existing unused tokens for this account
    existing_tokens = db.query(PasswordResetToken).filter(
        PasswordResetToken.account_kind == kind.value,
        PasswordResetToken.account_id == account_id,
        PasswordResetToken.is_used == False,
    ).all()

    for token in existing_tokens:
        token.is_used = True

    plain_token, token_hash = generate_reset_token()
    reset_token = PasswordResetToken(
        account_kind=kind.value,
        account_id=account_id,
        token_hash=token_hash,
        expires_at=datetime.utcnow() + timedelta(minutes=expires_in_minutes),
    )

    db.add(reset_token)
    db.commit()
    db.refresh(reset_token)

    return reset_token, plain_token


def forgot_password(db: Session, email: str, notifier=None) -> str:
    """Start a reset for whichever account owns the email.

    The answer is the same whether or not the account exists.

    Raises:
        InvalidRequestError: If no email was given
    """
    if not email or not email.strip():
        raise InvalidRequestError("Email is required.")
    email = email.strip().lower()

    found = find_reset_account(db, email)
    if found is None:
        logger.info("Password reset requested for unknown email")
        return FORGOT_PASSWORD_MESSAGE

    kind, account = found
    _, plain_token = create_reset_token(kind, account.id, db)
    logger.info(f"Password reset token issued for {kind.value} {account.id}")

    if notifier is not None:
        message = build_password_reset_message(email, display_name(kind, account), plain_token)
        try:
            notifier.dispatch([message])
        except Exception:
            logger.exception(f"Failed to dispatch password reset email for {kind.value} {account.id}")
    return FORGOT_PASSWORD_MESSAGE


def verify_reset_token(token: str, email: str, db: Session) -> Tuple[PrincipalKind, Account, PasswordResetToken]:
    """Verify a reset token against the account that owns the email.

    Returns:
        (kind, account, token_model) if valid

    Raises:
        InvalidTokenError: Unknown email, wrong token or expired token
    """
    found = find_reset_account(db, (email or "").strip().lower())
    if found is None or not token:
        raise InvalidTokenError("Invalid token or email.")
    kind, account = found

    reset_token = db.query(PasswordResetToken).filter(
        PasswordResetToken.account_kind == kind.value,
        PasswordResetToken.account_id == account.id,
        PasswordResetToken.is_used == False,
    ).order_by(PasswordResetToken.created_at.desc()).first()

    if reset_token is None:
        raise InvalidTokenError("Invalid token or email.")
    if reset_token.expires_at < datetime.utcnow():
        raise InvalidTokenError("Token expired.")
    if not hmac.compare_digest(hash_token(token), reset_token.token_hash):
        raise InvalidTokenError("Invalid token or email.")

    return kind, account, reset_token


def reset_password(token: str, email: str, new_password: str, db: Session) -> None:
    """Use a password reset token to change an account's password.

    Raises:
        InvalidRequestError: Missing fields
        InvalidTokenError: Token does not verify
    """
    if not token or not email or not new_password:
        raise InvalidRequestError("token, email and new_password are required.")

    kind, account, reset_token = verify_reset_token(token, email, db)
    account.password_hash = get_password_hash(new_password)

    reset_token.is_used = True
    reset_token.used_at = datetime.utcnow()

    db.commit()
    logger.info(f"Password reset completed for {kind.value} {account.id}")


def cleanup_expired_tokens(db: Session) -> int:
    """Delete expired password reset tokens.

    Returns:
        Number of tokens deleted
    """
    count = db.query(PasswordResetToken).filter(
        PasswordResetToken.expires_at < datetime.utcnow()
    ).delete()

    db.commit()
    return count
