from datetime import datetime, timedelta
from typing import Any, Dict, Optional
import hashlib
import secrets
import uuid

from jose import JWTError, jwt
from passlib.context import CryptContext

from meditrap.core.config import get_settings
from meditrap.core.errors import AuthenticationError
from meditrap.core.identity import Principal, PrincipalKind
from meditrap.core.kv_store import KeyValueStore

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

BLACKLIST_PREFIX = "blacklist:jti:"


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Verify a password against its hash."""
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Generate password hash."""
    return pwd_context.hash(password)


def generate_secure_token(nbytes: int = 24) -> str:
    """Unpredictable, URL-safe token of fixed length (32 chars for 24 bytes)."""
    return secrets.token_urlsafe(nbytes)


def hash_token(token: str) -> str:
    """SHA-256 hex digest used to store tokens at rest."""
    return hashlib.sha256(token.encode()).hexdigest()


def create_access_token(
    principal: Principal,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a JWT access token for a principal."""
    settings = get_settings()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=settings.access_token_expire_minutes)

    to_encode = {
        "sub": str(principal.id),
        "kind": principal.kind.value,
        "email": principal.email,
        "exp": expire,
        "jti": str(uuid.uuid4()),
        "type": "access",
    }
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_token(token: str, store: KeyValueStore) -> Dict[str, Any]:
    """Decode and validate a JWT. Returns the claims if valid and not revoked.

    Raises:
        AuthenticationError: If the token is malformed, expired, missing
            required claims or blacklisted by logout.
    """
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError as e:
        raise AuthenticationError("Invalid token.") from e

    if payload.get("type") != "access" or not payload.get("sub") or not payload.get("jti"):
        raise AuthenticationError("Invalid token.")
    try:
        PrincipalKind(payload.get("kind"))
    except ValueError as e:
        raise AuthenticationError("Invalid token.") from e

    if store.exists(BLACKLIST_PREFIX + payload["jti"]):
        raise AuthenticationError("Token has been revoked.")

    return payload


def revoke_token(claims: Dict[str, Any], store: KeyValueStore) -> None:
    """Blacklist a decoded token until it would have expired anyway."""
    exp = int(claims.get("exp") or 0)
    ttl = exp - int(datetime.utcnow().timestamp()) if exp else 0
    if ttl <= 0:
        ttl = get_settings().access_token_expire_minutes * 60
    store.set(BLACKLIST_PREFIX + claims["jti"], "1", ttl=ttl)
