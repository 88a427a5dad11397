import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Boolean, Uuid

from meditrap.db.base import Base


class PasswordResetToken(Base):
    """Password reset tokens for users and stockists. Only the hash is stored."""
    __tablename__ = "password_reset_tokens"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    account_kind = Column(String(20), nullable=False)  # user | stockist
    account_id = Column(Uuid, nullable=False, index=True)
    token_hash = Column(String(255), nullable=False, unique=True, index=True)
    is_used = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    expires_at = Column(DateTime, nullable=False, index=True)
    used_at = Column(DateTime, nullable=True)
