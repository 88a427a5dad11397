import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Boolean, Text, Uuid

from meditrap.db.base import Base


class User(Base):
    """Medical-store owner account (also used for admins)."""
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    medical_name = Column(String(100), nullable=False)
    owner_name = Column(String(50), nullable=False)
    address = Column(String(200), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    contact_no = Column(String(32), nullable=False)
    drug_license_no = Column(String(64), unique=True, nullable=False)
    drug_license_image = Column(Text, nullable=True)  # blob-store URL
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default="user")  # user | admin
    is_active = Column(Boolean, default=True)

    # Admin onboarding decision
    status = Column(String(20), nullable=False, default="processing", index=True)
    approved_at = Column(DateTime, nullable=True)
    approved_by = Column(Uuid, nullable=True)
    declined_at = Column(DateTime, nullable=True)

    # Purchasing card capability
    has_purchasing_card = Column(Boolean, nullable=False, default=False)
    purchasing_card_requested = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<User {self.email} [{self.status}]>"
