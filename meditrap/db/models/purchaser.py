import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey, Text, Uuid

from meditrap.db.base import Base


class Purchaser(Base):
    """Purchaser profile, created by self-signup or by an approved purchasing request."""
    __tablename__ = "purchasers"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    full_name = Column(String(255), nullable=False)
    address = Column(String(255), nullable=False, default="")
    contact_no = Column(String(32), nullable=False, default="")
    email = Column(String(255), unique=True, nullable=True, index=True)
    password_hash = Column(String(255), nullable=True)
    aadhar_no = Column(String(16), nullable=True)
    aadhar_image = Column(Text, nullable=False, default="")  # blob-store URL
    photo = Column(Text, nullable=False, default="")  # blob-store URL
    verified = Column(Boolean, nullable=False, default=False)

    created_by = Column(Uuid, nullable=True)
    approval_request_id = Column(
        Uuid, ForeignKey("approval_requests.id", ondelete="SET NULL"), nullable=True, unique=True
    )

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<Purchaser {self.full_name}>"
