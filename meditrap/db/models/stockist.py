import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Date, JSON, Text, Uuid

from meditrap.db.base import Base


class Stockist(Base):
    """
    Distributor account.

    Stockists must be approved by an admin before they can log in, and act
    as the approvers of purchasing-card requests.
    """
    __tablename__ = "stockists"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    contact_person = Column(String(255), nullable=True)
    phone = Column(String(32), nullable=True)
    email = Column(String(255), unique=True, nullable=True, index=True)
    password_hash = Column(String(255), nullable=True)

    # {"street": ..., "city": ..., "state": ..., "pincode": ...}
    address = Column(JSON, nullable=False, default=dict)

    # Licensing
    license_number = Column(String(64), nullable=True)
    license_expiry = Column(Date, nullable=True)
    license_image_url = Column(Text, nullable=True)

    # Profile
    dob = Column(Date, nullable=True)
    blood_group = Column(String(8), nullable=True)
    profile_image_url = Column(Text, nullable=True)
    role_type = Column(String(32), nullable=True)  # Proprietor | Pharmacist
    cntx_number = Column(String(64), nullable=True)

    # Admin onboarding decision
    status = Column(String(20), nullable=False, default="processing", index=True)
    approved_at = Column(DateTime, nullable=True)
    approved_by = Column(Uuid, nullable=True)
    declined_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<Stockist {self.name} [{self.status}]>"
