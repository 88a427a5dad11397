import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, ForeignKey, Text, Uuid

from meditrap.db.base import Base


class Staff(Base):
    """Staff member working for a stockist. Created by the owning stockist."""
    __tablename__ = "staff"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    full_name = Column(String(255), nullable=False)
    contact = Column(String(32), nullable=False)
    email = Column(String(255), nullable=True)
    address = Column(String(255), nullable=True)
    image = Column(Text, nullable=False)  # blob-store URL
    aadhar_card = Column(Text, nullable=False)  # blob-store URL

    stockist_id = Column(
        Uuid, ForeignKey("stockists.id", ondelete="CASCADE"), nullable=False, index=True
    )

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<Staff {self.full_name}>"
