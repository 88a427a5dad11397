"""Purchasing-card approval database models.

An ApprovalRequest names its candidate approvers, holds one single-use token
per candidate and accumulates ApprovalRecord rows (the approval ledger)
until the threshold is reached.
"""

import uuid
from datetime import datetime
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship

from meditrap.db.base import Base


class ApprovalRequest(Base):
    """
    A pending grant awaiting approval by several distinct stockists.

    Status only ever moves pending -> approved or pending -> rejected, and
    the move is made with a conditional UPDATE so only one caller wins it.
    """
    __tablename__ = "approval_requests"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    # Requesting principal (tagged reference)
    requester_kind = Column(String(20), nullable=False)
    requester_id = Column(Uuid, nullable=False, index=True)

    # What gets materialized once approved
    grant_kind = Column(String(50), nullable=False)
    payload = Column(JSON, nullable=False, default=dict)

    # Workflow state
    status = Column(String(20), nullable=False, default="pending", index=True)
    threshold = Column(Integer, nullable=False, default=3)
    version = Column(Integer, nullable=False, default=1)  # bumped by every conditional update

    # Grant tracking (waiting -> granted | failed)
    grant_status = Column(String(20), nullable=False, default="waiting")
    grant_error = Column(Text, nullable=True)
    granted_resource_id = Column(Uuid, nullable=True)

    # Rejection tracking
    rejected_by = Column(Uuid, nullable=True)
    rejection_reason = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    approved_at = Column(DateTime, nullable=True)
    rejected_at = Column(DateTime, nullable=True)

    # Relationships
    candidates = relationship(
        "ApprovalCandidate",
        back_populates="request",
        cascade="all, delete-orphan",
        order_by="ApprovalCandidate.position",
    )
    approvals = relationship(
        "ApprovalRecord",
        back_populates="request",
        cascade="all, delete-orphan",
        order_by="ApprovalRecord.sequence",
    )
    tokens = relationship("ApprovalToken", back_populates="request", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<ApprovalRequest {self.id} {self.grant_kind} [{self.status}]>"


class ApprovalCandidate(Base):
    """A stockist eligible to approve a request."""
    __tablename__ = "approval_candidates"
    __table_args__ = (UniqueConstraint("request_id", "approver_id", name="uq_candidate_request_approver"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    request_id = Column(Uuid, ForeignKey("approval_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    approver_id = Column(Uuid, ForeignKey("stockists.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)

    request = relationship("ApprovalRequest", back_populates="candidates")
    approver = relationship("Stockist")


class ApprovalRecord(Base):
    """
    One approval event in the ledger.

    Append-only. The unique constraint guarantees at most one entry per
    approver per request even if two writers race past the service checks.
    """
    __tablename__ = "approval_records"
    __table_args__ = (UniqueConstraint("request_id", "approver_id", name="uq_approval_request_approver"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    request_id = Column(Uuid, ForeignKey("approval_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    approver_id = Column(Uuid, ForeignKey("stockists.id"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)  # 1-based position in the ledger
    via = Column(String(20), nullable=False, default="api")  # api | token
    decided_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    request = relationship("ApprovalRequest", back_populates="approvals")

    def __repr__(self) -> str:
        return f"<ApprovalRecord {self.approver_id} via {self.via}>"


class ApprovalToken(Base):
    """Single-use approval link token. Only the SHA-256 hash is stored."""
    __tablename__ = "approval_tokens"
    __table_args__ = (UniqueConstraint("request_id", "approver_id", name="uq_token_request_approver"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    request_id = Column(Uuid, ForeignKey("approval_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    approver_id = Column(Uuid, ForeignKey("stockists.id"), nullable=False)
    token_hash = Column(String(64), nullable=False, unique=True, index=True)
    used = Column(Boolean, nullable=False, default=False)
    used_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    request = relationship("ApprovalRequest", back_populates="tokens")
