"""Initial schema: users, stockists, approval requests, purchasers, audits, reset tokens

Revision ID: 0001
Revises: None
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all tables."""

    # --- users (store owners and admins) ---
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("medical_name", sa.String(100), nullable=False),
        sa.Column("owner_name", sa.String(50), nullable=False),
        sa.Column("address", sa.String(200), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("contact_no", sa.String(32), nullable=False),
        sa.Column("drug_license_no", sa.String(64), nullable=False),
        sa.Column("drug_license_image", sa.Text()),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="user"),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("status", sa.String(20), nullable=False, server_default="processing"),
        sa.Column("approved_at", sa.DateTime()),
        sa.Column("approved_by", sa.Uuid()),
        sa.Column("declined_at", sa.DateTime()),
        sa.Column("has_purchasing_card", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("purchasing_card_requested", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.UniqueConstraint("drug_license_no", name="uq_users_drug_license_no"),
    )
    op.create_index("ix_users_email", "users", ["email"])
    op.create_index("ix_users_status", "users", ["status"])

    # --- stockists ---
    op.create_table(
        "stockists",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("contact_person", sa.String(255)),
        sa.Column("phone", sa.String(32)),
        sa.Column("email", sa.String(255)),
        sa.Column("password_hash", sa.String(255)),
        sa.Column("address", sa.JSON(), nullable=False),
        sa.Column("license_number", sa.String(64)),
        sa.Column("license_expiry", sa.Date()),
        sa.Column("license_image_url", sa.Text()),
        sa.Column("dob", sa.Date()),
        sa.Column("blood_group", sa.String(8)),
        sa.Column("profile_image_url", sa.Text()),
        sa.Column("role_type", sa.String(32)),
        sa.Column("cntx_number", sa.String(64)),
        sa.Column("status", sa.String(20), nullable=False, server_default="processing"),
        sa.Column("approved_at", sa.DateTime()),
        sa.Column("approved_by", sa.Uuid()),
        sa.Column("declined_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_stockists"),
        sa.UniqueConstraint("email", name="uq_stockists_email"),
    )
    op.create_index("ix_stockists_email", "stockists", ["email"])
    op.create_index("ix_stockists_status", "stockists", ["status"])

    # --- approval_requests ---
    op.create_table(
        "approval_requests",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("requester_kind", sa.String(20), nullable=False),
        sa.Column("requester_id", sa.Uuid(), nullable=False),
        sa.Column("grant_kind", sa.String(50), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("threshold", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("grant_status", sa.String(20), nullable=False, server_default="waiting"),
        sa.Column("grant_error", sa.Text()),
        sa.Column("granted_resource_id", sa.Uuid()),
        sa.Column("rejected_by", sa.Uuid()),
        sa.Column("rejection_reason", sa.Text()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("approved_at", sa.DateTime()),
        sa.Column("rejected_at", sa.DateTime()),
        sa.PrimaryKeyConstraint("id", name="pk_approval_requests"),
    )
    op.create_index("ix_approval_requests_requester_id", "approval_requests", ["requester_id"])
    op.create_index("ix_approval_requests_status", "approval_requests", ["status"])
    op.create_index("ix_approval_requests_created_at", "approval_requests", ["created_at"])

    # --- approval_candidates (FK -> approval_requests, stockists) ---
    op.create_table(
        "approval_candidates",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("request_id", sa.Uuid(), nullable=False),
        sa.Column("approver_id", sa.Uuid(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("id", name="pk_approval_candidates"),
        sa.ForeignKeyConstraint(["request_id"], ["approval_requests.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["approver_id"], ["stockists.id"]),
        sa.UniqueConstraint("request_id", "approver_id", name="uq_candidate_request_approver"),
    )
    op.create_index("ix_approval_candidates_request_id", "approval_candidates", ["request_id"])
    op.create_index("ix_approval_candidates_approver_id", "approval_candidates", ["approver_id"])

    # --- approval_records (the approval ledger) ---
    op.create_table(
        "approval_records",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("request_id", sa.Uuid(), nullable=False),
        sa.Column("approver_id", sa.Uuid(), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("via", sa.String(20), nullable=False, server_default="api"),
        sa.Column("decided_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_approval_records"),
        sa.ForeignKeyConstraint(["request_id"], ["approval_requests.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["approver_id"], ["stockists.id"]),
        sa.UniqueConstraint("request_id", "approver_id", name="uq_approval_request_approver"),
    )
    op.create_index("ix_approval_records_request_id", "approval_records", ["request_id"])
    op.create_index("ix_approval_records_approver_id", "approval_records", ["approver_id"])

    # --- approval_tokens (hashed single-use links) ---
    op.create_table(
        "approval_tokens",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("request_id", sa.Uuid(), nullable=False),
        sa.Column("approver_id", sa.Uuid(), nullable=False),
        sa.Column("token_hash", sa.String(64), nullable=False),
        sa.Column("used", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("used_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_approval_tokens"),
        sa.ForeignKeyConstraint(["request_id"], ["approval_requests.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["approver_id"], ["stockists.id"]),
        sa.UniqueConstraint("request_id", "approver_id", name="uq_token_request_approver"),
    )
    op.create_index("ix_approval_tokens_token_hash", "approval_tokens", ["token_hash"], unique=True)
    op.create_index("ix_approval_tokens_request_id", "approval_tokens", ["request_id"])

    # --- purchasers (FK -> approval_requests) ---
    op.create_table(
        "purchasers",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("address", sa.String(255), nullable=False, server_default=""),
        sa.Column("contact_no", sa.String(32), nullable=False, server_default=""),
        sa.Column("email", sa.String(255)),
        sa.Column("password_hash", sa.String(255)),
        sa.Column("aadhar_no", sa.String(16)),
        sa.Column("aadhar_image", sa.Text(), nullable=False, server_default=""),
        sa.Column("photo", sa.Text(), nullable=False, server_default=""),
        sa.Column("verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_by", sa.Uuid()),
        sa.Column("approval_request_id", sa.Uuid()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_purchasers"),
        sa.ForeignKeyConstraint(["approval_request_id"], ["approval_requests.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("email", name="uq_purchasers_email"),
        sa.UniqueConstraint("approval_request_id", name="uq_purchasers_approval_request_id"),
    )
    op.create_index("ix_purchasers_email", "purchasers", ["email"])

    # --- admin_audits (immutable, see AdminAudit) ---
    op.create_table(
        "admin_audits",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("actor_kind", sa.String(20)),
        sa.Column("actor_id", sa.Uuid()),
        sa.Column("actor_email", sa.String(255)),
        sa.Column("ip_address", sa.String(45)),
        sa.Column("user_agent", sa.Text()),
        sa.Column("action", sa.String(20), nullable=False),
        sa.Column("target_kind", sa.String(20), nullable=False),
        sa.Column("target_id", sa.Uuid(), nullable=False),
        sa.Column("note", sa.String(500)),
        sa.Column("details", sa.JSON()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_admin_audits"),
    )
    op.create_index("ix_admin_audits_actor_id", "admin_audits", ["actor_id"])
    op.create_index("ix_admin_audits_action", "admin_audits", ["action"])
    op.create_index("ix_admin_audits_target_id", "admin_audits", ["target_id"])
    op.create_index("ix_admin_audits_created_at", "admin_audits", ["created_at"])

    # --- password_reset_tokens ---
    op.create_table(
        "password_reset_tokens",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("account_kind", sa.String(20), nullable=False),
        sa.Column("account_id", sa.Uuid(), nullable=False),
        sa.Column("token_hash", sa.String(255), nullable=False),
        sa.Column("is_used", sa.Boolean(), server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("used_at", sa.DateTime()),
        sa.PrimaryKeyConstraint("id", name="pk_password_reset_tokens"),
    )
    op.create_index("ix_password_reset_tokens_token_hash", "password_reset_tokens", ["token_hash"], unique=True)
    op.create_index("ix_password_reset_tokens_account_id", "password_reset_tokens", ["account_id"])
    op.create_index("ix_password_reset_tokens_expires_at", "password_reset_tokens", ["expires_at"])


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    op.drop_table("password_reset_tokens")
    op.drop_table("admin_audits")
    op.drop_table("purchasers")
    op.drop_table("approval_tokens")
    op.drop_table("approval_records")
    op.drop_table("approval_candidates")
    op.drop_table("approval_requests")
    op.drop_table("stockists")
    op.drop_table("users")
