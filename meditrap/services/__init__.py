"""Services for MediTrap: outbound mail and document verification."""

from .notifications import (
    ApprovalNotifier,
    DeliveryResult,
    DeliveryStatus,
    EmailMessage,
    NotificationService,
    build_approval_messages,
    build_password_reset_message,
)
from .document_verification import DocumentVerifier, TextExtractor

__all__ = [
    "ApprovalNotifier",
    "DeliveryResult",
    "DeliveryStatus",
    "EmailMessage",
    "NotificationService",
    "build_approval_messages",
    "build_password_reset_message",
    "DocumentVerifier",
    "TextExtractor",
]
