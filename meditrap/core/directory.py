"""Staff, purchaser and profile management.

Plain record keeping around the accounts: stockists keep a roster of their
staff, requesters look after the purchaser profiles their approved requests
created, and store owners edit their own profile.
"""

import logging
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Query, Session

from meditrap.core.approval.onboarding import purchaser_to_dict, user_to_dict
from meditrap.core.errors import ForbiddenError, InvalidRequestError, NotFoundError
from meditrap.core.identity import Principal, PrincipalKind, find_account, parse_uuid
from meditrap.db.models import Purchaser, Staff, User

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("medical_name", "owner_name", "address", "contact_no", "drug_license_image")


def staff_to_dict(staff: Staff) -> Dict[str, Any]:
    """Public projection of a staff member. Aadhaar card and address stay private."""
    return {
        "id": str(staff.id),
        "full_name": staff.full_name,
        "contact": staff.contact,
        "email": staff.email,
        "image": staff.image,
        "stockist_id": str(staff.stockist_id),
        "created_at": staff.created_at.isoformat() if staff.created_at else None,
    }


def _paginate(query: Query, order_by, page: int, per_page: int, project: Callable) -> Dict[str, Any]:
    total = query.count()
    items = query.order_by(order_by).offset((page - 1) * per_page).limit(per_page).all()
    return {
        "items": [project(item) for item in items],
        "total": total,
        "page": page,
        "per_page": per_page,
        "pages": (total + per_page - 1) // per_page,
    }


class DirectoryService:
    """Record management for staff, purchasers and store-owner profiles."""

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Staff
    # ------------------------------------------------------------------

    def create_staff(self, stockist: Principal, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Add a staff member to the calling stockist's roster.

        Args:
            stockist: Owning stockist
            data: Staff fields; ``image`` and ``aadhar_card`` are already-uploaded URLs

        Raises:
            ForbiddenError: Caller is not a stockist
            InvalidRequestError: Image or Aadhaar card missing
        """
        if stockist.kind != PrincipalKind.STOCKIST:
            raise ForbiddenError("Only stockists can create staff.")
        if not data.get("image") or not data.get("aadhar_card"):
            raise InvalidRequestError("Image and Aadhar card are required.")

        email = (data.get("email") or "").strip().lower() or None
        staff = Staff(
            full_name=data["full_name"],
            contact=data["contact"],
            email=email,
            address=data.get("address"),
            image=data["image"],
            aadhar_card=data["aadhar_card"],
            stockist_id=stockist.id,
        )
        self.db.add(staff)
        self.db.commit()
        self.db.refresh(staff)
        logger.info(f"Staff {staff.id} created by {stockist.ref}")
        return staff_to_dict(staff)

    def list_staff(
        self,
        viewer: Principal,
        stockist: Optional[str] = None,
        page: int = 1,
        per_page: int = 20,
    ) -> Dict[str, Any]:
        """
        List staff, newest first.

        Args:
            viewer: Authenticated caller
            stockist: Optional owner filter, a stockist id or ``me``

        Raises:
            InvalidRequestError: ``me`` from a non-stockist, or a malformed id
        """
        query = self.db.query(Staff)
        if stockist:
            if stockist == "me":
                if viewer.kind != PrincipalKind.STOCKIST:
                    raise InvalidRequestError("Only stockists have their own staff.")
                owner_id = viewer.id
            else:
                owner_id = parse_uuid(stockist)
                if owner_id is None:
                    raise InvalidRequestError(f"Invalid stockist id: {stockist}")
            query = query.filter(Staff.stockist_id == owner_id)
        return _paginate(query, Staff.created_at.desc(), page, per_page, staff_to_dict)

    def get_staff(self, staff_id: Any) -> Dict[str, Any]:
        return staff_to_dict(self._get_staff(staff_id))

    def delete_staff(self, staff_id: Any, admin: Principal) -> None:
        """
        Remove a staff member.

        Raises:
            ForbiddenError: Caller is not an admin
            NotFoundError: Staff member does not exist
        """
        if not admin.is_admin:
            raise ForbiddenError("Admin access required.")
        staff = self._get_staff(staff_id)
        self.db.delete(staff)
        self.db.commit()
        logger.info(f"Staff {staff_id} deleted by {admin.ref}")

    def _get_staff(self, staff_id: Any) -> Staff:
        parsed = parse_uuid(staff_id)
        staff = self.db.get(Staff, parsed) if parsed else None
        if staff is None:
            raise NotFoundError("Staff not found.")
        return staff

    # ------------------------------------------------------------------
    # Purchasers
    # ------------------------------------------------------------------

    def list_purchasers(self, viewer: Principal, page: int = 1, per_page: int = 20) -> Dict[str, Any]:
        """Admins see every purchaser; anyone else sees the ones they created."""
        query = self.db.query(Purchaser)
        if not viewer.is_admin:
            query = query.filter(Purchaser.created_by == viewer.id)
        return _paginate(query, Purchaser.created_at.desc(), page, per_page, purchaser_to_dict)

    def get_purchaser(self, purchaser_id: Any, viewer: Principal) -> Dict[str, Any]:
        """
        Raises:
            NotFoundError: Purchaser does not exist
            ForbiddenError: Caller is neither an admin, the creator, nor the purchaser
        """
        purchaser = self._get_purchaser(purchaser_id)
        is_self = viewer.kind == PrincipalKind.PURCHASER and viewer.id == purchaser.id
        if not (viewer.is_admin or is_self or purchaser.created_by == viewer.id):
            raise ForbiddenError("You cannot view this purchaser.")
        return purchaser_to_dict(purchaser)

    def delete_purchaser(self, purchaser_id: Any, viewer: Principal) -> None:
        """
        Raises:
            NotFoundError: Purchaser does not exist
            ForbiddenError: Caller is neither an admin nor the creator
        """
        purchaser = self._get_purchaser(purchaser_id)
        if not (viewer.is_admin or purchaser.created_by == viewer.id):
            raise ForbiddenError("Not authorized to delete this purchaser.")
        self.db.delete(purchaser)
        self.db.commit()
        logger.info(f"Purchaser {purchaser_id} deleted by {viewer.ref}")

    def _get_purchaser(self, purchaser_id: Any) -> Purchaser:
        purchaser = find_account(self.db, PrincipalKind.PURCHASER, purchaser_id)
        if purchaser is None:
            raise NotFoundError("Purchaser not found.")
        return purchaser

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    def update_profile(self, principal: Principal, changes: Dict[str, Any]) -> Dict[str, Any]:
        """
        Update a store owner's own profile. Empty values leave a field unchanged.

        Raises:
            ForbiddenError: Caller is not a store owner
        """
        if principal.kind != PrincipalKind.USER:
            raise ForbiddenError("Only medical-store owners have an editable profile.")
        user: Optional[User] = find_account(self.db, PrincipalKind.USER, principal.id)
        if user is None:
            raise NotFoundError("User not found.")

        updated = []
        for field in PROFILE_FIELDS:
            value = changes.get(field)
            if value:
                setattr(user, field, value)
                updated.append(field)

        self.db.commit()
        self.db.refresh(user)
        logger.info(f"Profile of {principal.ref} updated: {', '.join(updated) or 'no changes'}")
        return user_to_dict(user)
