"""Stockist staff rosters."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from meditrap.api.deps import get_current_principal, get_directory_service, require_admin, require_stockist
from meditrap.api.schemas.directory import StaffCreate
from meditrap.core.directory import DirectoryService
from meditrap.core.identity import Principal

router = APIRouter(prefix="/staff", tags=["staff"])


@router.post("", status_code=status.HTTP_201_CREATED)
def create_staff(
    staff_in: StaffCreate,
    stockist: Principal = Depends(require_stockist),
    service: DirectoryService = Depends(get_directory_service),
):
    """Add a staff member to the calling stockist's roster."""
    staff = service.create_staff(stockist, staff_in.model_dump())
    return {"success": True, "message": "Staff created successfully", "staff": staff}


@router.get("")
def list_staff(
    stockist: Optional[str] = Query(None, description="Stockist id, or 'me' for the caller's own staff"),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    principal: Principal = Depends(get_current_principal),
    service: DirectoryService = Depends(get_directory_service),
):
    return {"success": True, **service.list_staff(principal, stockist, page, per_page)}


@router.get("/{staff_id}")
def get_staff(
    staff_id: str,
    principal: Principal = Depends(get_current_principal),
    service: DirectoryService = Depends(get_directory_service),
):
    return {"success": True, "staff": service.get_staff(staff_id)}


@router.delete("/{staff_id}")
def delete_staff(
    staff_id: str,
    admin: Principal = Depends(require_admin),
    service: DirectoryService = Depends(get_directory_service),
):
    service.delete_staff(staff_id, admin)
    return {"success": True, "message": "Staff deleted successfully"}
