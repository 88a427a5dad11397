"""Purchaser profiles, scoped to the requester who created them."""

from fastapi import APIRouter, Depends, Query

from meditrap.api.deps import get_current_principal, get_directory_service
from meditrap.core.directory import DirectoryService
from meditrap.core.identity import Principal

router = APIRouter(prefix="/purchasers", tags=["purchasers"])


@router.get("")
def list_purchasers(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    principal: Principal = Depends(get_current_principal),
    service: DirectoryService = Depends(get_directory_service),
):
    """Admins see all purchasers, everyone else the ones they created."""
    return {"success": True, **service.list_purchasers(principal, page, per_page)}


@router.get("/{purchaser_id}")
def get_purchaser(
    purchaser_id: str,
    principal: Principal = Depends(get_current_principal),
    service: DirectoryService = Depends(get_directory_service),
):
    return {"success": True, "purchaser": service.get_purchaser(purchaser_id, principal)}


@router.delete("/{purchaser_id}")
def delete_purchaser(
    purchaser_id: str,
    principal: Principal = Depends(get_current_principal),
    service: DirectoryService = Depends(get_directory_service),
):
    service.delete_purchaser(purchaser_id, principal)
    return {"success": True, "message": "Purchaser deleted successfully"}
