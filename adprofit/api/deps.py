"""
Shared endpoint dependencies: acting tenant and data owner resolution
"""
from fastapi import Depends, HTTPException, Query
from sqlalchemy.orm import Session

from adprofit.models.base import get_db
from adprofit.services.team_service import resolve_owner, tenant_exists

TEAM_OWNER_DOWNGRADED = {
    "error": "team_owner_downgraded",
    "message": "Your team owner's plan no longer includes team access. Contact them to restore access.",
}


def get_acting_tenant(
    tenant_id: int = Query(..., description="Acting tenant id"),
    db: Session = Depends(get_db),
) -> int:
    if not tenant_exists(db, tenant_id):
        raise HTTPException(status_code=404, detail={"error": "tenant_not_found"})
    return tenant_id


def get_data_owner(
    acting_tenant: int = Depends(get_acting_tenant),
    db: Session = Depends(get_db),
) -> int:
    """Tenant whose data the acting tenant reads (403 when the owner's plan lapsed)."""
    owner = resolve_owner(db, acting_tenant)
    if owner is None:
        raise HTTPException(status_code=403, detail=TEAM_OWNER_DOWNGRADED)
    return owner
