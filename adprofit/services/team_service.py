"""
Tenant ownership resolution

Team members operate on their team owner's data. Every read or write of
shared tenant data goes through resolve_owner() first.
"""
from typing import Optional

from sqlalchemy.orm import Session

from adprofit.models.tenant import Tenant, Team, TeamMember
from adprofit.services.subscription_service import get_subscription
from adprofit.utils.logger import log


def resolve_owner(db: Session, acting_tenant_id: int) -> Optional[int]:
    """
    Map the acting tenant to the tenant whose data it should see.

    Returns:
        - the acting tenant's own id when it is not an accepted team member
        - the owner's id when the owner's plan is active and includes team access
        - None when the membership exists but the owner's plan blocks it
          (callers answer 403, not 404)
    """
    membership = (
        db.query(Team.owner_tenant_id)
        .join(TeamMember, TeamMember.team_id == Team.id)
        .filter(
            TeamMember.tenant_id == acting_tenant_id,
            TeamMember.status == "accepted",
        )
        .first()
    )
    if membership is None:
        return acting_tenant_id

    owner_id = membership[0]
    owner_sub = get_subscription(db, owner_id)
    if not owner_sub.is_active or not owner_sub.limits.team_access:
        log.info(f"Tenant {acting_tenant_id} blocked: team owner {owner_id} plan lacks team access")
        return None

    return owner_id


def tenant_exists(db: Session, tenant_id: int) -> bool:
    return db.query(db.query(Tenant.id).filter(Tenant.id == tenant_id).exists()).scalar()
