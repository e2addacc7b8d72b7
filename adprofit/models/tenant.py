"""
Tenant, platform connection, subscription and team models

A tenant owns connections, custom costs and cached metrics. Team members
read the owner's tenant data while the owner's plan allows it.
"""
from sqlalchemy import Column, Integer, String, DateTime, JSON, ForeignKey, UniqueConstraint, Text
from datetime import datetime

from adprofit.models.base import Base


AD_PLATFORMS = ["tiktok", "meta"]  # Spend sources (count toward max_ad_platforms)
REVENUE_PLATFORMS = ["posthog"]  # Revenue sources (country + day only)

SUBSCRIPTION_STATUSES = ["trialing", "active", "past_due", "canceled", "expired"]
ACTIVE_SUBSCRIPTION_STATUSES = ("trialing", "active")


class Tenant(Base):
    """Billing/account unit. Created on first authentication."""
    __tablename__ = "tenants"

    id = Column(Integer, primary_key=True, index=True)
    external_id = Column(String, unique=True, index=True, nullable=True)  # Auth provider id
    email = Column(String, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<Tenant {self.id}>"


class PlatformConnection(Base):
    """
    Credentials for one platform of one tenant

    Written by the integrations surface; the sync pipeline only reads it.
    """
    __tablename__ = "platform_connections"
    __table_args__ = (
        UniqueConstraint("tenant_id", "platform", name="uq_platform_connection_tenant_platform"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), index=True, nullable=False)
    platform = Column(String, nullable=False)  # tiktok, meta, posthog

    access_token = Column(Text, nullable=False)
    account_id = Column(String, nullable=False)  # Advertiser / ad account / project id
    settings = Column(JSON, nullable=True)  # e.g. {"purchase_event": ..., "posthog_host": ...}

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<PlatformConnection tenant={self.tenant_id} {self.platform}>"


class Subscription(Base):
    """Billing state per tenant (maintained by the billing webhooks)"""
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), unique=True, index=True, nullable=False)

    plan = Column(String, nullable=False)  # starter, growth, pro
    status = Column(String, nullable=False, index=True)  # see SUBSCRIPTION_STATUSES

    trial_end = Column(DateTime, nullable=True)
    current_period_end = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Team(Base):
    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, index=True)
    owner_tenant_id = Column(Integer, ForeignKey("tenants.id"), unique=True, index=True, nullable=False)
    name = Column(String, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class TeamMember(Base):
    __tablename__ = "team_members"
    __table_args__ = (
        UniqueConstraint("team_id", "tenant_id", name="uq_team_member"),
    )

    id = Column(Integer, primary_key=True, index=True)
    team_id = Column(Integer, ForeignKey("teams.id"), index=True, nullable=False)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), index=True, nullable=False)
    status = Column(String, nullable=False, default="pending")  # pending, accepted

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
