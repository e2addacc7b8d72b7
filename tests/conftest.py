"""
Shared fixtures: a throwaway SQLite database and small data builders.

DATABASE_URL must be set before anything under adprofit is imported, since
settings and the engine are created at import time.
"""
import os
import tempfile
from datetime import datetime, timedelta

_DB_DIR = tempfile.mkdtemp(prefix="adprofit-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["LOG_DIR"] = ""
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["ENABLE_SCHEDULER"] = "false"

import pytest  # noqa: E402

from adprofit.models.base import Base, SessionLocal, engine  # noqa: E402
from adprofit.models import (  # noqa: E402
    Tenant, PlatformConnection, Subscription, Team, TeamMember,
)
from adprofit.utils.cache import clear_cache  # noqa: E402


@pytest.fixture(autouse=True)
def _schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    clear_cache()
    yield
    clear_cache()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def make_tenant(db, plan="pro", status="active", trial_end=None):
    """Tenant with a subscription (plan=None for no subscription row)."""
    tenant = Tenant(email=f"tenant{datetime.utcnow().timestamp()}@example.com")
    db.add(tenant)
    db.flush()
    if plan is not None:
        db.add(Subscription(tenant_id=tenant.id, plan=plan, status=status, trial_end=trial_end))
    db.commit()
    return tenant.id


def connect(db, tenant_id, platform, created_at=None, settings=None):
    db.add(PlatformConnection(
        tenant_id=tenant_id,
        platform=platform,
        access_token=f"{platform}-token",
        account_id=f"{platform}-account",
        settings=settings or {},
        created_at=created_at or datetime.utcnow(),
    ))
    db.commit()


def add_member(db, owner_id, member_id, status="accepted"):
    team = db.query(Team).filter(Team.owner_tenant_id == owner_id).first()
    if team is None:
        team = Team(owner_tenant_id=owner_id, name="Team")
        db.add(team)
        db.flush()
    db.add(TeamMember(team_id=team.id, tenant_id=member_id, status=status))
    db.commit()


def hours_ago(hours):
    return datetime.utcnow() - timedelta(hours=hours)
