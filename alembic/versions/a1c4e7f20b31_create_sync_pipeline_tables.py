"""Create tenant, metrics cache, sync_log and custom_costs tables

Revision ID: a1c4e7f20b31
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers
revision: str = 'a1c4e7f20b31'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _has_table(table_name):
    bind = op.get_bind()
    insp = inspect(bind)
    return table_name in insp.get_table_names()


def _metric_columns():
    return [
        sa.Column('spend', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('impressions', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('clicks', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('revenue', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('purchases', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cached_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # ── tenants & billing ──
    if not _has_table('tenants'):
        op.create_table(
            'tenants',
            sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column('external_id', sa.String(), nullable=True, unique=True, index=True),
            sa.Column('email', sa.String(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if not _has_table('platform_connections'):
        op.create_table(
            'platform_connections',
            sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column('tenant_id', sa.Integer(), sa.ForeignKey('tenants.id'), nullable=False, index=True),
            sa.Column('platform', sa.String(), nullable=False),
            sa.Column('access_token', sa.Text(), nullable=False),
            sa.Column('account_id', sa.String(), nullable=False),
            sa.Column('settings', sa.JSON(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
            sa.UniqueConstraint('tenant_id', 'platform', name='uq_platform_connection_tenant_platform'),
        )

    if not _has_table('subscriptions'):
        op.create_table(
            'subscriptions',
            sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column('tenant_id', sa.Integer(), sa.ForeignKey('tenants.id'), nullable=False, unique=True, index=True),
            sa.Column('plan', sa.String(), nullable=False),
            sa.Column('status', sa.String(), nullable=False, index=True),
            sa.Column('trial_end', sa.DateTime(), nullable=True),
            sa.Column('current_period_end', sa.DateTime(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        )

    if not _has_table('teams'):
        op.create_table(
            'teams',
            sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column('owner_tenant_id', sa.Integer(), sa.ForeignKey('tenants.id'), nullable=False, unique=True, index=True),
            sa.Column('name', sa.String(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if not _has_table('team_members'):
        op.create_table(
            'team_members',
            sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column('team_id', sa.Integer(), sa.ForeignKey('teams.id'), nullable=False, index=True),
            sa.Column('tenant_id', sa.Integer(), sa.ForeignKey('tenants.id'), nullable=False, index=True),
            sa.Column('status', sa.String(), nullable=False, server_default='pending'),
            sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.UniqueConstraint('team_id', 'tenant_id', name='uq_team_member'),
        )

    # ── metrics cache ──
    if not _has_table('metrics_cache'):
        op.create_table(
            'metrics_cache',
            sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column('tenant_id', sa.Integer(), nullable=False, index=True),
            sa.Column('country_code', sa.String(2), nullable=False),
            sa.Column('date', sa.Date(), nullable=False),
            sa.Column('platform', sa.String(), nullable=False),
            *_metric_columns(),
            sa.UniqueConstraint('tenant_id', 'country_code', 'date', 'platform', name='uq_metrics_cache_key'),
        )
        op.create_index('ix_metrics_cache_tenant_platform_date', 'metrics_cache', ['tenant_id', 'platform', 'date'])

    if not _has_table('campaign_metrics'):
        op.create_table(
            'campaign_metrics',
            sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column('tenant_id', sa.Integer(), nullable=False, index=True),
            sa.Column('platform', sa.String(), nullable=False),
            sa.Column('campaign_id', sa.String(), nullable=False),
            sa.Column('campaign_name', sa.String(), nullable=True),
            sa.Column('country_code', sa.String(2), nullable=False, server_default=''),
            sa.Column('date', sa.Date(), nullable=False),
            *_metric_columns(),
            sa.UniqueConstraint(
                'tenant_id', 'platform', 'campaign_id', 'country_code', 'date',
                name='uq_campaign_metrics_key'
            ),
        )
        op.create_index('ix_campaign_metrics_tenant_platform_date', 'campaign_metrics', ['tenant_id', 'platform', 'date'])

    # ── sync lease / status ──
    if not _has_table('sync_log'):
        op.create_table(
            'sync_log',
            sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column('tenant_id', sa.Integer(), nullable=False, index=True),
            sa.Column('platform', sa.String(), nullable=False),
            sa.Column('status', sa.String(), nullable=False, server_default='idle', index=True),
            sa.Column('started_at', sa.DateTime(), nullable=True),
            sa.Column('last_synced_at', sa.DateTime(), nullable=True),
            sa.Column('error_message', sa.Text(), nullable=True),
            sa.Column('records_synced', sa.Integer(), server_default='0'),
            sa.UniqueConstraint('tenant_id', 'platform', name='uq_sync_log_tenant_platform'),
        )

    # ── custom costs ──
    if not _has_table('custom_costs'):
        op.create_table(
            'custom_costs',
            sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column('tenant_id', sa.Integer(), sa.ForeignKey('tenants.id'), nullable=False, index=True),
            sa.Column('name', sa.String(), nullable=False),
            sa.Column('category', sa.String(), nullable=True, index=True),
            sa.Column('cost_type', sa.String(), nullable=False, server_default='fixed'),
            sa.Column('currency', sa.String(3), nullable=False, server_default='USD'),
            sa.Column('amount', sa.Numeric(12, 2), nullable=True),
            sa.Column('percentage', sa.Numeric(6, 3), nullable=True),
            sa.Column('base_metric', sa.String(), nullable=True),
            sa.Column('repeat', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('repeat_interval', sa.String(), nullable=True),
            sa.Column('start_date', sa.Date(), nullable=False),
            sa.Column('end_date', sa.Date(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        )


def downgrade() -> None:
    for table in (
        'custom_costs',
        'sync_log',
        'campaign_metrics',
        'metrics_cache',
        'team_members',
        'teams',
        'subscriptions',
        'platform_connections',
        'tenants',
    ):
        if _has_table(table):
            op.drop_table(table)
