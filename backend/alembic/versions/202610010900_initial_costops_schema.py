"""Initial CostOps schema

Revision ID: 202610010900
Revises:
Create Date: 2026-10-01 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '202610010900'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps(with_updated_at: bool = True) -> list[sa.Column]:
    columns = [sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False)]
    if with_updated_at:
        columns.append(sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False))
    return columns


def upgrade() -> None:
    op.create_table(
        'organizations',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('slug', sa.String(255), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_organizations_id', 'organizations', ['id'])
    op.create_index('ix_organizations_slug', 'organizations', ['slug'], unique=True)

    op.create_table(
        'connections',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('credentials_encrypted', sa.LargeBinary(), nullable=True),
        sa.Column('data', postgresql.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_connections_id', 'connections', ['id'])
    op.create_index('ix_connections_organization_id', 'connections', ['organization_id'])
    op.create_index('ix_connections_type', 'connections', ['type'])

    op.create_table(
        'cloud_subscriptions',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('provider', sa.String(20), nullable=False),
        sa.Column('subscription_id', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_cloud_subscriptions_id', 'cloud_subscriptions', ['id'])
    op.create_index('ix_cloud_subscriptions_organization_id', 'cloud_subscriptions', ['organization_id'])
    op.create_index('ix_cloud_subscriptions_subscription_id', 'cloud_subscriptions', ['subscription_id'], unique=True)

    op.create_table(
        'cloud_resources',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('subscription_id', sa.String(255), nullable=False),
        sa.Column('resource_id', sa.String(1024), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('type', sa.String(255), nullable=False),
        sa.Column('resource_group', sa.String(255), nullable=True),
        sa.Column('location', sa.String(100), nullable=True),
        sa.Column('tags', postgresql.JSON(), nullable=True),
        sa.Column('metrics', postgresql.JSON(), nullable=True),
        sa.Column('cost_monthly', sa.Float(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_cloud_resources_id', 'cloud_resources', ['id'])
    op.create_index('ix_cloud_resources_organization_id', 'cloud_resources', ['organization_id'])
    op.create_index('ix_cloud_resources_subscription_id', 'cloud_resources', ['subscription_id'])
    op.create_index('ix_cloud_resources_resource_id', 'cloud_resources', ['resource_id'], unique=True)
    op.create_index('ix_cloud_resources_type', 'cloud_resources', ['type'])

    op.create_table(
        'recommendations',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('subscription_id', sa.String(255), nullable=True),
        sa.Column('resource_id', sa.String(1024), nullable=False),
        sa.Column('rule_id', sa.String(100), nullable=False),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('impact_monthly', sa.Float(), nullable=False),
        sa.Column('confidence', sa.Float(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('details', postgresql.JSON(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('organization_id', 'rule_id', 'resource_id',
                            name='uq_recommendations_org_rule_resource'),
    )
    op.create_index('ix_recommendations_id', 'recommendations', ['id'])
    op.create_index('ix_recommendations_organization_id', 'recommendations', ['organization_id'])
    op.create_index('ix_recommendations_resource_id', 'recommendations', ['resource_id'])
    op.create_index('ix_recommendations_rule_id', 'recommendations', ['rule_id'])
    op.create_index('ix_recommendations_status', 'recommendations', ['status'])
    op.create_index('ix_recommendations_created_at', 'recommendations', ['created_at'])

    op.create_table(
        'rules_configs',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('config', postgresql.JSON(), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_rules_configs_id', 'rules_configs', ['id'])
    op.create_index('ix_rules_configs_organization_id', 'rules_configs', ['organization_id'], unique=True)

    op.create_table(
        'pull_request_events',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('recommendation_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('recommendations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('provider', sa.String(20), nullable=False),
        sa.Column('repo', sa.String(255), nullable=False),
        sa.Column('pr_number', sa.Integer(), nullable=False),
        sa.Column('branch', sa.String(255), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('url', sa.String(1024), nullable=False),
        *_timestamps(with_updated_at=False),
    )
    op.create_index('ix_pull_request_events_id', 'pull_request_events', ['id'])
    op.create_index('ix_pull_request_events_organization_id', 'pull_request_events', ['organization_id'])
    op.create_index('ix_pull_request_events_recommendation_id', 'pull_request_events', ['recommendation_id'])


def downgrade() -> None:
    op.drop_table('pull_request_events')
    op.drop_table('rules_configs')
    op.drop_table('recommendations')
    op.drop_table('cloud_resources')
    op.drop_table('cloud_subscriptions')
    op.drop_table('connections')
    op.drop_table('organizations')
