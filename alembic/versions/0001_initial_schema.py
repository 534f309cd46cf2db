"""Initial schema: agents, properties, inquiries, deals and property views.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-18

Works on SQLite and PostgreSQL. The one-active-deal-per-property rule is a
partial unique index on both.
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '0001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create all tables."""

    # =========================================================================
    # Table: agent
    # =========================================================================
    op.create_table(
        'agent',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('full_name', sa.String(200), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.current_timestamp()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )

    # =========================================================================
    # Table: property
    # =========================================================================
    op.create_table(
        'property',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('city', sa.String(100), nullable=True),
        sa.Column('price', sa.Numeric(18, 2), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('agent_id', sa.Integer(), nullable=True),
        sa.Column('closed_deal_id', sa.Integer(), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.current_timestamp()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['agent_id'], ['agent.id']),
    )
    op.create_index('ix_property_city', 'property', ['city'])
    op.create_index('ix_property_status', 'property', ['status'])
    op.create_index('ix_property_closed_deal_id', 'property', ['closed_deal_id'])
    op.create_index('ix_property_is_deleted', 'property', ['is_deleted'])

    # =========================================================================
    # Table: inquiry
    # =========================================================================
    op.create_table(
        'inquiry',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('property_id', sa.Integer(), nullable=True),
        sa.Column('visitor_name', sa.String(200), nullable=False),
        sa.Column('visitor_email', sa.String(255), nullable=False),
        sa.Column('visitor_phone', sa.String(50), nullable=True),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('status_before_close', sa.String(20), nullable=True),
        sa.Column('assigned_agent_id', sa.Integer(), nullable=True),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('related_deal_id', sa.Integer(), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.current_timestamp()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['property_id'], ['property.id']),
        sa.ForeignKeyConstraint(['assigned_agent_id'], ['agent.id']),
    )
    op.create_index('ix_inquiry_property_id', 'inquiry', ['property_id'])
    op.create_index('ix_inquiry_status', 'inquiry', ['status'])
    op.create_index('ix_inquiry_assigned_agent_id', 'inquiry', ['assigned_agent_id'])

    # =========================================================================
    # Table: deal
    # =========================================================================
    op.create_table(
        'deal',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('property_id', sa.Integer(), nullable=False),
        sa.Column('inquiry_id', sa.Integer(), nullable=True),
        sa.Column('agent_id', sa.Integer(), nullable=False),
        sa.Column('sale_price', sa.Numeric(18, 2), nullable=False),
        sa.Column('commission_rate', sa.Numeric(5, 2), nullable=False),
        sa.Column('commission_amount', sa.Numeric(18, 2), nullable=True),
        sa.Column('buyer_name', sa.String(200), nullable=False),
        sa.Column('buyer_email', sa.String(255), nullable=False),
        sa.Column('buyer_phone', sa.String(50), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.current_timestamp()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['property_id'], ['property.id']),
        sa.ForeignKeyConstraint(['inquiry_id'], ['inquiry.id']),
        sa.ForeignKeyConstraint(['agent_id'], ['agent.id']),
    )
    op.create_index('ix_deal_property_id', 'deal', ['property_id'])
    op.create_index('ix_deal_agent_id', 'deal', ['agent_id'])
    op.create_index('ix_deal_status', 'deal', ['status'])
    op.create_index('ix_deal_agent_closed', 'deal', ['agent_id', 'closed_at'])
    op.create_index(
        'uq_deal_active_property',
        'deal',
        ['property_id'],
        unique=True,
        sqlite_where=sa.text("status != 'CANCELLED'"),
        postgresql_where=sa.text("status != 'CANCELLED'"),
    )

    # =========================================================================
    # Table: property_view
    # =========================================================================
    op.create_table(
        'property_view',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('property_id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.String(100), nullable=True),
        sa.Column('ip_address', sa.String(50), nullable=True),
        sa.Column('user_agent', sa.String(500), nullable=True),
        sa.Column('viewed_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['property_id'], ['property.id']),
    )
    op.create_index('ix_property_view_property_id', 'property_view', ['property_id'])
    op.create_index('ix_property_view_viewed_at', 'property_view', ['viewed_at'])
    op.create_index('ix_property_view_property_viewed', 'property_view', ['property_id', 'viewed_at'])
    op.create_index('ix_property_view_dedup', 'property_view', ['property_id', 'session_id', 'viewed_at'])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('property_view')
    op.drop_table('deal')
    op.drop_table('inquiry')
    op.drop_table('property')
    op.drop_table('agent')
