"""queue manager schema: profiles, locations, tickets, token blocklist, audit

Revision ID: 0001_queue_schema
Revises: 
Create Date: 2026-10-19
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = '0001_queue_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('users',
        sa.Column('uid', sa.String(length=64), primary_key=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('email', sa.String(length=128), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=True),
        sa.Column('auth_provider', sa.String(length=32), nullable=False, server_default='password'),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='customer'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('first_queue_completed', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('last_login', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table('revoked_tokens',
        sa.Column('jti', sa.String(length=64), primary_key=True),
        sa.Column('uid', sa.String(length=64), nullable=True),
        sa.Column('reason', sa.String(length=64), nullable=True),
        sa.Column('revoked_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_revoked_tokens_uid', 'revoked_tokens', ['uid'])

    op.create_table('locations',
        sa.Column('id', sa.String(length=64), primary_key=True),
        sa.Column('name', sa.String(length=160), nullable=False),
        sa.Column('category', sa.String(length=32), nullable=False, server_default='other'),
        sa.Column('services', sa.JSON(), nullable=True),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('coords', sa.JSON(), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('hours', sa.String(length=120), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_locations_category', 'locations', ['category'])

    op.create_table('queue_tickets',
        sa.Column('ticket_id', sa.String(length=32), primary_key=True),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('customer_email', sa.String(length=128), nullable=True),
        sa.Column('customer_name', sa.String(length=128), nullable=False),
        sa.Column('location_id', sa.String(length=64), nullable=False),
        sa.Column('location_name', sa.String(length=160), nullable=False),
        sa.Column('service', sa.String(length=120), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='waiting'),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('estimated_wait', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('is_first_queue', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('served_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('served_by', sa.String(length=128), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_by', sa.String(length=128), nullable=True),
        sa.Column('welcome_email_sent', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('welcome_email_sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('welcome_email_error', sa.String(length=255), nullable=True),
        sa.Column('email_simulated', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('thank_you_email_sent', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('thank_you_email_sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('thank_you_email_error', sa.String(length=255), nullable=True),
    )
    op.create_index('ix_queue_tickets_user_id', 'queue_tickets', ['user_id'])
    op.create_index('ix_queue_tickets_location_id', 'queue_tickets', ['location_id'])
    op.create_index('ix_queue_tickets_status', 'queue_tickets', ['status'])
    op.create_index('ix_queue_tickets_created_at', 'queue_tickets', ['created_at'])
    op.create_index('ix_queue_tickets_location_status_created', 'queue_tickets', ['location_id', 'status', 'created_at'])
    # At most one serving ticket per location
    op.create_index(
        'uq_queue_tickets_serving_slot', 'queue_tickets', ['location_id'], unique=True,
        sqlite_where=sa.text("status = 'serving'"),
        postgresql_where=sa.text("status = 'serving'"),
    )

    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('actor_uid', sa.String(length=64), nullable=False),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('entity', sa.String(length=64), nullable=True),
        sa.Column('entity_id', sa.String(length=64), nullable=True),
        sa.Column('perms_snapshot', sa.JSON(), nullable=True),
        sa.Column('meta', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_audit_logs_actor_uid', 'audit_logs', ['actor_uid'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])


def downgrade():
    op.drop_table('audit_logs')
    op.drop_index('uq_queue_tickets_serving_slot', table_name='queue_tickets')
    op.drop_table('queue_tickets')
    op.drop_table('locations')
    op.drop_table('revoked_tokens')
    op.drop_table('users')
