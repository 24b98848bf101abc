"""Create users, interests, matches and notification tables.

Revision ID: create_matrimony_core
Revises:
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = 'create_matrimony_core'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), onupdate=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True, index=True),
        sa.Column('first_name', sa.String(100), nullable=True),
        sa.Column('last_name', sa.String(100), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'interests',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('from_user_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('users.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('to_user_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('users.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('message', sa.String(500), nullable=True),
        sa.Column('priority', sa.String(10), nullable=False, server_default='normal'),
        sa.Column('status', sa.String(20), nullable=False, server_default='sent'),
        sa.Column('sent_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('responded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.UniqueConstraint('from_user_id', 'to_user_id', name='uq_interest_pair'),
    )
    op.create_index('ix_interests_to_user_status', 'interests', ['to_user_id', 'status'])
    op.create_index('ix_interests_from_user_status', 'interests', ['from_user_id', 'status'])
    op.create_index('ix_interests_sent_at', 'interests', ['sent_at'])
    # Expiry sweep only touches unanswered rows
    op.create_index(
        'ix_interests_pending_expiry',
        'interests',
        ['expires_at'],
        postgresql_where=sa.text("status = 'sent'")
    )

    op.create_table(
        'matches',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_low_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_high_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('user_low_id', 'user_high_id', name='uq_match_pair'),
    )

    op.create_table(
        'notifications',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('recipient_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('users.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('sender_id', postgresql.UUID(as_uuid=True), nullable=True, index=True),
        sa.Column('type', sa.String(30), nullable=False, index=True),
        sa.Column('title', sa.String(100), nullable=False),
        sa.Column('message', sa.String(500), nullable=False),
        sa.Column('data', sa.JSON(), nullable=True),
        sa.Column('action_url', sa.String(500), nullable=True),
        sa.Column('action_text', sa.String(50), nullable=True),
        sa.Column('priority', sa.String(10), nullable=False, server_default='medium'),
        sa.Column('delivery_method', sa.JSON(), nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('email_sent', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('email_sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('push_sent', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('push_sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('scheduled_for', sa.DateTime(timezone=True), nullable=True, index=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True, index=True),
        *_timestamps(),
    )
    op.create_index('ix_notifications_recipient_created', 'notifications',
                    ['recipient_id', 'created_at'])
    op.create_index('ix_notifications_recipient_unread', 'notifications',
                    ['recipient_id', 'is_read', 'is_deleted'])

    op.create_table(
        'notification_preferences',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('users.id', ondelete='CASCADE'),
                  nullable=False, unique=True, index=True),
        sa.Column('preferences', sa.JSON(), nullable=False),
        sa.Column('daily_digest', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('weekly_digest', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('marketing_emails', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('quiet_hours_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('quiet_hours_start', sa.String(5), nullable=False, server_default='22:00'),
        sa.Column('quiet_hours_end', sa.String(5), nullable=False, server_default='08:00'),
        sa.Column('quiet_hours_timezone', sa.String(50), nullable=False,
                  server_default='Asia/Kolkata'),
        sa.Column('max_daily_notifications', sa.Integer(), nullable=False, server_default='50'),
        sa.Column('max_hourly_notifications', sa.Integer(), nullable=False, server_default='10'),
        *_timestamps(),
    )


def downgrade() -> None:
    op.drop_table('notification_preferences')
    op.drop_index('ix_notifications_recipient_unread', table_name='notifications')
    op.drop_index('ix_notifications_recipient_created', table_name='notifications')
    op.drop_table('notifications')
    op.drop_table('matches')
    op.drop_index('ix_interests_pending_expiry', table_name='interests')
    op.drop_index('ix_interests_sent_at', table_name='interests')
    op.drop_index('ix_interests_from_user_status', table_name='interests')
    op.drop_index('ix_interests_to_user_status', table_name='interests')
    op.drop_table('interests')
    op.drop_table('users')
