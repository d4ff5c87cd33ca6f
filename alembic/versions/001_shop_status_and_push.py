"""Shop status and push notification schema

Revision ID: 001_shop_status_and_push
Revises: 
Create Date: 2026-10-19
"""
from datetime import time
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_shop_status_and_push'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('role', sa.String(20), nullable=False, server_default='customer'),
        sa.Column('session_token', sa.String(64), nullable=True),
        sa.Column('session_expires_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_session_token', 'users', ['session_token'], unique=True)

    # Weekly schedule, one row per weekday (0 = Sunday)
    op.create_table(
        'shop_operating_hours',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('day_of_week', sa.Integer(), nullable=False, unique=True),
        sa.Column('open_time', sa.Time(), nullable=False),
        sa.Column('close_time', sa.Time(), nullable=False),
        sa.Column('is_open', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint('day_of_week BETWEEN 0 AND 6', name='ck_operating_hours_day'),
    )
    op.bulk_insert(
        sa.table(
            'shop_operating_hours',
            sa.column('day_of_week', sa.Integer()),
            sa.column('open_time', sa.Time()),
            sa.column('close_time', sa.Time()),
            sa.column('is_open', sa.Boolean()),
        ),
        [
            {'day_of_week': day, 'open_time': time(8, 0), 'close_time': time(22, 0), 'is_open': True}
            for day in range(7)
        ],
    )

    op.create_table(
        'shop_notifications',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('end_date', sa.DateTime(), nullable=False),
        sa.Column('show_overlay', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index('ix_shop_notifications_start_date', 'shop_notifications', ['start_date'])
    op.create_index('ix_shop_notifications_end_date', 'shop_notifications', ['end_date'])

    op.create_table(
        'shop_status_settings',
        sa.Column('setting_key', sa.String(100), primary_key=True),
        sa.Column('setting_value', sa.Text(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        'shop_email_notifications',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        'push_subscriptions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('endpoint', sa.Text(), nullable=False, unique=True),
        sa.Column('p256dh_key', sa.String(255), nullable=False),
        sa.Column('auth_key', sa.String(255), nullable=False),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('browser_info', sa.JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('last_used', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_push_subscriptions_user_id', 'push_subscriptions', ['user_id'])
    op.create_index('ix_push_subscriptions_is_active', 'push_subscriptions', ['is_active'])

    op.create_table(
        'push_notification_logs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('subscription_id', sa.String(36), sa.ForeignKey('push_subscriptions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('notification_id', sa.String(36), nullable=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('data_payload', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='sent'),
        sa.Column('error_message', sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_push_notification_logs_subscription_id', 'push_notification_logs', ['subscription_id'])
    op.create_index('ix_push_notification_logs_notification_id', 'push_notification_logs', ['notification_id'])
    op.create_index('ix_push_notification_logs_status', 'push_notification_logs', ['status'])
    op.create_index('ix_push_notification_logs_created_at', 'push_notification_logs', ['created_at'])

    op.create_table(
        'push_notification_settings',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('shop_status_notifications', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('order_status_notifications', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('special_announcements', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('marketing_notifications', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('auto_resubscribe', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('max_daily_notifications', sa.Integer(), nullable=False, server_default='10'),
        sa.Column('quiet_hours_start', sa.Time(), nullable=True),
        sa.Column('quiet_hours_end', sa.Time(), nullable=True),
        *_timestamps(),
    )


def downgrade() -> None:
    op.drop_table('push_notification_settings')
    op.drop_table('push_notification_logs')
    op.drop_table('push_subscriptions')
    op.drop_table('shop_email_notifications')
    op.drop_table('shop_status_settings')
    op.drop_table('shop_notifications')
    op.drop_table('shop_operating_hours')
    op.drop_table('users')
