"""notification dispatch tables

Revision ID: 4b1f6c2d9a10
Revises:
Create Date: 2026-10-17 09:00:00.000000+00:00

"""
from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '4b1f6c2d9a10'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            'created_at',
            sa.DateTime(timezone=True),
            server_default=sa.text('CURRENT_TIMESTAMP'),
            nullable=False,
            comment='Timestamp of record creation',
        ),
        sa.Column(
            'updated_at',
            sa.DateTime(timezone=True),
            server_default=sa.text('CURRENT_TIMESTAMP'),
            nullable=False,
            comment='Timestamp of last update',
        ),
    ]


def upgrade() -> None:
    """Upgrade database schema."""
    op.create_table(
        'notifications',
        sa.Column('user_id', sa.String(length=255), nullable=False, comment='Owning user'),
        sa.Column(
            'kind',
            sa.String(length=50),
            nullable=False,
            comment='info, success, warning, alert or a business kind',
        ),
        sa.Column('title', sa.String(length=500), nullable=False, comment='Notification title'),
        sa.Column('body', sa.Text(), nullable=False, comment='Notification message'),
        sa.Column(
            'priority',
            sa.Enum('high', 'medium', 'low', name='notification_priority', native_enum=False, length=20),
            nullable=False,
            comment='high, medium or low',
        ),
        sa.Column('read', sa.Boolean(), nullable=False, comment='Whether the user has read the notification'),
        sa.Column(
            'action_url',
            sa.String(length=2048),
            nullable=True,
            comment="Link opened by the notification's call to action",
        ),
        sa.Column('id', sa.Uuid(), nullable=False, comment='UUID v4 primary key'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_notifications')),
    )
    op.create_index('ix_notifications_user_created', 'notifications', ['user_id', 'created_at'], unique=False)
    op.create_index('ix_notifications_user_read', 'notifications', ['user_id', 'read'], unique=False)

    op.create_table(
        'notification_preferences',
        sa.Column('user_id', sa.String(length=255), nullable=False, comment='Owning user'),
        sa.Column('email_enabled', sa.Boolean(), nullable=False),
        sa.Column('push_enabled', sa.Boolean(), nullable=False),
        sa.Column('appointments', sa.Boolean(), nullable=False),
        sa.Column('messages', sa.Boolean(), nullable=False),
        sa.Column('prescriptions', sa.Boolean(), nullable=False),
        sa.Column('investigations', sa.Boolean(), nullable=False),
        sa.Column('marketing', sa.Boolean(), nullable=False),
        sa.Column('id', sa.Uuid(), nullable=False, comment='UUID v4 primary key'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_notification_preferences')),
        sa.UniqueConstraint('user_id', name=op.f('uq_notification_preferences_user_id')),
    )

    op.create_table(
        'device_tokens',
        sa.Column('user_id', sa.String(length=255), nullable=False, comment='Owning user'),
        sa.Column('token', sa.String(length=512), nullable=False, comment='Provider registration token'),
        sa.Column(
            'device_type',
            sa.Enum('web', 'ios', 'android', name='device_type', native_enum=False, length=20),
            nullable=False,
            comment='web, ios or android',
        ),
        sa.Column('device_name', sa.String(length=255), nullable=True),
        sa.Column('browser', sa.String(length=255), nullable=True),
        sa.Column('enabled', sa.Boolean(), nullable=False, comment='Disabled tokens are kept but never targeted'),
        sa.Column(
            'last_used_at',
            sa.DateTime(timezone=True),
            nullable=False,
            comment='Last registration or push attempt',
        ),
        sa.Column('id', sa.Uuid(), nullable=False, comment='UUID v4 primary key'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_device_tokens')),
        sa.UniqueConstraint('token', name=op.f('uq_device_tokens_token')),
    )
    op.create_index(op.f('ix_device_tokens_user_id'), 'device_tokens', ['user_id'], unique=False)

    op.create_table(
        'delivery_audit_entries',
        sa.Column('user_id', sa.String(length=255), nullable=False, comment='Recipient user'),
        sa.Column(
            'channel',
            sa.Enum('email', 'push', name='delivery_channel', native_enum=False, length=20),
            nullable=False,
            comment='email or push',
        ),
        sa.Column('token_id', sa.Uuid(), nullable=True, comment='Device token the push attempt targeted'),
        sa.Column('success', sa.Boolean(), nullable=False),
        sa.Column(
            'invalid',
            sa.Boolean(),
            nullable=False,
            comment='Provider reported the token permanently invalid',
        ),
        sa.Column(
            'error_code',
            sa.String(length=255),
            nullable=True,
            comment='Provider error code or message of the final attempt',
        ),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False, comment='When the outcome was recorded'),
        sa.Column(
            'context',
            postgresql.JSONB(astext_type=sa.Text()).with_variant(sa.JSON(), 'sqlite'),
            nullable=False,
            comment='Notification title and caller metadata',
        ),
        sa.Column('id', sa.Uuid(), nullable=False, comment='UUID v4 primary key'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_delivery_audit_entries')),
    )
    op.create_index(
        op.f('ix_delivery_audit_entries_user_id'), 'delivery_audit_entries', ['user_id'], unique=False
    )
    op.create_index(
        'ix_delivery_audit_channel_timestamp', 'delivery_audit_entries', ['channel', 'timestamp'], unique=False
    )


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_index('ix_delivery_audit_channel_timestamp', table_name='delivery_audit_entries')
    op.drop_index(op.f('ix_delivery_audit_entries_user_id'), table_name='delivery_audit_entries')
    op.drop_table('delivery_audit_entries')
    op.drop_index(op.f('ix_device_tokens_user_id'), table_name='device_tokens')
    op.drop_table('device_tokens')
    op.drop_table('notification_preferences')
    op.drop_index('ix_notifications_user_read', table_name='notifications')
    op.drop_index('ix_notifications_user_created', table_name='notifications')
    op.drop_table('notifications')
