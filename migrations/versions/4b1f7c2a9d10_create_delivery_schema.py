"""create delivery schema

Revision ID: 4b1f7c2a9d10
Revises:
Create Date: 2026-10-19 09:12:44.102334

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '4b1f7c2a9d10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

MESSAGE_STATUSES = (
    'pending', 'scheduled', 'processing', 'retry',
    'sent', 'delivered', 'failed', 'cancelled',
)


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('email', sa.String(255)),
        sa.Column('credits', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('sender_names', sa.JSON()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint('credits >= 0', name='ck_users_credits'),
    )

    op.create_table(
        'gateways',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('provider', sa.String(50), nullable=False),
        sa.Column('api_url', sa.String(512)),
        sa.Column('credentials', sa.JSON()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        'messages',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('gateway_id', sa.Uuid(), sa.ForeignKey('gateways.id')),
        sa.Column('sender_id', sa.String(255)),
        sa.Column('recipient', sa.String(255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('scheduled_for', sa.DateTime(timezone=True)),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_attempt', sa.DateTime(timezone=True)),
        sa.Column('next_retry', sa.DateTime(timezone=True)),
        sa.Column('error_message', sa.Text()),
        sa.Column('sent_at', sa.DateTime(timezone=True)),
        sa.Column('provider_message_id', sa.String(255)),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint(
            'status IN ({})'.format(', '.join(f"'{s}'" for s in MESSAGE_STATUSES)),
            name='ck_messages_status',
        ),
    )

    # Due selection, retry selection and the stuck sweep
    op.create_index('idx_messages_status_scheduled_for', 'messages', ['status', 'scheduled_for'])
    op.create_index('idx_messages_status_next_retry', 'messages', ['status', 'next_retry'])
    op.create_index('idx_messages_status_last_attempt', 'messages', ['status', 'last_attempt'])
    op.create_index('idx_messages_user_id', 'messages', ['user_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('idx_messages_user_id', table_name='messages')
    op.drop_index('idx_messages_status_last_attempt', table_name='messages')
    op.drop_index('idx_messages_status_next_retry', table_name='messages')
    op.drop_index('idx_messages_status_scheduled_for', table_name='messages')
    op.drop_table('messages')
    op.drop_table('gateways')
    op.drop_table('users')
