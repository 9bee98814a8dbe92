"""initial schema - webhook endpoints and deliveries

Revision ID: 001
Revises: 
Create Date: 2026-10-17 12:20:00.000000

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create webhook_endpoints table
    op.create_table(
        'webhook_endpoints',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('organisation_id', sa.String(36), nullable=False, index=True),
        sa.Column('url', sa.Text(), nullable=False),
        sa.Column('secret', sa.String(255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('event_types', sa.JSON(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('last_triggered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_webhook_endpoints'),
    )

    # Create webhook_deliveries table (append-only)
    op.create_table(
        'webhook_deliveries',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('endpoint_id', sa.String(36), nullable=False, index=True),
        sa.Column('organisation_id', sa.String(36), nullable=False, index=True),
        sa.Column('event_type', sa.String(100), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('status_code', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('response_body', sa.Text(), nullable=True),
        sa.Column('success', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('attempted_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_webhook_deliveries'),
        sa.ForeignKeyConstraint(
            ['endpoint_id'], ['webhook_endpoints.id'],
            name='fk_webhook_deliveries_endpoint_id_webhook_endpoints',
            ondelete='CASCADE',
        ),
    )

    # Retry sweep scans recent failures
    op.create_index(
        'ix_webhook_deliveries_success_attempted_at',
        'webhook_deliveries',
        ['success', 'attempted_at'],
    )


def downgrade() -> None:
    op.drop_index('ix_webhook_deliveries_success_attempted_at', table_name='webhook_deliveries')
    op.drop_table('webhook_deliveries')
    op.drop_table('webhook_endpoints')
