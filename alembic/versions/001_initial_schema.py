"""Initial schema

Revision ID: 001
Revises: 
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create call_records table
    op.create_table(
        'call_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('call_sid', sa.String(), nullable=False),
        sa.Column('prospect_id', sa.String(), nullable=True),
        sa.Column('phone_number', sa.String(), nullable=True),
        sa.Column('manager_name', sa.String(), nullable=True),
        sa.Column('hotel_name', sa.String(), nullable=True),
        sa.Column('recommended_product', sa.String(), nullable=True),
        sa.Column('last_product', sa.String(), nullable=True),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('duration_seconds', sa.Integer(), nullable=True),
        sa.Column('from_number', sa.String(), nullable=True),
        sa.Column('to_number', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('ended_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_call_records_id'), 'call_records', ['id'], unique=False)
    op.create_index(op.f('ix_call_records_call_sid'), 'call_records', ['call_sid'], unique=True)


def downgrade() -> None:
    op.drop_index(op.f('ix_call_records_call_sid'), table_name='call_records')
    op.drop_index(op.f('ix_call_records_id'), table_name='call_records')
    op.drop_table('call_records')
