"""Add applications and backups tables

Revision ID: 0001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create applications table
    op.create_table(
        'applications',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('company', sa.String(length=255), nullable=False),
        sa.Column('position', sa.String(length=255), nullable=False),
        sa.Column('date_applied', sa.Date(), nullable=False),
        sa.Column('employment_type', sa.String(length=20), nullable=False, default='Onsite'),
        sa.Column('status', sa.String(length=20), nullable=False, default='Applied'),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('salary', sa.String(length=100), nullable=True),
        sa.Column('source', sa.String(length=255), nullable=True),
        sa.Column('url', sa.String(length=2048), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('attachments', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('synced_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_applications_company', 'applications', ['company'], unique=False)
    op.create_index('ix_applications_date_applied', 'applications', ['date_applied'], unique=False)
    op.create_index('ix_applications_updated_at', 'applications', ['updated_at'], unique=False)

    # Create backups table
    op.create_table(
        'backups',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('reason', sa.String(length=20), nullable=False, default='manual'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('record_count', sa.Integer(), nullable=False, default=0),
        sa.Column('last_modified', sa.DateTime(), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_backups_created_at', 'backups', ['created_at'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_backups_created_at', table_name='backups')
    op.drop_table('backups')
    op.drop_index('ix_applications_updated_at', table_name='applications')
    op.drop_index('ix_applications_date_applied', table_name='applications')
    op.drop_index('ix_applications_company', table_name='applications')
    op.drop_table('applications')
