"""
Client-side local storage

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18 10:00:00
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # key/value snapshot of the signed-in user and auth session
    op.create_table(
        'local_storage',
        sa.Column('key', sa.String(length=128), primary_key=True, nullable=False),
        sa.Column('value', sa.JSON(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )


def downgrade() -> None:
    op.drop_table('local_storage')
