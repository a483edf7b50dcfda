"""add categories collection

Revision ID: 7c3f9e2a5b14
Revises: d4e8a1c2b7f0
Create Date: 2026-09-21 16:40:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '7c3f9e2a5b14'
down_revision: Union[str, Sequence[str], None] = 'd4e8a1c2b7f0'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create categories table for user word categories."""
    op.create_table('categories',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('body', sa.JSON(), nullable=False),
        sa.Column('stored_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )


def downgrade() -> None:
    """Drop categories table."""
    op.drop_table('categories')
