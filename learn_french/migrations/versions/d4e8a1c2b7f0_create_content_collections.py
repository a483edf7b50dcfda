"""create content collections and seen_state

Revision ID: d4e8a1c2b7f0
Revises:
Create Date: 2026-09-14 10:12:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'd4e8a1c2b7f0'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

COLLECTIONS = ('words', 'verbs', 'sentences', 'numbers', 'seen_state')


def upgrade() -> None:
    """Create one JSON document table per collection."""
    for name in COLLECTIONS:
        op.create_table(name,
            sa.Column('id', sa.String(), nullable=False),
            sa.Column('body', sa.JSON(), nullable=False),
            sa.Column('stored_at', sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint('id')
        )


def downgrade() -> None:
    """Drop the collection tables."""
    for name in reversed(COLLECTIONS):
        op.drop_table(name)
