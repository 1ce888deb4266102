"""Assistant embedding cache table

Revision ID: 001
Revises:
Create Date: 2026-10-19

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
    """Create the assistant_embedding cache table."""
    op.create_table(
        'assistant_embedding',
        sa.Column('uid', sa.BigInteger(), nullable=False),
        sa.Column('transaction_id', sa.BigInteger(), nullable=False),
        sa.Column('embedding_model', sa.String(128), nullable=False),
        sa.Column('content_hash', sa.String(64), nullable=False),
        sa.Column('vector_data', sa.Text(), nullable=False),
        sa.Column('created_unix_time', sa.BigInteger(), nullable=False),
        sa.Column('updated_unix_time', sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint('uid', 'transaction_id', 'embedding_model'),
    )

    op.create_index(
        'idx_assistant_embedding_uid_model_updated',
        'assistant_embedding',
        ['uid', 'embedding_model', 'updated_unix_time'],
    )


def downgrade() -> None:
    """Drop the assistant_embedding cache table."""
    op.drop_index('idx_assistant_embedding_uid_model_updated', table_name='assistant_embedding')
    op.drop_table('assistant_embedding')
