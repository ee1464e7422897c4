"""create_nft_tables

Revision ID: 2026_10_17_120000
Revises:
Create Date: 2026-10-17 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '2026_10_17_120000'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute('CREATE SCHEMA IF NOT EXISTS domain')

    op.create_table(
        'nft_collections',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=True),
        sa.Column('symbol', sa.Text(), nullable=True),
        sa.Column('total_supply', sa.Numeric(78, 0), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('id'),
        schema='domain',
    )
    op.create_table(
        'nft_owners',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('balance', sa.Numeric(78, 0), nullable=True),
        sa.Column(
            'collection_balances',
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.PrimaryKeyConstraint('id'),
        schema='domain',
    )
    op.create_table(
        'nft_tokens',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('token_id', sa.Numeric(78, 0), nullable=False),
        sa.Column('collection_id', sa.Text(), sa.ForeignKey('domain.nft_collections.id'), nullable=False),
        sa.Column('owner_id', sa.Text(), sa.ForeignKey('domain.nft_owners.id'), nullable=False),
        sa.Column('uri', sa.Text(), nullable=False, server_default=''),
        sa.Column('old_uri', sa.Text(), nullable=False, server_default=''),
        sa.Column('image_uri', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        schema='domain',
    )
    op.create_index('ix_nft_tokens_uri', 'nft_tokens', ['uri'], schema='domain')
    op.create_index('ix_nft_tokens_owner', 'nft_tokens', ['owner_id'], schema='domain')
    op.create_index(
        'ix_nft_tokens_missing_image',
        'nft_tokens',
        ['id'],
        schema='domain',
        postgresql_where=sa.text('image_uri IS NULL'),
    )
    op.create_table(
        'nft_transfers',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('from_id', sa.Text(), sa.ForeignKey('domain.nft_owners.id'), nullable=False),
        sa.Column('to_id', sa.Text(), sa.ForeignKey('domain.nft_owners.id'), nullable=False),
        sa.Column('token_id', sa.Text(), sa.ForeignKey('domain.nft_tokens.id'), nullable=False),
        sa.Column('block_number', sa.BigInteger(), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('transaction_hash', sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        schema='domain',
    )
    op.create_index('ix_nft_transfers_block', 'nft_transfers', ['block_number'], schema='domain')
    op.create_index('ix_nft_transfers_token', 'nft_transfers', ['token_id'], schema='domain')
    op.create_index('ix_nft_transfers_tx', 'nft_transfers', ['transaction_hash'], schema='domain')


def downgrade() -> None:
    op.drop_table('nft_transfers', schema='domain')
    op.drop_table('nft_tokens', schema='domain')
    op.drop_table('nft_owners', schema='domain')
    op.drop_table('nft_collections', schema='domain')
