"""Market suggestion cache

Revision ID: 001_market_suggestions
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001_market_suggestions'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'market_suggestions',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),

        # Cache key (merchant_name NULL = generic category-level entry)
        sa.Column('category', sa.String(50), nullable=False),
        sa.Column('country', sa.String(2), nullable=False),
        sa.Column('merchant_name', sa.String(255), nullable=True),

        # Curated competitor offers (at most 3)
        sa.Column('competitors', postgresql.JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")),

        # Expiry
        sa.Column('last_updated', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('expires_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        sa.CheckConstraint('expires_at > last_updated', name='ck_market_suggestions_expiry'),
    )

    op.create_index('idx_market_suggestions_category_country', 'market_suggestions', ['category', 'country'])
    op.create_index('idx_market_suggestions_expires', 'market_suggestions', ['expires_at'])

    # NULL never equals NULL in a plain unique index: one partial index per key shape
    op.create_index(
        'idx_unique_market_suggestion_null',
        'market_suggestions',
        ['category', 'country'],
        unique=True,
        postgresql_where=sa.text('merchant_name IS NULL'),
    )
    op.create_index(
        'idx_unique_market_suggestion_not_null',
        'market_suggestions',
        ['category', 'country', 'merchant_name'],
        unique=True,
        postgresql_where=sa.text('merchant_name IS NOT NULL'),
    )


def downgrade() -> None:
    op.drop_index('idx_unique_market_suggestion_not_null', table_name='market_suggestions')
    op.drop_index('idx_unique_market_suggestion_null', table_name='market_suggestions')
    op.drop_index('idx_market_suggestions_expires', table_name='market_suggestions')
    op.drop_index('idx_market_suggestions_category_country', table_name='market_suggestions')
    op.drop_table('market_suggestions')
