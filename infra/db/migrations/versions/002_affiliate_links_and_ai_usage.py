"""Affiliate links and AI usage ledger

Revision ID: 002_affiliate_links_and_ai_usage
Revises: 001_market_suggestions
Create Date: 2026-10-19 14:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '002_affiliate_links_and_ai_usage'
down_revision = '001_market_suggestions'
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'affiliate_links',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('category', sa.String(50), nullable=False),
        sa.Column('country', sa.String(2), nullable=False),
        sa.Column('provider_name', sa.String(255), nullable=False),
        sa.Column('affiliate_url', sa.Text, nullable=False),
        sa.Column('commission_rate', sa.Numeric(5, 2), nullable=True),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.text('true')),
        sa.Column('priority', sa.Integer, nullable=False, server_default=sa.text('0')),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )

    op.create_index('idx_affiliate_category_country', 'affiliate_links', ['category', 'country'])
    op.create_index('idx_affiliate_active', 'affiliate_links', ['is_active'])
    op.create_index(
        'idx_unique_affiliate_link',
        'affiliate_links',
        ['category', 'country', 'provider_name'],
        unique=True,
    )

    op.create_table(
        'ai_api_usage',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('request_type', sa.String(50), nullable=False),  # market_analysis, quick_lookup, bulk_analysis
        sa.Column('category', sa.String(50), nullable=True),       # NULL for batch records
        sa.Column('country', sa.String(2), nullable=True),
        sa.Column('input_tokens', sa.Integer, nullable=False, server_default=sa.text('0')),
        sa.Column('output_tokens', sa.Integer, nullable=False, server_default=sa.text('0')),
        sa.Column('total_tokens', sa.Integer, nullable=False, server_default=sa.text('0')),
        sa.Column('cost_usd', sa.Numeric(10, 6), nullable=False, server_default=sa.text('0')),
        sa.Column('cache_hit', sa.Boolean, nullable=False, server_default=sa.text('false')),
        sa.Column('duration_ms', sa.Integer, nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )

    op.create_index('idx_ai_usage_type', 'ai_api_usage', ['request_type'])
    op.create_index('idx_ai_usage_created', 'ai_api_usage', ['created_at'])
    op.create_index('idx_ai_usage_cache', 'ai_api_usage', ['cache_hit'])

    # Seed partner links (FR)
    op.execute("""
        INSERT INTO affiliate_links (category, country, provider_name, affiliate_url, commission_rate, priority) VALUES
        ('INTERNET', 'FR', 'Ariase', 'https://www.ariase.com/box', 5.00, 1),
        ('MOBILE', 'FR', 'Ariase', 'https://www.ariase.com/mobile', 5.00, 1),
        ('ENERGY', 'FR', 'Papernest', 'https://www.papernest.com/energie/', 8.00, 1),
        ('LOAN', 'FR', 'Meilleurtaux', 'https://www.meilleurtaux.com/', 10.00, 1)
        ON CONFLICT DO NOTHING
    """)


def downgrade() -> None:
    op.drop_index('idx_ai_usage_cache', table_name='ai_api_usage')
    op.drop_index('idx_ai_usage_created', table_name='ai_api_usage')
    op.drop_index('idx_ai_usage_type', table_name='ai_api_usage')
    op.drop_table('ai_api_usage')

    op.drop_index('idx_unique_affiliate_link', table_name='affiliate_links')
    op.drop_index('idx_affiliate_active', table_name='affiliate_links')
    op.drop_index('idx_affiliate_category_country', table_name='affiliate_links')
    op.drop_table('affiliate_links')
