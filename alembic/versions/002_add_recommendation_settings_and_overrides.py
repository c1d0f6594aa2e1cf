"""Add system_settings and recommendation_overrides tables.

Revision ID: 002
Revises: 001
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '002'
down_revision = '001'
branch_labels = None
depends_on = None


def upgrade() -> None:
    settings_table = op.create_table(
        'system_settings',
        sa.Column('setting_key', sa.String(100), primary_key=True),
        sa.Column('setting_value', sa.Text(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Provider defaults; empty keys fall through to the environment
    op.bulk_insert(settings_table, [
        {'setting_key': 'llm_provider', 'setting_value': 'anthropic', 'version': 1},
        {'setting_key': 'anthropic_api_key', 'setting_value': '', 'version': 1},
        {'setting_key': 'openai_api_key', 'setting_value': '', 'version': 1},
        {'setting_key': 'google_api_key', 'setting_value': '', 'version': 1},
        {'setting_key': 'ollama_base_url', 'setting_value': 'http://localhost:11434', 'version': 1},
        {'setting_key': 'api_monthly_cost_limit', 'setting_value': '50', 'version': 1},
        {'setting_key': 'api_per_user_monthly_limit', 'setting_value': '10', 'version': 1},
    ])

    op.create_table(
        'recommendation_overrides',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('item_id', sa.Integer(), sa.ForeignKey('items.id', ondelete='CASCADE'), nullable=False),
        sa.Column('item_category', sa.String(50), nullable=True),
        sa.Column('ai_suggestion', sa.String(50), nullable=False),
        sa.Column('user_choice', sa.String(50), nullable=False),
        sa.Column('override_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_recommendation_overrides_user_id', 'recommendation_overrides', ['user_id'])
    op.create_index('ix_recommendation_overrides_item_id', 'recommendation_overrides', ['item_id'])
    op.create_index('ix_recommendation_overrides_created_at', 'recommendation_overrides', ['created_at'])


def downgrade() -> None:
    op.drop_index('ix_recommendation_overrides_created_at', table_name='recommendation_overrides')
    op.drop_index('ix_recommendation_overrides_item_id', table_name='recommendation_overrides')
    op.drop_index('ix_recommendation_overrides_user_id', table_name='recommendation_overrides')
    op.drop_table('recommendation_overrides')
    op.drop_table('system_settings')
