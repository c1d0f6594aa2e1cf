"""initial inventory schema

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')


def upgrade() -> None:
    # Create users table
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('personality_mode', sa.String(50), nullable=True, server_default='balanced'),
        sa.Column('user_goal', sa.String(50), nullable=True, server_default='general'),
        sa.Column('llm_provider', sa.String(50), nullable=True),
        sa.Column('llm_api_key', sa.Text(), nullable=True),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    # Create categories table
    categories = op.create_table(
        'categories',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('slug', sa.String(50), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index('ix_categories_slug', 'categories', ['slug'], unique=True)

    # Default vocabulary, "other" is the fallback
    op.bulk_insert(categories, [
        {'slug': 'clothing', 'name': 'Clothing', 'sort_order': 1, 'is_default': False},
        {'slug': 'books', 'name': 'Books', 'sort_order': 2, 'is_default': False},
        {'slug': 'electronics', 'name': 'Electronics', 'sort_order': 3, 'is_default': False},
        {'slug': 'kitchen', 'name': 'Kitchen Items', 'sort_order': 4, 'is_default': False},
        {'slug': 'decor', 'name': 'Decor', 'sort_order': 5, 'is_default': False},
        {'slug': 'furniture', 'name': 'Furniture', 'sort_order': 6, 'is_default': False},
        {'slug': 'toys', 'name': 'Toys', 'sort_order': 7, 'is_default': False},
        {'slug': 'tools', 'name': 'Tools', 'sort_order': 8, 'is_default': False},
        {'slug': 'other', 'name': 'Other', 'sort_order': 99, 'is_default': True},
    ])

    # Create items table
    op.create_table(
        'items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(50), nullable=True),
        sa.Column('last_used_timeframe', sa.String(50), nullable=True),
        sa.Column('item_condition', sa.String(50), nullable=True),
        sa.Column('is_sentimental', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('user_notes', sa.Text(), nullable=True),
        sa.Column('answers', JSON_TYPE, nullable=True),
        sa.Column('recommendation', sa.String(50), nullable=True),
        sa.Column('recommendation_reasoning', sa.Text(), nullable=True),
        sa.Column('decision', sa.String(50), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_items_user_id', 'items', ['user_id'])
    op.create_index('ix_items_category', 'items', ['category'])


def downgrade() -> None:
    op.drop_index('ix_items_category', table_name='items')
    op.drop_index('ix_items_user_id', table_name='items')
    op.drop_table('items')
    op.drop_index('ix_categories_slug', table_name='categories')
    op.drop_table('categories')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
