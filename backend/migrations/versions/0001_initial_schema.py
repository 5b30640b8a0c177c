"""Initial marketplace schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-18

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = '0001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
    ]


def upgrade():
    op.create_table('cities',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.false(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name')
    )

    op.create_table('users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('phone_number', sa.String(length=20), nullable=False),
        sa.Column('name', sa.String(length=150), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('password_hash', sa.String(length=255), nullable=True),
        sa.Column('user_type', sa.String(length=20), server_default='RECEIVER', nullable=False),
        sa.Column('is_admin', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('balance', sa.Numeric(14, 4), server_default='0', nullable=False),
        sa.Column('rating', sa.Float(), server_default='0', nullable=False),
        sa.Column('rating_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('fcm_token', sa.Text(), nullable=True),
        sa.Column('profile_image', sa.String(length=500), nullable=True),
        sa.Column('bio', sa.Text(), nullable=True),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('company_name', sa.String(length=200), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('response_time', sa.String(length=50), nullable=True),
        sa.Column('completed_jobs', sa.Integer(), server_default='0', nullable=False),
        sa.Column('city_id', sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("user_type IN ('PROVIDER', 'RECEIVER')", name='user_type_check'),
        sa.CheckConstraint('rating_count >= 0', name='rating_count_non_negative_check'),
        sa.ForeignKeyConstraint(['city_id'], ['cities.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email')
    )
    op.create_index('ix_users_phone_number', 'users', ['phone_number'], unique=True)

    op.create_table('categories',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('icon', sa.String(length=255), nullable=True),
        sa.Column('parent_id', sa.Uuid(), nullable=True),
        sa.Column('commission_rate', sa.Numeric(8, 2), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('questions', postgresql.JSONB(), nullable=True),
        sa.Column('rank', sa.Integer(), server_default='0', nullable=False),
        *_timestamps(),
        sa.CheckConstraint('parent_id IS NULL OR parent_id != id', name='category_not_own_parent_check'),
        sa.ForeignKeyConstraint(['parent_id'], ['categories.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name')
    )
    op.create_index('ix_categories_parent_id', 'categories', ['parent_id'])

    op.create_table('user_categories',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('category_id', sa.Uuid(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'category_id', name='unique_user_category')
    )
    op.create_index('ix_user_categories_category_id', 'user_categories', ['category_id'])

    op.create_table('demands',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('demand_number', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('category_id', sa.Uuid(), nullable=False),
        sa.Column('city_id', sa.Uuid(), nullable=True),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=20), server_default='ACTIVE', nullable=False),
        sa.Column('is_approved', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('is_urgent', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('county', sa.String(length=100), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.Column('images', postgresql.JSONB(), nullable=True),
        sa.Column('people_count', sa.Integer(), nullable=True),
        sa.Column('event_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('event_time', sa.String(length=20), nullable=True),
        sa.Column('deadline', sa.DateTime(timezone=True), nullable=True),
        sa.Column('question_responses', postgresql.JSONB(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("status IN ('ACTIVE', 'CLOSED', 'COMPLETED', 'CANCELLED')", name='demand_status_check'),
        sa.CheckConstraint('demand_number >= 1000000 AND demand_number <= 9999999', name='demand_number_range_check'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id']),
        sa.ForeignKeyConstraint(['city_id'], ['cities.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('demand_number')
    )
    op.create_index('ix_demands_user_id', 'demands', ['user_id'])
    op.create_index('ix_demands_category_approved', 'demands', ['category_id', 'is_approved'])

    op.create_table('offers',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('demand_id', sa.Uuid(), nullable=False),
        sa.Column('provider_id', sa.Uuid(), nullable=False),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('estimated_time', sa.String(length=100), nullable=False),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=20), server_default='PENDING', nullable=False),
        sa.Column('provider_completed', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('is_approved', sa.Boolean(), server_default=sa.true(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('price >= 0', name='offer_price_non_negative_check'),
        sa.CheckConstraint("status IN ('PENDING', 'ACCEPTED', 'REJECTED', 'COMPLETED')", name='offer_status_check'),
        sa.ForeignKeyConstraint(['demand_id'], ['demands.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['provider_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('demand_id', 'provider_id', name='unique_offer_per_provider_demand')
    )
    op.create_index('ix_offers_demand_id', 'offers', ['demand_id'])
    op.create_index('ix_offers_provider_id', 'offers', ['provider_id'])

    op.create_table('notifications',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('type', sa.String(length=50), nullable=False),
        sa.Column('data', postgresql.JSONB(), nullable=True),
        sa.Column('is_read', sa.Boolean(), server_default=sa.false(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])

    op.create_table('reviews',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('reviewer_id', sa.Uuid(), nullable=False),
        sa.Column('reviewed_user_id', sa.Uuid(), nullable=False),
        sa.Column('offer_id', sa.Uuid(), nullable=True),
        sa.Column('rating', sa.Integer(), nullable=False),
        sa.Column('comment', sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('rating >= 1 AND rating <= 5', name='rating_range_check'),
        sa.CheckConstraint('reviewer_id != reviewed_user_id', name='no_self_review_check'),
        sa.ForeignKeyConstraint(['reviewer_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['reviewed_user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['offer_id'], ['offers.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('reviewer_id', 'offer_id', name='unique_review_per_offer')
    )
    op.create_index('ix_reviews_reviewed_user_id', 'reviews', ['reviewed_user_id'])
    op.create_index(
        'unique_review_per_user_pair',
        'reviews',
        ['reviewer_id', 'reviewed_user_id'],
        unique=True,
        postgresql_where=sa.text('offer_id IS NULL')
    )

    op.create_table('charity_activities',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('provider_id', sa.Uuid(), nullable=False),
        sa.Column('category_id', sa.Uuid(), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('latitude', sa.Float(), nullable=False),
        sa.Column('longitude', sa.Float(), nullable=False),
        sa.Column('address', sa.String(length=500), nullable=False),
        sa.Column('estimated_end_time', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('latitude >= -90 AND latitude <= 90', name='latitude_range_check'),
        sa.CheckConstraint('longitude >= -180 AND longitude <= 180', name='longitude_range_check'),
        sa.ForeignKeyConstraint(['provider_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_charity_activities_provider_id', 'charity_activities', ['provider_id'])


def downgrade():
    op.drop_table('charity_activities')
    op.drop_index('unique_review_per_user_pair', table_name='reviews')
    op.drop_table('reviews')
    op.drop_table('notifications')
    op.drop_table('offers')
    op.drop_table('demands')
    op.drop_table('user_categories')
    op.drop_table('categories')
    op.drop_table('users')
    op.drop_table('cities')
