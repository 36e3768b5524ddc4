"""Create albums, photos, orders, order_items and download tracking tables.

Revision ID: create_order_tables
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = 'create_order_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'albums',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('photographer_id', sa.String(64), nullable=False, index=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('price_per_photo', sa.Numeric(12, 2), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'photos',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('album_id', sa.Uuid(),
                  sa.ForeignKey('albums.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('original_file_path', sa.String(500), nullable=False),
        sa.Column('watermarked_file_path', sa.String(500), nullable=False),
        sa.Column('student_code', sa.String(50), nullable=True),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'orders',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('customer_email', sa.String(255), nullable=False, index=True),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('photographer_id', sa.String(64), nullable=True, index=True),
        sa.Column('mercado_pago_payment_id', sa.String(64), nullable=True),
        sa.Column('download_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'order_items',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('order_id', sa.Uuid(),
                  sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('photo_id', sa.Uuid(),
                  sa.ForeignKey('photos.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('price_at_purchase', sa.Numeric(12, 2), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
    )
    op.create_index('ix_order_items_order_photo', 'order_items', ['order_id', 'photo_id'])

    # One counter per (order, photo); the unique constraint backs the
    # insert-or-increment in the download gate
    op.create_table(
        'photo_downloads',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('order_id', sa.Uuid(),
                  sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('photo_id', sa.Uuid(), nullable=False),
        sa.Column('download_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('order_id', 'photo_id', name='uq_photo_downloads_order_photo'),
        sa.CheckConstraint('download_count >= 0', name='ck_photo_downloads_count'),
    )

    op.create_table(
        'download_access',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('order_id', sa.Uuid(),
                  sa.ForeignKey('orders.id', ondelete='CASCADE'),
                  nullable=False, unique=True),
        sa.Column('customer_email', sa.String(255), nullable=False),
        sa.Column('download_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table('download_access')
    op.drop_table('photo_downloads')
    op.drop_index('ix_order_items_order_photo', table_name='order_items')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('photos')
    op.drop_table('albums')
