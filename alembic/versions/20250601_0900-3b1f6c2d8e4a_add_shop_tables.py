"""add_shop_tables

Revision ID: 3b1f6c2d8e4a
Revises:
Create Date: 2025-06-01 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3b1f6c2d8e4a'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'shop_products',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False, comment='商品名称'),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', sa.Numeric(precision=10, scale=2), nullable=False, comment='单价（元）'),
        sa.Column('type', sa.String(length=30), nullable=False, server_default='serial_key', comment='serial_key/membership/other'),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='-1', comment='-1 表示不限量（不走卡密池）'),
        sa.Column('duration', sa.Integer(), nullable=True, comment='会员时长（天）'),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default='true', comment='是否上架'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        comment='商品表'
    )
    op.create_index('ix_shop_products_id', 'shop_products', ['id'], unique=False)

    op.create_table(
        'shop_orders',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_no', sa.String(length=64), nullable=False, comment='商户订单号'),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False, comment='用户ID'),
        sa.Column('amount', sa.Numeric(precision=10, scale=2), nullable=False, comment='订单金额（元）'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending', comment='pending/paid/completed/cancelled'),
        sa.Column('payment_method', sa.String(length=50), nullable=True, comment='支付方式标签，如 epay_alipay'),
        sa.Column('product_key', sa.String(length=255), nullable=True, comment='已发放的卡密'),
        sa.Column('remark', sa.Text(), nullable=True),
        sa.Column('payment_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['shop_products.id']),
        sa.PrimaryKeyConstraint('id'),
        comment='订单表'
    )
    op.create_index('ix_shop_orders_id', 'shop_orders', ['id'], unique=False)
    op.create_index('ix_shop_orders_order_no', 'shop_orders', ['order_no'], unique=True)
    op.create_index('ix_shop_orders_product_id', 'shop_orders', ['product_id'], unique=False)
    op.create_index('ix_shop_orders_user_id', 'shop_orders', ['user_id'], unique=False)
    op.create_index('ix_shop_orders_created_at', 'shop_orders', ['created_at'], unique=False)
    op.create_index('idx_shop_orders_user_status', 'shop_orders', ['user_id', 'status'], unique=False)

    op.create_table(
        'shop_product_keys',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('key', sa.String(length=255), nullable=False, comment='卡密'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='available', comment='available/sold/used'),
        sa.Column('order_id', sa.Integer(), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('sold_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['shop_products.id']),
        sa.ForeignKeyConstraint(['order_id'], ['shop_orders.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('key'),
        comment='卡密表，available → sold 只允许发生一次'
    )
    op.create_index('ix_shop_product_keys_id', 'shop_product_keys', ['id'], unique=False)
    op.create_index('ix_shop_product_keys_order_id', 'shop_product_keys', ['order_id'], unique=False)
    op.create_index('ix_shop_product_keys_user_id', 'shop_product_keys', ['user_id'], unique=False)
    op.create_index('idx_shop_product_keys_product_status', 'shop_product_keys', ['product_id', 'status'], unique=False)

    op.create_table(
        'shop_memberships',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False, comment='用户ID'),
        sa.Column('type', sa.String(length=20), nullable=False, server_default='monthly', comment='monthly/yearly/lifetime'),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id'),
        comment='会员表（每个用户一条）'
    )
    op.create_index('ix_shop_memberships_id', 'shop_memberships', ['id'], unique=False)

    op.create_table(
        'payment_channels',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('code', sa.String(length=30), nullable=False, comment='wechat/epay/xunhupay/test'),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('config', sa.JSON(), nullable=True, comment='厂商配置（商户号、密钥等）'),
        sa.Column('sort', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code'),
        comment='支付通道配置（后台维护）'
    )
    op.create_index('ix_payment_channels_id', 'payment_channels', ['id'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_payment_channels_id', table_name='payment_channels')
    op.drop_table('payment_channels')

    op.drop_index('ix_shop_memberships_id', table_name='shop_memberships')
    op.drop_table('shop_memberships')

    op.drop_index('idx_shop_product_keys_product_status', table_name='shop_product_keys')
    op.drop_index('ix_shop_product_keys_user_id', table_name='shop_product_keys')
    op.drop_index('ix_shop_product_keys_order_id', table_name='shop_product_keys')
    op.drop_index('ix_shop_product_keys_id', table_name='shop_product_keys')
    op.drop_table('shop_product_keys')

    op.drop_index('idx_shop_orders_user_status', table_name='shop_orders')
    op.drop_index('ix_shop_orders_created_at', table_name='shop_orders')
    op.drop_index('ix_shop_orders_user_id', table_name='shop_orders')
    op.drop_index('ix_shop_orders_product_id', table_name='shop_orders')
    op.drop_index('ix_shop_orders_order_no', table_name='shop_orders')
    op.drop_index('ix_shop_orders_id', table_name='shop_orders')
    op.drop_table('shop_orders')

    op.drop_index('ix_shop_products_id', table_name='shop_products')
    op.drop_table('shop_products')
