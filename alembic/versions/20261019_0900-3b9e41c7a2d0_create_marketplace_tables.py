"""create_marketplace_tables

Revision ID: 3b9e41c7a2d0
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3b9e41c7a2d0'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='更新时间'),
    ]


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False, comment='邮箱'),
        sa.Column('first_name', sa.String(length=100), nullable=False, comment='名'),
        sa.Column('last_name', sa.String(length=100), nullable=False, comment='姓'),
        sa.Column('phone', sa.String(length=30), nullable=True, comment='手机号'),
        sa.Column('role', sa.String(length=20), nullable=False, server_default='user', comment='角色: user/admin'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true(), comment='是否激活'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'])

    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('seller_id', sa.Integer(), nullable=False, comment='卖家ID'),
        sa.Column('title', sa.String(length=255), nullable=False, comment='标题'),
        sa.Column('brand', sa.String(length=100), nullable=True, comment='品牌'),
        sa.Column('size', sa.String(length=50), nullable=True, comment='尺码'),
        sa.Column('condition', sa.String(length=50), nullable=True, comment='成色'),
        sa.Column('category', sa.String(length=100), nullable=True, comment='分类'),
        sa.Column('images', sa.JSON(), nullable=False, comment='图片URL列表'),
        sa.Column('selling_price', sa.Integer(), nullable=False, comment='售价'),
        sa.Column('domestic_shipping', sa.Integer(), nullable=False, server_default='0', comment='单件国内运费'),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1', comment='在库数量'),
        sa.Column('sold', sa.Boolean(), nullable=False, server_default=sa.false(), comment='是否已售出'),
        sa.Column('sold_at', sa.DateTime(timezone=True), nullable=True, comment='售出时间'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['seller_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_products_id', 'products', ['id'])
    op.create_index('ix_products_seller_id', 'products', ['seller_id'])
    op.create_index('ix_products_sold', 'products', ['sold'])
    op.create_index('ix_products_seller_sold', 'products', ['seller_id', 'sold'])

    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_number', sa.String(length=40), nullable=False, comment='订单号'),
        sa.Column('buyer_id', sa.Integer(), nullable=False, comment='买家ID'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending', comment='订单状态'),
        sa.Column('subtotal', sa.Integer(), nullable=False, server_default='0', comment='商品小计'),
        sa.Column('total_shipping_cost', sa.Integer(), nullable=False, server_default='0', comment='运费合计'),
        sa.Column('total_service_fee', sa.Integer(), nullable=False, server_default='0', comment='平台服务费合计'),
        sa.Column('total_taxes', sa.Integer(), nullable=False, server_default='0', comment='税费合计'),
        sa.Column('coupon_discount', sa.Integer(), nullable=False, server_default='0', comment='优惠券抵扣'),
        sa.Column('total_amount', sa.Integer(), nullable=False, server_default='0', comment='应付总额'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='NGN', comment='货币'),
        sa.Column('item_count', sa.Integer(), nullable=False, server_default='0', comment='商品件数'),
        sa.Column('seller_count', sa.Integer(), nullable=False, server_default='0', comment='卖家数量'),
        sa.Column('seller_ids', sa.JSON(), nullable=False, comment='卖家ID列表'),
        sa.Column('seller_payouts', sa.JSON(), nullable=False, comment='卖家结算记录'),
        sa.Column('payment_status', sa.String(length=20), nullable=False, server_default='pending', comment='支付状态'),
        sa.Column('payment_method', sa.String(length=20), nullable=True, comment='支付方式'),
        sa.Column('payment_reference', sa.String(length=100), nullable=True, comment='支付流水号'),
        sa.Column('payment_gateway', sa.String(length=30), nullable=True, comment='支付网关'),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True, comment='支付时间'),
        sa.Column('shipping_address', sa.JSON(), nullable=False, comment='收货地址'),
        sa.Column('shipping_method', sa.String(length=50), nullable=True, comment='配送方式'),
        sa.Column('tracking_number', sa.String(length=100), nullable=True, comment='运单号'),
        sa.Column('carrier_name', sa.String(length=100), nullable=True, comment='承运商'),
        sa.Column('estimated_delivery', sa.DateTime(timezone=True), nullable=True),
        sa.Column('shipped_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('processing_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('cancelled_by', sa.Integer(), nullable=True),
        sa.Column('admin_notes', sa.Text(), nullable=True),
        sa.Column('buyer_notes', sa.Text(), nullable=True),
        sa.Column('status_history', sa.JSON(), nullable=False, comment='状态变更记录'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['buyer_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_orders_id', 'orders', ['id'])
    op.create_index('ix_orders_order_number', 'orders', ['order_number'], unique=True)
    op.create_index('ix_orders_buyer_id', 'orders', ['buyer_id'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_payment_status', 'orders', ['payment_status'])
    op.create_index('ix_orders_payment_reference', 'orders', ['payment_reference'])
    op.create_index('ix_orders_created_at', 'orders', ['created_at'])
    op.create_index('ix_orders_buyer_status_created', 'orders', ['buyer_id', 'status', 'created_at'])
    op.create_index('ix_orders_payment_status_status', 'orders', ['payment_status', 'status'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('seller_id', sa.Integer(), nullable=False),
        sa.Column('product_title', sa.String(length=255), nullable=False),
        sa.Column('product_image', sa.String(length=500), nullable=True),
        sa.Column('product_brand', sa.String(length=100), nullable=True),
        sa.Column('product_size', sa.String(length=50), nullable=True),
        sa.Column('product_condition', sa.String(length=50), nullable=True),
        sa.Column('product_category', sa.String(length=100), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Integer(), nullable=False),
        sa.Column('total_price', sa.Integer(), nullable=False),
        sa.Column('shipping_cost', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('item_service_fee', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('item_taxes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('item_total', sa.Integer(), nullable=False),
        sa.Column('seller_name', sa.String(length=200), nullable=True),
        sa.Column('seller_email', sa.String(length=255), nullable=True),
        sa.Column('seller_phone', sa.String(length=30), nullable=True),
        sa.Column('seller_revenue', sa.Integer(), nullable=False),
        sa.Column('seller_paid', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('seller_payout_reference', sa.String(length=100), nullable=True),
        sa.Column('seller_paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('item_status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('tracking_number', sa.String(length=100), nullable=True),
        sa.Column('carrier_name', sa.String(length=100), nullable=True),
        sa.Column('shipped_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('available', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('availability_message', sa.String(length=255), nullable=True),
        sa.Column('inventory_applied', sa.Boolean(), nullable=False, server_default=sa.false(), comment='是否已扣减库存'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['seller_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_order_items_id', 'order_items', ['id'])
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])
    op.create_index('ix_order_items_product_id', 'order_items', ['product_id'])
    op.create_index('ix_order_items_seller_id', 'order_items', ['seller_id'])
    op.create_index('ix_order_items_seller_paid', 'order_items', ['seller_paid'])
    op.create_index('ix_order_items_seller_id_paid', 'order_items', ['seller_id', 'seller_paid'])
    op.create_index('ix_order_items_item_status', 'order_items', ['item_status'])
    op.create_index('ix_order_items_order_status', 'order_items', ['order_id', 'item_status'])

    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('reference', sa.String(length=100), nullable=False, comment='支付流水号'),
        sa.Column('order_id', sa.Integer(), nullable=False, comment='订单ID'),
        sa.Column('user_id', sa.Integer(), nullable=False, comment='付款用户ID'),
        sa.Column('gateway', sa.String(length=30), nullable=False, comment='支付网关: paystack'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending', comment='支付状态: pending/completed/failed/refunded'),
        sa.Column('method', sa.String(length=20), nullable=True, comment='支付方式: card/bank_transfer/wallet'),
        sa.Column('amount', sa.Integer(), nullable=False, comment='支付金额'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='NGN', comment='货币代码 ISO-4217'),
        sa.Column('fees', sa.Numeric(precision=15, scale=2), nullable=False, server_default='0', comment='网关手续费'),
        sa.Column('net_amount', sa.Numeric(precision=15, scale=2), nullable=True, comment='扣除手续费后的金额'),
        sa.Column('transaction_id', sa.String(length=100), nullable=True, comment='网关交易ID'),
        sa.Column('gateway_reference', sa.String(length=100), nullable=True, comment='网关流水号'),
        sa.Column('authorization_url', sa.String(length=500), nullable=True, comment='支付跳转地址'),
        sa.Column('access_code', sa.String(length=100), nullable=True),
        sa.Column('gateway_response', sa.String(length=255), nullable=True),
        sa.Column('failure_reason', sa.Text(), nullable=True, comment='失败原因'),
        sa.Column('callback_url', sa.String(length=500), nullable=True, comment='回调地址'),
        sa.Column('customer', sa.JSON(), nullable=True, comment='网关客户信息快照'),
        sa.Column('authorization', sa.JSON(), nullable=True, comment='卡授权信息快照'),
        sa.Column('gateway_metadata', sa.JSON(), nullable=True, comment='网关原始数据'),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('risk_action', sa.String(length=50), nullable=True),
        sa.Column('refunded', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('refunded_amount', sa.Integer(), nullable=True),
        sa.Column('refunded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('refund_reason', sa.Text(), nullable=True),
        sa.Column('refund_reference', sa.String(length=100), nullable=True),
        sa.Column('initiated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True, comment='支付完成时间'),
        sa.Column('failed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_payments_id', 'payments', ['id'])
    op.create_index('ix_payments_reference', 'payments', ['reference'], unique=True)
    op.create_index('ix_payments_order_id', 'payments', ['order_id'])
    op.create_index('ix_payments_user_id', 'payments', ['user_id'])
    op.create_index('ix_payments_gateway', 'payments', ['gateway'])
    op.create_index('ix_payments_status', 'payments', ['status'])
    op.create_index('ix_payments_transaction_id', 'payments', ['transaction_id'])
    op.create_index('ix_payments_gateway_reference', 'payments', ['gateway_reference'])
    op.create_index('ix_payments_created_at', 'payments', ['created_at'])
    op.create_index('ix_payments_user_status_created', 'payments', ['user_id', 'status', 'created_at'])
    op.create_index('ix_payments_order_status', 'payments', ['order_id', 'status'])
    op.create_index('ix_payments_gateway_status', 'payments', ['gateway', 'status'])


def downgrade() -> None:
    # 按外键依赖的逆序删除；索引随表一起删除
    op.drop_table('payments')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('products')
    op.drop_table('users')
