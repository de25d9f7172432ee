"""Create order pricing and cashback ledger tables

Revision ID: 001_order_pricing_cashback
Revises:
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

# revision identifiers
revision = '001_order_pricing_cashback'
down_revision = None
branch_labels = None
depends_on = None


def _id_column():
    return sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()'))


def _created_at():
    return sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False)


def _updated_at():
    return sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False)


def upgrade():
    """Create catalog reference, order and cashback tables"""

    # ====================
    # PRODUCTS (published by the catalog service)
    # ====================
    op.create_table(
        'products',
        _id_column(),
        sa.Column('supplier_org_id', UUID(as_uuid=True), nullable=False),
        sa.Column('category_id', UUID(as_uuid=True), nullable=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('base_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('available_quantity', sa.Integer, nullable=True, comment='NULL when stock is not tracked'),
        sa.Column('active', sa.Boolean, server_default='true', nullable=False),
        _created_at(),
    )
    op.create_index('ix_products_supplier_org_id', 'products', ['supplier_org_id'])
    op.create_index('ix_products_category_id', 'products', ['category_id'])

    # ====================
    # PAYMENT CONDITIONS
    # ====================
    op.create_table(
        'payment_conditions',
        _id_column(),
        sa.Column('supplier_org_id', UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(200), nullable=True),
        sa.Column('payment_term_days', sa.Integer, server_default='0', nullable=False),
        sa.Column('payment_method', sa.String(50), nullable=False,
                  comment='BOLETO, PIX, CREDIT_CARD, BANK_TRANSFER, ...'),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('active', sa.Boolean, server_default='true', nullable=False),
        _created_at(),
        sa.CheckConstraint('payment_term_days >= 0', name='ck_payment_condition_term_non_negative'),
    )
    op.create_index('ix_payment_conditions_supplier_org_id', 'payment_conditions', ['supplier_org_id'])

    # ====================
    # SUPPLIER STATE CONDITIONS
    # ====================
    op.create_table(
        'supplier_state_conditions',
        _id_column(),
        sa.Column('supplier_org_id', UUID(as_uuid=True), nullable=False),
        sa.Column('state', sa.String(2), nullable=False, comment='2-letter region code'),
        sa.Column('cashback_percent', sa.Numeric(5, 2), nullable=True),
        sa.Column('payment_term_days', sa.Integer, nullable=True),
        sa.Column('unit_price_adjustment', sa.Numeric(12, 2), nullable=True, comment='Signed per-unit price delta'),
        sa.Column('effective_from', sa.DateTime(timezone=True), nullable=True),
        sa.Column('effective_to', sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.UniqueConstraint('supplier_org_id', 'state', name='uq_supplier_state_condition'),
        sa.CheckConstraint(
            'cashback_percent IS NULL OR (cashback_percent >= 0 AND cashback_percent <= 100)',
            name='ck_supplier_state_cashback_range'
        ),
        sa.CheckConstraint(
            'payment_term_days IS NULL OR payment_term_days >= 0',
            name='ck_supplier_state_term_non_negative'
        ),
    )

    # ====================
    # CAMPAIGNS
    # ====================
    op.create_table(
        'campaigns',
        _id_column(),
        sa.Column('supplier_org_id', UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('type', sa.String(50), nullable=False, comment='CASHBACK, GIFT'),
        sa.Column('scope', sa.String(50), server_default='ALL', nullable=False, comment='ALL, CATEGORY, PRODUCT'),
        sa.Column('min_total', sa.Numeric(12, 2), nullable=True),
        sa.Column('min_quantity', sa.Integer, nullable=True),
        sa.Column('cashback_percent', sa.Numeric(5, 2), nullable=True),
        sa.Column('gift_product_id', UUID(as_uuid=True),
                  sa.ForeignKey('products.id', ondelete='SET NULL'), nullable=True),
        sa.Column('category_id', UUID(as_uuid=True), nullable=True),
        sa.Column('start_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('end_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('active', sa.Boolean, server_default='true', nullable=False),
        _created_at(),
        sa.CheckConstraint(
            'end_at IS NULL OR start_at IS NULL OR end_at > start_at',
            name='ck_campaign_window_order'
        ),
        sa.CheckConstraint(
            "type <> 'CASHBACK' OR (cashback_percent IS NOT NULL "
            "AND cashback_percent > 0 AND cashback_percent <= 100)",
            name='ck_campaign_cashback_percent'
        ),
        sa.CheckConstraint("type <> 'GIFT' OR gift_product_id IS NOT NULL", name='ck_campaign_gift_product'),
        sa.CheckConstraint("scope <> 'CATEGORY' OR category_id IS NOT NULL", name='ck_campaign_category'),
        sa.CheckConstraint('min_total IS NULL OR min_total >= 0', name='ck_campaign_min_total'),
        sa.CheckConstraint('min_quantity IS NULL OR min_quantity >= 0', name='ck_campaign_min_quantity'),
    )
    op.create_index('ix_campaign_supplier_active', 'campaigns', ['supplier_org_id', 'active'])

    op.create_table(
        'campaign_products',
        sa.Column('campaign_id', UUID(as_uuid=True),
                  sa.ForeignKey('campaigns.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('product_id', UUID(as_uuid=True),
                  sa.ForeignKey('products.id', ondelete='CASCADE'), primary_key=True),
    )

    # ====================
    # ORDERS
    # ====================
    op.create_table(
        'orders',
        _id_column(),
        sa.Column('store_org_id', UUID(as_uuid=True), nullable=False),
        sa.Column('supplier_org_id', UUID(as_uuid=True), nullable=False),
        sa.Column('status', sa.String(50), server_default='PLACED', nullable=False,
                  comment='DRAFT, PENDING, PLACED, CONFIRMED, SEPARATED, SHIPPED, DELIVERED, CANCELLED, REJECTED'),
        sa.Column('placed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('shipping_address_id', UUID(as_uuid=True), nullable=True),
        sa.Column('subtotal_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('shipping_cost', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('adjustments', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('total_cashback', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('cashback_used', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('applied_supplier_state_condition_id', UUID(as_uuid=True),
                  sa.ForeignKey('supplier_state_conditions.id', ondelete='SET NULL'), nullable=True),
        sa.Column('payment_condition_id', UUID(as_uuid=True),
                  sa.ForeignKey('payment_conditions.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_by', UUID(as_uuid=True), nullable=True),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint('subtotal_amount >= 0', name='ck_order_subtotal_non_negative'),
        sa.CheckConstraint('shipping_cost >= 0', name='ck_order_shipping_non_negative'),
        sa.CheckConstraint('total_cashback >= 0', name='ck_order_cashback_non_negative'),
        sa.CheckConstraint('cashback_used >= 0', name='ck_order_cashback_used_non_negative'),
    )
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_placed_at', 'orders', ['placed_at'])
    op.create_index('ix_orders_created_at', 'orders', ['created_at'])
    op.create_index('ix_order_status_created', 'orders', ['status', 'created_at'])
    op.create_index('ix_order_store_created', 'orders', ['store_org_id', 'created_at'])
    op.create_index('ix_order_supplier_created', 'orders', ['supplier_org_id', 'created_at'])

    op.create_table(
        'order_items',
        _id_column(),
        sa.Column('order_id', UUID(as_uuid=True), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', UUID(as_uuid=True), sa.ForeignKey('products.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('position', sa.Integer, server_default='0', nullable=False),
        sa.Column('product_name_snapshot', sa.String(255), nullable=False),
        sa.Column('quantity', sa.Integer, server_default='1', nullable=False),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('unit_price_adjusted', sa.Numeric(12, 2), nullable=False),
        sa.Column('total_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('applied_cashback_amount', sa.Numeric(12, 2), server_default='0', nullable=False),
        _created_at(),
        sa.CheckConstraint('quantity >= 1', name='ck_order_item_quantity_positive'),
        sa.CheckConstraint('unit_price > 0', name='ck_order_item_unit_price_positive'),
        sa.CheckConstraint('unit_price_adjusted > 0', name='ck_order_item_adjusted_price_positive'),
        sa.CheckConstraint('total_price > 0', name='ck_order_item_total_positive'),
        sa.CheckConstraint('applied_cashback_amount >= 0', name='ck_order_item_cashback_non_negative'),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])

    op.create_table(
        'order_status_history',
        _id_column(),
        sa.Column('order_id', UUID(as_uuid=True), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('previous_status', sa.String(50), nullable=True, comment='NULL only for the creation record'),
        sa.Column('new_status', sa.String(50), nullable=False),
        sa.Column('changed_by', UUID(as_uuid=True), nullable=True),
        sa.Column('note', sa.Text, nullable=True),
        _created_at(),
    )
    op.create_index('ix_order_status_history_order_created', 'order_status_history', ['order_id', 'created_at'])

    # ====================
    # CASHBACK WALLETS & LEDGER
    # ====================
    op.create_table(
        'cashback_wallets',
        _id_column(),
        sa.Column('organization_id', UUID(as_uuid=True), nullable=False, comment='One wallet per organization'),
        sa.Column('available_balance', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('total_earned', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('total_used', sa.Numeric(12, 2), server_default='0', nullable=False),
        _created_at(),
        _updated_at(),
        sa.UniqueConstraint('organization_id', name='uq_cashback_wallets_organization_id'),
        sa.CheckConstraint('available_balance >= 0', name='ck_wallet_balance_non_negative'),
        sa.CheckConstraint('total_earned >= 0', name='ck_wallet_earned_non_negative'),
        sa.CheckConstraint('total_used >= 0', name='ck_wallet_used_non_negative'),
    )

    op.create_table(
        'cashback_transactions',
        _id_column(),
        sa.Column('cashback_wallet_id', UUID(as_uuid=True),
                  sa.ForeignKey('cashback_wallets.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('order_id', UUID(as_uuid=True),
                  sa.ForeignKey('orders.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('type', sa.String(20), nullable=False, comment='EARNED, USED'),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('reference_id', UUID(as_uuid=True), nullable=True),
        sa.Column('reference_type', sa.String(50), nullable=True,
                  comment='CAMPAIGN, SUPPLIER_STATE_CONDITION, ORDER, MANUAL'),
        sa.Column('description', sa.Text, nullable=True),
        _created_at(),
        sa.CheckConstraint('amount > 0', name='ck_cashback_tx_amount_positive'),
    )
    op.create_index('ix_cashback_tx_wallet_created', 'cashback_transactions', ['cashback_wallet_id', 'created_at'])
    op.create_index('ix_cashback_tx_order', 'cashback_transactions', ['order_id'])


def downgrade():
    """Drop order pricing and cashback tables"""
    op.drop_table('cashback_transactions')
    op.drop_table('cashback_wallets')
    op.drop_table('order_status_history')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('campaign_products')
    op.drop_table('campaigns')
    op.drop_table('supplier_state_conditions')
    op.drop_table('payment_conditions')
    op.drop_table('products')
