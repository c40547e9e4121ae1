from alembic import op
import sqlalchemy as sa

revision = '0001_init'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'products',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('base_price', sa.Numeric(12, 2), nullable=False),
    )
    op.create_table(
        'product_variants',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('product_id', sa.Integer, sa.ForeignKey('products.id'), nullable=False),
        sa.Column('size', sa.String(20), nullable=True),
        sa.Column('color', sa.String(50), nullable=True),
        sa.Column('price_adjustment', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('stock', sa.Integer, nullable=False, server_default='0'),
    )
    op.create_index('ix_product_variants_product_id', 'product_variants', ['product_id'])

    op.create_table(
        'shipping_zones',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('regions', sa.JSON, nullable=False),
        sa.Column('fee', sa.Numeric(12, 2), nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
    )

    op.create_table(
        'promotions',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('code', sa.String(50), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('discount_type', sa.String(20), nullable=False),
        sa.Column('value', sa.Numeric(12, 2), nullable=False),
        sa.Column('min_order_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('max_discount', sa.Numeric(12, 2), nullable=True),
        sa.Column('usage_limit', sa.Integer, nullable=True),
        sa.Column('usage_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('valid_from', sa.DateTime, nullable=False),
        sa.Column('valid_to', sa.DateTime, nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime, nullable=False),
    )
    op.create_index('ix_promotions_code', 'promotions', ['code'], unique=True)

    op.create_table(
        'orders',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('order_number', sa.String(50), nullable=False),
        sa.Column('customer_id', sa.Integer, nullable=True),
        sa.Column('guest_email', sa.String(255), nullable=True),
        sa.Column('guest_phone', sa.String(50), nullable=True),
        sa.Column('status', sa.String(30), nullable=False),
        sa.Column('payment_status', sa.String(30), nullable=False),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=False),
        sa.Column('discount', sa.Numeric(12, 2), nullable=False),
        sa.Column('shipping_fee', sa.Numeric(12, 2), nullable=False),
        sa.Column('total', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('shipping_address', sa.JSON, nullable=False),
        sa.Column('shipping_zone_id', sa.Integer, sa.ForeignKey('shipping_zones.id'), nullable=True),
        sa.Column('promotion_id', sa.Integer, sa.ForeignKey('promotions.id'), nullable=True),
        sa.Column('promotion_code', sa.String(50), nullable=True),
        sa.Column('payment_reference', sa.String(100), nullable=True),
        sa.Column('payment_provider', sa.String(30), nullable=True),
        sa.Column('payment_authorization_url', sa.String(500), nullable=True),
        sa.Column('paid_at', sa.DateTime, nullable=True),
        sa.Column('tracking_number', sa.String(100), nullable=True),
        sa.Column('carrier_name', sa.String(100), nullable=True),
        sa.Column('estimated_delivery_date', sa.DateTime, nullable=True),
        sa.Column('status_history', sa.JSON, nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.Column('updated_at', sa.DateTime, nullable=False),
        sa.CheckConstraint('total >= 0', name='ck_orders_total_non_negative'),
    )
    op.create_index('ix_orders_order_number', 'orders', ['order_number'], unique=True)
    op.create_index('ix_orders_payment_reference', 'orders', ['payment_reference'], unique=True)
    op.create_index('ix_orders_customer_id', 'orders', ['customer_id'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('order_id', sa.Integer, sa.ForeignKey('orders.id'), nullable=False),
        sa.Column('product_id', sa.Integer, nullable=False),
        sa.Column('variant_id', sa.Integer, nullable=False),
        sa.Column('product_name', sa.String(200), nullable=False),
        sa.Column('variant_size', sa.String(20), nullable=True),
        sa.Column('variant_color', sa.String(50), nullable=True),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('quantity', sa.Integer, nullable=False),
        sa.Column('line_total', sa.Numeric(12, 2), nullable=False),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])

    op.create_table(
        'payment_events',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('provider', sa.String(30), nullable=False),
        sa.Column('reference', sa.String(100), nullable=False),
        sa.Column('reported_status', sa.String(30), nullable=False),
        sa.Column('source', sa.String(20), nullable=False),
        sa.Column('idempotency_key', sa.String(140), nullable=False),
        sa.Column('order_id', sa.Integer, nullable=True),
        sa.Column('amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('outcome', sa.String(30), nullable=False),
        sa.Column('received_at', sa.DateTime, nullable=False),
    )
    op.create_index('ix_payment_events_reference', 'payment_events', ['reference'])
    op.create_index('ix_payment_events_idempotency_key', 'payment_events', ['idempotency_key'])


def downgrade():
    op.drop_table('payment_events')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('promotions')
    op.drop_table('shipping_zones')
    op.drop_table('product_variants')
    op.drop_table('products')
