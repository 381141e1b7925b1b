"""Create retail transaction core schema

Revision ID: 001_retail_core
Revises:
Create Date: 2026-10-18

Tables:
- products: catalog with non-negative stock
- customers: denormalized purchase aggregates
- sales / sale_lines: invoices with returned_quantity tracking
- sales_returns / sales_return_lines: returns with prorated discounts
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_retail_core'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def money():
    return sa.Numeric(12, 2)


def quantity():
    return sa.Numeric(12, 3)


def rate():
    return sa.Numeric(5, 2)


def upgrade() -> None:
    """Create all transaction core tables."""

    # ==================== products ====================
    op.create_table(
        'products',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('sku', sa.String(50), nullable=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('unit_of_measure', sa.String(20), nullable=False, comment='PIECE, METER, KG, etc.'),
        sa.Column('stock_quantity', quantity(), nullable=False),
        sa.Column('unit_price', money(), nullable=False),
        sa.Column('purchase_price', money(), nullable=False),
        sa.Column('tax_rate', rate(), nullable=False,
                  comment='Tax percentage applied on the post-discount amount'),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('stock_quantity >= 0', name='ck_product_stock_non_negative'),
        sa.CheckConstraint('unit_price >= 0', name='ck_product_unit_price_non_negative'),
        sa.CheckConstraint('tax_rate >= 0', name='ck_product_tax_rate_non_negative'),
    )
    op.create_index('ix_products_sku', 'products', ['sku'], unique=True)
    op.create_index('ix_product_active_name', 'products', ['is_active', 'name'])

    # ==================== customers ====================
    op.create_table(
        'customers',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('phone', sa.String(20), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('total_orders', sa.Integer(), nullable=False),
        sa.Column('total_purchases', money(), nullable=False),
        sa.Column('last_purchase_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_customers_phone', 'customers', ['phone'])

    # ==================== sales ====================
    op.create_table(
        'sales',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('invoice_number', sa.String(40), nullable=False),
        sa.Column('sale_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('customer_id', sa.Uuid(), sa.ForeignKey('customers.id', ondelete='SET NULL'), nullable=True),
        sa.Column('customer_name', sa.String(200), nullable=True),
        sa.Column('customer_phone', sa.String(20), nullable=True),
        sa.Column('payment_method', sa.String(30), nullable=False,
                  comment='CASH, CARD, UPI, BANK_TRANSFER, CHEQUE, STORE_CREDIT'),
        sa.Column('payment_reference', sa.String(100), nullable=True),
        sa.Column('status', sa.String(30), nullable=False,
                  comment='PENDING, PENDING_APPROVAL, COMPLETED, CANCELLED'),
        sa.Column('subtotal', money(), nullable=False),
        sa.Column('discount_amount', money(), nullable=False),
        sa.Column('tax_amount', money(), nullable=False),
        sa.Column('calculated_total', money(), nullable=False),
        sa.Column('amount_received', money(), nullable=True),
        sa.Column('payment_adjustment', money(), nullable=False, comment='amount_received - calculated_total'),
        sa.Column('adjustment_type', sa.String(30), nullable=True,
                  comment='CUSTOMER_CONVENIENCE, CASH_SHORTAGE, SYSTEM_ERROR, MANAGER_DISCRETION'),
        sa.Column('adjustment_reason', sa.Text(), nullable=True),
        sa.Column('requires_approval', sa.Boolean(), nullable=False),
        sa.Column('final_total', money(), nullable=True,
                  comment='Null while a payment adjustment awaits approval'),
        sa.Column('processed_by', sa.String(100), nullable=True),
        sa.Column('approved_by', sa.String(100), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_by', sa.String(100), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_sales_invoice_number', 'sales', ['invoice_number'], unique=True)
    op.create_index('ix_sales_status', 'sales', ['status'])
    op.create_index('ix_sale_status_date', 'sales', ['status', 'sale_date'])
    op.create_index('ix_sale_customer_date', 'sales', ['customer_id', 'sale_date'])

    # ==================== sale_lines ====================
    op.create_table(
        'sale_lines',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('sale_id', sa.Uuid(), sa.ForeignKey('sales.id', ondelete='CASCADE'), nullable=False),
        sa.Column('line_number', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Uuid(), sa.ForeignKey('products.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('product_name', sa.String(200), nullable=False),
        sa.Column('unit_of_measure', sa.String(20), nullable=False),
        sa.Column('quantity', quantity(), nullable=False),
        sa.Column('unit_price', money(), nullable=False),
        sa.Column('tax_rate', rate(), nullable=False),
        sa.Column('discount_amount', money(), nullable=False),
        sa.Column('tax_amount', money(), nullable=False),
        sa.Column('line_total', money(), nullable=False),
        sa.Column('returned_quantity', quantity(), nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_sale_line_quantity_positive'),
        sa.CheckConstraint(
            'returned_quantity >= 0 AND returned_quantity <= quantity',
            name='ck_sale_line_returned_within_sold'
        ),
    )
    op.create_index('ix_sale_lines_sale_id', 'sale_lines', ['sale_id'])
    op.create_index('ix_sale_lines_product_id', 'sale_lines', ['product_id'])

    # ==================== sales_returns ====================
    op.create_table(
        'sales_returns',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('return_number', sa.String(40), nullable=False),
        sa.Column('sale_id', sa.Uuid(), sa.ForeignKey('sales.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('return_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('reason', sa.String(200), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('status', sa.String(30), nullable=False, comment='PENDING, COMPLETED, CANCELLED'),
        sa.Column('subtotal', money(), nullable=False),
        sa.Column('discount_amount', money(), nullable=False),
        sa.Column('tax_amount', money(), nullable=False),
        sa.Column('refund_amount', money(), nullable=False),
        sa.Column('refund_method', sa.String(30), nullable=True),
        sa.Column('refund_reference', sa.String(100), nullable=True),
        sa.Column('created_by', sa.String(100), nullable=True),
        sa.Column('processed_by', sa.String(100), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_by', sa.String(100), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_sales_returns_return_number', 'sales_returns', ['return_number'], unique=True)
    op.create_index('ix_sales_returns_sale_id', 'sales_returns', ['sale_id'])
    op.create_index('ix_sales_returns_status', 'sales_returns', ['status'])
    op.create_index('ix_sales_return_sale_status', 'sales_returns', ['sale_id', 'status'])

    # ==================== sales_return_lines ====================
    op.create_table(
        'sales_return_lines',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('return_id', sa.Uuid(), sa.ForeignKey('sales_returns.id', ondelete='CASCADE'), nullable=False),
        sa.Column('sale_line_id', sa.Uuid(), sa.ForeignKey('sale_lines.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('product_id', sa.Uuid(), sa.ForeignKey('products.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('product_name', sa.String(200), nullable=False),
        sa.Column('quantity', quantity(), nullable=False),
        sa.Column('unit_price', money(), nullable=False),
        sa.Column('tax_rate', rate(), nullable=False),
        sa.Column('discount_amount', money(), nullable=False),
        sa.Column('tax_amount', money(), nullable=False),
        sa.Column('line_total', money(), nullable=False),
        sa.Column('condition_note', sa.String(200), nullable=True),
        sa.CheckConstraint('quantity > 0', name='ck_return_line_quantity_positive'),
    )
    op.create_index('ix_sales_return_lines_return_id', 'sales_return_lines', ['return_id'])
    op.create_index('ix_sales_return_lines_sale_line_id', 'sales_return_lines', ['sale_line_id'])


def downgrade() -> None:
    """Drop all transaction core tables."""
    op.drop_table('sales_return_lines')
    op.drop_table('sales_returns')
    op.drop_table('sale_lines')
    op.drop_table('sales')
    op.drop_table('customers')
    op.drop_table('products')
