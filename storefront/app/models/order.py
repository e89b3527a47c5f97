from datetime import datetime
from sqlalchemy import BigInteger, String, Text, DECIMAL, DateTime, Index, JSON, Boolean
from sqlalchemy.orm import Mapped, mapped_column
from typing import Optional
from storefront.app.core.base import Base


class Order(Base):
    __tablename__ = 'orders'
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    # Normalized cart lines, snapshotted at creation time
    items: Mapped[list] = mapped_column(JSON())
    items_total: Mapped[float] = mapped_column(DECIMAL(10, 2))
    shipping_cost: Mapped[float] = mapped_column(DECIMAL(10, 2), default=0)
    tax_total: Mapped[float] = mapped_column(DECIMAL(10, 2), default=0)
    product_discount: Mapped[float] = mapped_column(DECIMAL(10, 2), default=0)
    shipping_discount: Mapped[float] = mapped_column(DECIMAL(10, 2), default=0)
    discount_total: Mapped[float] = mapped_column(DECIMAL(10, 2), default=0)
    grand_total: Mapped[float] = mapped_column(DECIMAL(10, 2))
    currency: Mapped[str] = mapped_column(String(3), default='USD')
    coupon_code: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    contact_email: Mapped[str] = mapped_column(String(255))
    contact_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    payment_status: Mapped[str] = mapped_column(String(30), default='awaiting_payment')
    fulfillment_status: Mapped[str] = mapped_column(String(30), default='pending')
    shipping_status: Mapped[str] = mapped_column(String(30), default='pending')
    shipping_method: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    shipping_method_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    shipping_rate_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    shipping_option_label: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    shipping_quote: Mapped[Optional[dict]] = mapped_column(JSON(), nullable=True)
    shipping_address: Mapped[Optional[dict]] = mapped_column(JSON(), nullable=True)
    shipping_timeline: Mapped[Optional[list]] = mapped_column(JSON(), nullable=True)
    payment_session_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    payment_reference: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    stock_committed: Mapped[bool] = mapped_column(Boolean, default=False)
    oversold_product_ids: Mapped[Optional[list]] = mapped_column(JSON(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index('ix_orders_user_id', 'user_id'),
        Index('ix_orders_payment_status', 'payment_status'),
        Index('ix_orders_payment_session_id', 'payment_session_id'),
        Index('ix_orders_created_at', 'created_at'),
    )
