from datetime import datetime
from sqlalchemy import BigInteger, String, ForeignKey, Integer, DECIMAL, Boolean, Index, JSON, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from typing import Optional, List
from storefront.app.core.base import Base


class Coupon(Base):
    __tablename__ = 'coupons'

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    # Stored uppercase, looked up case-insensitively
    code: Mapped[str] = mapped_column(String(64), unique=True)
    description: Mapped[str] = mapped_column(Text, default='')
    discount_type: Mapped[str] = mapped_column(String(20), default='percentage')
    discount_value: Mapped[float] = mapped_column(DECIMAL(10, 2))
    minimum_order_amount: Mapped[float] = mapped_column(DECIMAL(10, 2), default=0)
    # Cap for percentage discounts
    maximum_discount: Mapped[Optional[float]] = mapped_column(DECIMAL(10, 2), nullable=True)
    # NULL = unlimited
    usage_limit: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    usage_count: Mapped[int] = mapped_column(Integer, default=0, server_default='0')
    usage_limit_per_user: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, default=1)
    start_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, default=datetime.utcnow)
    end_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    # all / include / exclude
    product_scope: Mapped[str] = mapped_column(String(20), default='all')
    scoped_products: Mapped[Optional[List[int]]] = mapped_column(JSON(), nullable=True)
    apply_to_shipping: Mapped[bool] = mapped_column(Boolean, default=False)
    store_only: Mapped[bool] = mapped_column(Boolean, default=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    usages: Mapped[list["CouponUsage"]] = relationship(
        "CouponUsage", back_populates="coupon", lazy="selectin", order_by="CouponUsage.id"
    )

    __table_args__ = (
        Index('ix_coupons_active_window', 'is_active', 'start_date', 'end_date'),
    )


class CouponUsage(Base):
    """Append-only redemption log entry."""
    __tablename__ = 'coupon_usages'

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    coupon_id: Mapped[int] = mapped_column(ForeignKey('coupons.id', ondelete='CASCADE'))
    user_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    order_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    used_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    coupon: Mapped["Coupon"] = relationship("Coupon", back_populates="usages")

    __table_args__ = (
        Index('ix_coupon_usages_coupon_user', 'coupon_id', 'user_id'),
    )
