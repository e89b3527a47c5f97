"""Shipping zones, methods and their rate tiers."""
from datetime import datetime
from sqlalchemy import String, ForeignKey, Integer, DECIMAL, Boolean, Index, JSON, DateTime, Text, Float
from sqlalchemy.orm import Mapped, mapped_column, relationship
from typing import Optional, List
from storefront.app.core.base import Base


class ShippingZone(Base):
    __tablename__ = 'shipping_zones'

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # Higher priority wins on overlap
    priority: Mapped[int] = mapped_column(Integer, default=0)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
    # Allow-lists; empty or NULL = wildcard
    countries: Mapped[Optional[List[str]]] = mapped_column(JSON(), nullable=True)
    states: Mapped[Optional[List[str]]] = mapped_column(JSON(), nullable=True)
    cities: Mapped[Optional[List[str]]] = mapped_column(JSON(), nullable=True)
    postal_codes: Mapped[Optional[List[str]]] = mapped_column(JSON(), nullable=True)
    zip_prefixes: Mapped[Optional[List[str]]] = mapped_column(JSON(), nullable=True)
    geo_center_lat: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    geo_center_lng: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    geo_radius_km: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index('ix_shipping_zones_priority', 'priority'),
        Index('ix_shipping_zones_is_default', 'is_default'),
    )


class ShippingMethod(Base):
    __tablename__ = 'shipping_methods'

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # flat_rate / local_pickup / carrier / custom
    type: Mapped[str] = mapped_column(String(20), default='flat_rate')
    status: Mapped[str] = mapped_column(String(20), default='active')
    currency: Mapped[str] = mapped_column(String(3), default='USD')
    default_cost: Mapped[Optional[float]] = mapped_column(DECIMAL(10, 2), nullable=True, default=0)
    handling_fee: Mapped[Optional[float]] = mapped_column(DECIMAL(10, 2), nullable=True, default=0)
    allow_digital_products: Mapped[bool] = mapped_column(Boolean, default=False)
    allow_physical_products: Mapped[bool] = mapped_column(Boolean, default=True)
    estimated_days_min: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    estimated_days_max: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    display_order: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    rates: Mapped[list["ShippingRate"]] = relationship(
        "ShippingRate",
        back_populates="method",
        lazy="selectin",
        order_by="ShippingRate.id",
        cascade="all, delete-orphan",
    )

    __table_args__ = (Index('ix_shipping_methods_status_order', 'status', 'display_order'),)


class ShippingRate(Base):
    """One rate tier of a shipping method. NULL numeric fields mean "not declared"."""
    __tablename__ = 'shipping_rates'

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    method_id: Mapped[int] = mapped_column(ForeignKey('shipping_methods.id', ondelete='CASCADE'))
    label: Mapped[str] = mapped_column(String(255))
    code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    zone_id: Mapped[Optional[int]] = mapped_column(ForeignKey('shipping_zones.id', ondelete='SET NULL'), nullable=True)
    # flat / per_item / per_weight / local_pickup
    type: Mapped[str] = mapped_column(String(20), default='flat')
    base_cost: Mapped[Optional[float]] = mapped_column(DECIMAL(10, 2), nullable=True)
    per_item_cost: Mapped[Optional[float]] = mapped_column(DECIMAL(10, 2), nullable=True)
    per_weight_kg_cost: Mapped[Optional[float]] = mapped_column(DECIMAL(10, 2), nullable=True)
    handling_fee: Mapped[Optional[float]] = mapped_column(DECIMAL(10, 2), nullable=True)
    min_subtotal: Mapped[Optional[float]] = mapped_column(DECIMAL(10, 2), nullable=True)
    max_subtotal: Mapped[Optional[float]] = mapped_column(DECIMAL(10, 2), nullable=True)
    free_above: Mapped[Optional[float]] = mapped_column(DECIMAL(10, 2), nullable=True)
    min_distance_km: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    max_distance_km: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    inherit_method_default_cost: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)

    method: Mapped["ShippingMethod"] = relationship("ShippingMethod", back_populates="rates")

    __table_args__ = (Index('ix_shipping_rates_method_id', 'method_id'),)
