from datetime import datetime
from sqlalchemy import BigInteger, String, DECIMAL, Text, Index, Integer, JSON, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from typing import Optional
from storefront.app.core.base import Base


class Product(Base):
    __tablename__ = 'products'
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    owner_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    name: Mapped[str] = mapped_column(String(255))
    slug: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    sku: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    product_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    # draft / pending / approved / published / rejected
    status: Mapped[str] = mapped_column(String(20), default='draft')
    # "store" for shop inventory, "listing" for user-submitted items
    product_source: Mapped[str] = mapped_column(String(20), default='store')
    product_format: Mapped[str] = mapped_column(String(20), default='physical')
    download_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    price: Mapped[float] = mapped_column(DECIMAL(10, 2))
    sale_price: Mapped[Optional[float]] = mapped_column(DECIMAL(10, 2), nullable=True)
    stock: Mapped[int] = mapped_column(Integer, default=0)
    sales: Mapped[int] = mapped_column(Integer, default=0, server_default='0')
    weight_grams: Mapped[Optional[float]] = mapped_column(DECIMAL(10, 2), nullable=True)
    # [{"label": "Size", "options": [{"id": "l", "name": "Large", "price": 5, "stock": 3}]}]
    variations: Mapped[Optional[list]] = mapped_column(JSON(), nullable=True)
    # Fixed bundle: [{"product_id": 1, "quantity": 2}]
    grouped_products: Mapped[Optional[list]] = mapped_column(JSON(), nullable=True)
    # Configurable bundle: [{"name", "pricing_mode", "discount_percent", "items": [...]}]
    bundle_groups: Mapped[Optional[list]] = mapped_column(JSON(), nullable=True)
    bundle_pricing_mode: Mapped[str] = mapped_column(String(20), default='calculated')
    bundle_discount_percent: Mapped[Optional[float]] = mapped_column(DECIMAL(5, 2), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index('ix_products_status', 'status'),
        Index('ix_products_owner_id', 'owner_id'),
        Index('ix_products_source_status', 'product_source', 'status'),
    )
