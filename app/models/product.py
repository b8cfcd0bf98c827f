"""
Catalog models read by the sync engine.

The catalog is owned by the dashboard; the engine only reads products and
variants and treats ``ProductVariant.inventory_quantity`` as the pool total
that destination allocations are carved out of.
"""

from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, JSON, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.database import Base
from app.core.enums import ProductStatus


class Product(Base):
    __tablename__ = "products"

    id = Column(String(64), primary_key=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    vendor = Column(String, nullable=True)
    product_type = Column(String, nullable=True)
    tags = Column(JSON, default=list)
    status = Column(String(16), default=ProductStatus.DRAFT.value, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    variants = relationship(
        "ProductVariant",
        back_populates="product",
        order_by="ProductVariant.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    options = relationship(
        "ProductOption",
        back_populates="product",
        order_by="ProductOption.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self):
        return f"<Product(id={self.id}, title='{self.title}', variants={len(self.variants or [])})>"


class ProductVariant(Base):
    __tablename__ = "product_variants"

    id = Column(String(64), primary_key=True)
    product_id = Column(String(64), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False, default="Default Title")
    price = Column(Numeric(12, 2), nullable=False, default=0)
    compare_at_price = Column(Numeric(12, 2), nullable=True)
    sku = Column(String, nullable=True)
    inventory_quantity = Column(Integer, nullable=False, default=0)  # the pool
    position = Column(Integer, nullable=False, default=0)
    option_values = Column(JSON, default=dict)  # {"Size": "M", "Color": "Red"}

    product = relationship("Product", back_populates="variants")


class ProductOption(Base):
    __tablename__ = "product_options"

    id = Column(Integer, primary_key=True)
    product_id = Column(String(64), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    values = Column(JSON, default=list)
    position = Column(Integer, nullable=False, default=0)

    product = relationship("Product", back_populates="options")
