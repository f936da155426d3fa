"""Shopify order mirrored from webhooks / Admin API lookups."""
from sqlalchemy import Column, BigInteger, String, Numeric, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from ebd.database import Base, BigIntPK


class ShopifyOrder(Base):
    """Pedido Shopify, keyed by the Shopify order id."""

    __tablename__ = 'shopify_order'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False, index=True)
    shopify_order_id = Column(String(40), nullable=False)
    name = Column(String(40), nullable=True)  # "#1001"
    email = Column(String(255), nullable=True)
    customer_document = Column(String(20), nullable=True)
    document_source = Column(String(60), nullable=True)
    financial_status = Column(String(30), nullable=True)
    fulfillment_status = Column(String(30), nullable=True)
    total_price = Column(Numeric(12, 2), nullable=True)
    synced_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint('tenant_id', 'shopify_order_id', name='uq_shopify_order_id'),
    )

    def __repr__(self):
        return f"<ShopifyOrder(id={self.id}, shopify_order_id='{self.shopify_order_id}', name='{self.name}')>"
