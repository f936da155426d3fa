"""Product model and product-level commission configuration."""
from sqlalchemy import Column, BigInteger, String, Boolean, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ebd.database import Base, BigIntPK


class Product(Base):
    """Product sold through the store, the ERP or redemptions (livro, revista, bíblia...)."""

    __tablename__ = 'product'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    sku = Column(String(60), nullable=True, index=True)  # codigo Bling
    price = Column(Numeric(10, 2), nullable=False, default=0)  # preço de capa
    bling_product_id = Column(String(40), nullable=True, index=True)
    shopify_product_id = Column(String(80), nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    tenant = relationship('Tenant')
    commission = relationship(
        'ProductCommission', uselist=False, back_populates='product', cascade='all, delete-orphan'
    )

    def to_dict(self):
        commission = None
        if self.commission is not None:
            commission = {
                'percentage': str(self.commission.percentage),
                'kind': self.commission.kind,
                'beneficiary_name': self.commission.beneficiary_name,
            }
        return {
            'id': self.id,
            'title': self.title,
            'sku': self.sku,
            'price': str(self.price),
            'bling_product_id': self.bling_product_id,
            'shopify_product_id': self.shopify_product_id,
            'active': bool(self.active),
            'commission': commission,
        }

    def __repr__(self):
        return f"<Product(id={self.id}, title='{self.title}', sku='{self.sku}')>"


class ProductCommission(Base):
    """
    Commission percentage linked to a product.

    kind = 'royalty' for author royalties, 'commission' for reseller commissions.
    """

    __tablename__ = 'product_commission'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    product_id = Column(BigInteger, ForeignKey('product.id', ondelete='CASCADE'), nullable=False, unique=True)
    percentage = Column(Numeric(5, 2), nullable=False)
    kind = Column(String(20), nullable=False, default='royalty')
    beneficiary_name = Column(String(200), nullable=True)  # autor / revendedor

    product = relationship('Product', back_populates='commission')

    def __repr__(self):
        return f"<ProductCommission(product_id={self.product_id}, {self.percentage}%, kind={self.kind})>"
