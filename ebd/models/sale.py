"""Sale model - a recorded sale that generates a commission or a royalty."""
from sqlalchemy import Column, BigInteger, String, Numeric, Date, DateTime, ForeignKey, UniqueConstraint, event, inspect
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ebd.database import Base, BigIntPK
from ebd.exceptions import BusinessLogicError


class Sale(Base):
    """
    Sale (venda com comissão).

    Persisted once; the only mutable column after creation is payment_link.
    """

    __tablename__ = 'sale'

    # Columns that may change after insert
    MUTABLE_COLUMNS = frozenset({'payment_link', 'updated_at'})

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False, index=True)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=False, index=True)
    client_id = Column(BigInteger, ForeignKey('client.id'), nullable=True)

    kind = Column(String(20), nullable=False, default='royalty')  # royalty | commission
    source = Column(String(20), nullable=False, default='manual')  # manual | bling_nfe | shopify | mercadopago

    quantity = Column(BigInteger, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    commission_pct = Column(Numeric(5, 2), nullable=False)
    commission_unit = Column(Numeric(12, 2), nullable=False)
    commission_total = Column(Numeric(12, 2), nullable=False)

    sale_date = Column(Date, nullable=False)
    bling_order_id = Column(String(40), nullable=True, index=True)  # NF-e / pedido de origem
    bling_order_number = Column(String(40), nullable=True)
    payment_link = Column(String(500), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    tenant = relationship('Tenant')
    product = relationship('Product')
    client = relationship('Client')
    payout_batches = relationship('PayoutBatch', secondary='payout_batch_sale', back_populates='sales')

    __table_args__ = (
        UniqueConstraint('tenant_id', 'bling_order_id', 'product_id', name='uq_sale_origin_product'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'product_id': self.product_id,
            'client_id': self.client_id,
            'kind': self.kind,
            'source': self.source,
            'quantity': self.quantity,
            'unit_price': str(self.unit_price),
            'commission_pct': str(self.commission_pct),
            'commission_unit': str(self.commission_unit),
            'commission_total': str(self.commission_total),
            'sale_date': self.sale_date.isoformat() if self.sale_date else None,
            'bling_order_id': self.bling_order_id,
            'payment_link': self.payment_link,
        }

    def __repr__(self):
        return f"<Sale(id={self.id}, product_id={self.product_id}, qty={self.quantity}, commission={self.commission_total})>"


@event.listens_for(Sale, 'before_update')
def _reject_sale_mutation(mapper, connection, target):
    """Sales are immutable except for the payment link."""
    state = inspect(target)
    changed = [
        attr.key for attr in state.mapper.column_attrs
        if attr.key not in Sale.MUTABLE_COLUMNS and state.attrs[attr.key].history.has_changes()
    ]
    if changed:
        raise BusinessLogicError(
            f"Venda {target.id} é imutável (campos alterados: {', '.join(changed)})", status_code=409
        )
