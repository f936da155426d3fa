"""Online order paid through Mercado Pago and forwarded to the ERP."""
from sqlalchemy import Column, BigInteger, String, Numeric, Text, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ebd.database import Base, BigIntPK
from ebd.models.sync_status import SyncStatus


class OnlineOrder(Base):
    """Pedido online (checkout Mercado Pago)."""

    __tablename__ = 'online_order'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False, index=True)
    client_id = Column(BigInteger, ForeignKey('client.id'), nullable=True)

    customer_name = Column(String(200), nullable=True)
    customer_email = Column(String(255), nullable=True)
    customer_document = Column(String(20), nullable=True)
    customer_phone = Column(String(30), nullable=True)

    # [{"sku", "title", "price", "quantity", "discount_pct"}]
    items = Column(JSON, nullable=False, default=list)
    shipping_method = Column(String(30), nullable=True)
    shipping_cost = Column(Numeric(10, 2), nullable=True)
    total = Column(Numeric(12, 2), nullable=False, default=0)

    mercadopago_payment_id = Column(String(40), nullable=True, index=True)
    payment_method = Column(String(30), nullable=True)
    mp_status = Column(String(30), nullable=True)
    mp_status_detail = Column(String(80), nullable=True)
    status = Column(String(20), nullable=False, default=SyncStatus.PENDING.value, index=True)
    bling_order_id = Column(String(40), nullable=True)
    last_error = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    client = relationship('Client')

    def to_dict(self):
        return {
            'id': self.id,
            'status': self.status,
            'mp_status': self.mp_status,
            'mercadopago_payment_id': self.mercadopago_payment_id,
            'bling_order_id': self.bling_order_id,
            'total': str(self.total),
        }

    def __repr__(self):
        return f"<OnlineOrder(id={self.id}, mp={self.mercadopago_payment_id}, status={self.status})>"
