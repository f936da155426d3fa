"""ERP (Bling) sales order mirrored locally."""
import enum
from sqlalchemy import Column, BigInteger, String, Integer, Numeric, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ebd.database import Base, BigIntPK
from ebd.models.sync_status import SyncStatus


class ErpOrderStatus(str, enum.Enum):
    """Internal order status derived from the Bling 'situacao'."""
    EM_ABERTO = 'EM_ABERTO'
    EM_ANDAMENTO = 'EM_ANDAMENTO'
    ATENDIDO = 'ATENDIDO'
    CANCELADO = 'CANCELADO'


class ErpOrder(Base):
    """Pedido de venda no Bling, keyed by the Bling order id."""

    __tablename__ = 'erp_order'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False, index=True)
    client_id = Column(BigInteger, ForeignKey('client.id'), nullable=True)

    bling_order_id = Column(String(40), nullable=False)
    bling_order_number = Column(String(40), nullable=True)
    bling_status = Column(String(60), nullable=True)
    bling_status_id = Column(Integer, nullable=True)
    status = Column(String(20), nullable=False, default=ErpOrderStatus.EM_ABERTO.value)
    sync_status = Column(String(20), nullable=False, default=SyncStatus.PENDING.value)
    total = Column(Numeric(12, 2), nullable=True)
    last_error = Column(Text, nullable=True)

    synced_at = Column(DateTime, nullable=True)  # naive UTC
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    client = relationship('Client')
    invoices = relationship('Invoice', back_populates='erp_order')

    __table_args__ = (
        UniqueConstraint('tenant_id', 'bling_order_id', name='uq_erp_order_bling_id'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'bling_order_id': self.bling_order_id,
            'bling_order_number': self.bling_order_number,
            'bling_status': self.bling_status,
            'bling_status_id': self.bling_status_id,
            'status': self.status,
            'sync_status': self.sync_status,
            'total': str(self.total) if self.total is not None else None,
            'synced_at': self.synced_at.isoformat() if self.synced_at else None,
        }

    def __repr__(self):
        return f"<ErpOrder(id={self.id}, bling_order_id='{self.bling_order_id}', status={self.status})>"
