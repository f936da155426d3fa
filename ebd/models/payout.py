"""Payout batch model (lote de pagamento de comissões / royalties, resgates)."""
import enum
from sqlalchemy import Column, BigInteger, String, Numeric, DateTime, Text, ForeignKey, Table, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ebd.database import Base, BigIntPK


class PayoutStatus(str, enum.Enum):
    """Payout batch status."""
    PENDING = 'pending'
    APPROVED = 'approved'
    PAID = 'paid'
    CANCELLED = 'cancelled'


class PayoutKind(str, enum.Enum):
    """What the batch pays out."""
    COMMISSION = 'commission'
    ROYALTY = 'royalty'
    RESGATE = 'resgate'  # royalty credit converted into a product order


payout_batch_sale = Table(
    'payout_batch_sale',
    Base.metadata,
    Column('batch_id', BigInteger, ForeignKey('payout_batch.id', ondelete='CASCADE'), primary_key=True),
    Column('sale_id', BigInteger, ForeignKey('sale.id', ondelete='CASCADE'), primary_key=True),
)


class PayoutBatch(Base):
    """Groups several sales under one payout."""

    __tablename__ = 'payout_batch'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False, index=True)
    kind = Column(String(20), nullable=False, default=PayoutKind.COMMISSION.value)
    status = Column(String(20), nullable=False, default=PayoutStatus.PENDING.value, index=True)
    total = Column(Numeric(12, 2), nullable=False, default=0)
    reference = Column(String(255), nullable=True)  # comprovante / id da transferência
    notes = Column(Text, nullable=True)

    # Resgate only: requested items and the ERP order created on approval
    items = Column(JSON, nullable=True)
    bling_order_id = Column(String(40), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    approved_at = Column(DateTime(timezone=True), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    tenant = relationship('Tenant')
    sales = relationship('Sale', secondary=payout_batch_sale, back_populates='payout_batches')

    def to_dict(self):
        return {
            'id': self.id,
            'kind': self.kind,
            'status': self.status,
            'total': str(self.total),
            'reference': self.reference,
            'sale_ids': [s.id for s in self.sales],
            'bling_order_id': self.bling_order_id,
            'approved_at': self.approved_at.isoformat() if self.approved_at else None,
            'paid_at': self.paid_at.isoformat() if self.paid_at else None,
            'cancelled_at': self.cancelled_at.isoformat() if self.cancelled_at else None,
        }

    def __repr__(self):
        return f"<PayoutBatch(id={self.id}, kind={self.kind}, status={self.status}, total={self.total})>"
