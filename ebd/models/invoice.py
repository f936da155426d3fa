"""NF-e issued through the ERP."""
from sqlalchemy import Column, BigInteger, String, Integer, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ebd.database import Base, BigIntPK
from ebd.models.sync_status import SyncStatus


class Invoice(Base):
    """Nota fiscal eletrônica, keyed by the Bling NF-e id."""

    __tablename__ = 'invoice'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False, index=True)
    erp_order_id = Column(BigInteger, ForeignKey('erp_order.id'), nullable=True)

    bling_nfe_id = Column(String(40), nullable=False)
    bling_order_id = Column(String(40), nullable=True, index=True)
    number = Column(String(20), nullable=True)
    access_key = Column(String(44), nullable=True)  # chave de acesso
    situacao = Column(Integer, nullable=True)
    sync_status = Column(String(20), nullable=False, default=SyncStatus.PENDING.value)
    danfe_url = Column(Text, nullable=True)
    xml_url = Column(Text, nullable=True)
    issued_at = Column(DateTime, nullable=True)
    synced_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    erp_order = relationship('ErpOrder', back_populates='invoices')

    __table_args__ = (
        UniqueConstraint('tenant_id', 'bling_nfe_id', name='uq_invoice_bling_nfe_id'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'bling_nfe_id': self.bling_nfe_id,
            'bling_order_id': self.bling_order_id,
            'number': self.number,
            'situacao': self.situacao,
            'sync_status': self.sync_status,
            'danfe_url': self.danfe_url,
        }

    def __repr__(self):
        return f"<Invoice(id={self.id}, nfe='{self.bling_nfe_id}', status={self.sync_status})>"
