"""Outbound transactional message (email / WhatsApp) with open/click tracking."""
from sqlalchemy import Column, BigInteger, String, Integer, Text, DateTime, ForeignKey
from sqlalchemy.sql import func
from ebd.database import Base, BigIntPK


class MessageLog(Base):
    """One sent (or attempted) message."""

    __tablename__ = 'message_log'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False, index=True)
    channel = Column(String(20), nullable=False)  # email | whatsapp
    recipient = Column(String(255), nullable=False)
    subject = Column(String(255), nullable=True)
    template = Column(String(80), nullable=True)
    status = Column(String(20), nullable=False, default='queued')  # queued | sent | failed
    provider_message_id = Column(String(120), nullable=True)
    tracking_token = Column(String(64), nullable=False, unique=True)
    open_count = Column(Integer, nullable=False, default=0)
    opened_at = Column(DateTime, nullable=True)
    click_count = Column(Integer, nullable=False, default=0)
    clicked_at = Column(DateTime, nullable=True)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def __repr__(self):
        return f"<MessageLog(id={self.id}, channel={self.channel}, to='{self.recipient}', status={self.status})>"
