"""Inbound webhook deliveries (Mercado Pago, Shopify), one row per distinct event."""
import enum

from sqlalchemy import Column, String, DateTime, JSON
from sqlalchemy.sql import func
from ebd.database import Base, BigIntPK


class WebhookStatus(str, enum.Enum):
    PROCESSING = 'PROCESSING'
    PROCESSED = 'PROCESSED'
    FAILED = 'FAILED'


class WebhookEvent(Base):
    """A stored delivery; dedupe_key is the idempotency guard."""

    __tablename__ = 'webhook_event'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    provider = Column(String(20), nullable=False, index=True)  # mercadopago | shopify
    topic = Column(String(50), nullable=False, index=True)  # payment, orders/create...
    resource_id = Column(String(100), index=True)
    payload_json = Column(JSON, nullable=False)
    dedupe_key = Column(String(64), nullable=False, unique=True)  # sha256 hex
    status = Column(String(20), nullable=False, default=WebhookStatus.PROCESSING.value, index=True)
    received_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)
    processed_at = Column(DateTime(timezone=True))

    @property
    def is_processed(self):
        return self.status == WebhookStatus.PROCESSED.value

    def __repr__(self):
        return f"<WebhookEvent({self.provider}/{self.topic} resource={self.resource_id} status={self.status})>"
