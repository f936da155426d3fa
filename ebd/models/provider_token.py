"""OAuth credentials stored per tenant and external provider."""
from sqlalchemy import Column, BigInteger, String, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from ebd.database import Base, BigIntPK


class ProviderToken(Base):
    """OAuth client + current token pair for one provider (e.g. 'bling')."""

    __tablename__ = 'provider_token'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False)
    provider = Column(String(30), nullable=False)
    client_id = Column(String(255), nullable=False)
    client_secret = Column(String(255), nullable=False)
    access_token = Column(Text, nullable=True)
    refresh_token = Column(Text, nullable=True)
    token_expires_at = Column(DateTime, nullable=True)  # naive UTC
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('tenant_id', 'provider', name='uq_provider_token_tenant_provider'),
    )

    def __repr__(self):
        return f"<ProviderToken(tenant_id={self.tenant_id}, provider='{self.provider}', expires={self.token_expires_at})>"
