"""Tenant model - each organization (editora / distribuidora) using the platform."""
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.sql import func
from ebd.database import Base, BigIntPK


class Tenant(Base):
    """Tenant model."""

    __tablename__ = 'tenant'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    slug = Column(String(80), nullable=False, unique=True)  # URL-safe identifier (X-Tenant header)
    name = Column(String(200), nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Tenant(id={self.id}, slug='{self.slug}', name='{self.name}')>"
