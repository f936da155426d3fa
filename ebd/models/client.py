"""Client (cliente EBD) model and per-category discount overrides."""
from sqlalchemy import Column, BigInteger, String, Boolean, Numeric, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ebd.database import Base, BigIntPK


class Client(Base):
    """
    Client profile read at checkout time.

    client_type is free text coming from the CRM ("ADVEC", "Igreja CNPJ",
    "Igreja CPF", "REVENDEDOR", "REPRESENTANTE", ...). The discount resolver
    interprets it; nothing here normalizes it.
    """

    __tablename__ = 'client'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    client_type = Column(String(60), nullable=True)
    document = Column(String(20), nullable=True)  # CPF/CNPJ digits only
    email = Column(String(255), nullable=True)
    phone = Column(String(30), nullable=True)
    onboarding_completed = Column(Boolean, nullable=False, default=False)
    seller_discount_pct = Column(Numeric(5, 2), nullable=True)  # Desconto atribuído pelo vendedor
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    tenant = relationship('Tenant')
    category_discounts = relationship(
        'ClientCategoryDiscount', back_populates='client', cascade='all, delete-orphan'
    )

    @property
    def category_overrides(self):
        """Mapping category tag -> percentage."""
        return {d.category: d.percentage for d in self.category_discounts}

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'client_type': self.client_type,
            'document': self.document,
            'email': self.email,
            'phone': self.phone,
            'onboarding_completed': bool(self.onboarding_completed),
            'seller_discount_pct': str(self.seller_discount_pct) if self.seller_discount_pct is not None else None,
            'category_overrides': {category: str(pct) for category, pct in self.category_overrides.items()},
            'active': bool(self.active),
        }

    def __repr__(self):
        return f"<Client(id={self.id}, name='{self.name}', type='{self.client_type}')>"


class ClientCategoryDiscount(Base):
    """Discount percentage configured for one product category of a client."""

    __tablename__ = 'client_category_discount'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    client_id = Column(BigInteger, ForeignKey('client.id', ondelete='CASCADE'), nullable=False)
    category = Column(String(30), nullable=False)
    percentage = Column(Numeric(5, 2), nullable=False, default=0)

    client = relationship('Client', back_populates='category_discounts')

    __table_args__ = (
        UniqueConstraint('client_id', 'category', name='uq_client_category_discount'),
    )

    def __repr__(self):
        return f"<ClientCategoryDiscount(client_id={self.client_id}, {self.category}={self.percentage}%)>"
