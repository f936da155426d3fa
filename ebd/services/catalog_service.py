"""Products and their commission configuration."""
import logging
from decimal import Decimal
from typing import Optional

from ebd.exceptions import ValidationError, NotFoundError
from ebd.models import Product, ProductCommission, PayoutKind
from ebd.services.discount_service import to_decimal, to_percentage, quantize_money

logger = logging.getLogger(__name__)

COMMISSION_KINDS = (PayoutKind.ROYALTY.value, PayoutKind.COMMISSION.value)


def get_product(session, tenant_id: int, product_id: int) -> Product:
    product = session.query(Product).filter_by(id=product_id, tenant_id=tenant_id).first()
    if not product:
        raise NotFoundError(f'Produto {product_id} não encontrado')
    return product


def _price(value) -> Decimal:
    price = to_decimal(value, 'price')
    if price < 0:
        raise ValidationError('price não pode ser negativo')
    return quantize_money(price)


def upsert_product(session, tenant_id: int, data: dict, product_id: Optional[int] = None) -> Product:
    """
    Create a product, or update the given one with the keys present in data.

    A product is matched by SKU when no id is given, so catalog imports can be
    re-run.
    """
    if product_id is not None:
        product = get_product(session, tenant_id, product_id)
    else:
        product = None
        if data.get('sku'):
            product = session.query(Product).filter_by(tenant_id=tenant_id, sku=data['sku']).first()
        if product is None:
            if not (data.get('title') or '').strip():
                raise ValidationError('title é obrigatório')
            product = Product(tenant_id=tenant_id, active=True, price=0)
            session.add(product)

    if 'title' in data:
        if not (data['title'] or '').strip():
            raise ValidationError('title é obrigatório')
        product.title = data['title'].strip()
    if 'price' in data:
        product.price = _price(data['price'])
    for key in ('sku', 'bling_product_id', 'shopify_product_id'):
        if key in data:
            setattr(product, key, str(data[key]) if data[key] not in (None, '') else None)
    if 'active' in data:
        product.active = bool(data['active'])

    if data.get('commission') is not None:
        set_commission(session, product, **_commission_args(data['commission']))
    session.flush()
    return product


def _commission_args(raw) -> dict:
    if not isinstance(raw, dict):
        raise ValidationError('commission deve ser um objeto {percentage, kind}')
    return {
        'percentage': raw.get('percentage'),
        'kind': raw.get('kind', PayoutKind.ROYALTY.value),
        'beneficiary_name': raw.get('beneficiary_name'),
    }


def set_commission(session, product: Product, percentage, kind: str = PayoutKind.ROYALTY.value,
                   beneficiary_name: Optional[str] = None) -> ProductCommission:
    """
    Set the commission percentage of a product.

    Sales already recorded keep the percentage frozen on them.
    """
    if percentage is None or percentage == '':
        raise ValidationError('percentage é obrigatório')
    pct = to_percentage(percentage, 'percentage')
    if kind not in COMMISSION_KINDS:
        raise ValidationError(f"kind deve ser um de: {', '.join(COMMISSION_KINDS)}")

    commission = product.commission
    if commission is None:
        commission = ProductCommission(percentage=pct, kind=kind)
        product.commission = commission
    else:
        commission.percentage = pct
        commission.kind = kind
    if beneficiary_name is not None:
        commission.beneficiary_name = beneficiary_name.strip() or None
    session.flush()
    logger.info(f"Commission set: product={product.id} {pct}% kind={kind}")
    return commission


def remove_commission(session, product: Product) -> None:
    if product.commission is not None:
        product.commission = None
        session.flush()
