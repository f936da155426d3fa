"""
Commission and royalty calculations.

Reseller commissions and author royalties share the same formula: a
percentage of the unit price, multiplied by the quantity sold. Sales are
stored once and never recalculated.
"""
import logging
from collections import namedtuple
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from flask import current_app, has_app_context

from ebd.exceptions import ValidationError, NotFoundError, DataIntegrityError
from ebd.services.cache_service import COMMISSIONS_MODULE, get_cache, invalidate_commissions
from ebd.services.discount_service import to_decimal

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')

CommissionAmounts = namedtuple('CommissionAmounts', ['per_unit', 'total'])


def compute_commission(unit_price, commission_pct, quantity) -> CommissionAmounts:
    """
    Commission owed on a sale line.

    Args:
        unit_price: Price charged per unit
        commission_pct: Percentage (30 means 30%)
        quantity: Units sold

    Returns:
        CommissionAmounts(per_unit, total), exact (not rounded)

    Example:
        compute_commission(100, 30, 2) -> CommissionAmounts(per_unit=30, total=60)
    """
    per_unit = to_decimal(unit_price, 'unit_price') * to_decimal(commission_pct, 'commission_pct') / Decimal('100')
    return CommissionAmounts(per_unit=per_unit, total=per_unit * int(quantity))


def _cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def record_sale(
    session,
    tenant_id: int,
    product_id: int,
    quantity: int,
    unit_price=None,
    sale_date: Optional[date] = None,
    client_id: Optional[int] = None,
    source: str = 'manual',
    bling_order_id: Optional[str] = None,
    bling_order_number: Optional[str] = None,
    payment_link: Optional[str] = None,
):
    """
    Persist a sale with its commission frozen at the current product percentage.

    Raises:
        ValidationError: quantity/price invalid
        DataIntegrityError: product missing or without commission configuration
    """
    from ebd.models import Product, Sale

    try:
        quantity = int(quantity)
    except (TypeError, ValueError):
        raise ValidationError('quantity inválida')
    if quantity <= 0:
        raise ValidationError('A quantidade deve ser maior que 0')

    product = session.query(Product).filter_by(id=product_id, tenant_id=tenant_id).first()
    if not product:
        raise DataIntegrityError(f'Produto {product_id} não encontrado')
    if not product.commission:
        raise DataIntegrityError(f'Produto "{product.title}" não possui percentual de comissão configurado')

    price = to_decimal(unit_price, 'unit_price') if unit_price is not None else to_decimal(product.price)
    if price < 0:
        raise ValidationError('O preço unitário não pode ser negativo')

    pct = to_decimal(product.commission.percentage)
    amounts = compute_commission(price, pct, quantity)

    sale = Sale(
        tenant_id=tenant_id,
        product_id=product.id,
        client_id=client_id,
        kind=product.commission.kind,
        source=source,
        quantity=quantity,
        unit_price=_cents(price),
        commission_pct=pct,
        commission_unit=_cents(amounts.per_unit),
        commission_total=_cents(amounts.total),
        sale_date=sale_date or date.today(),
        bling_order_id=bling_order_id,
        bling_order_number=bling_order_number,
        payment_link=payment_link,
    )
    session.add(sale)
    session.flush()

    invalidate_commissions(tenant_id)
    logger.info(
        f"Sale recorded: id={sale.id} product={product.id} qty={quantity} "
        f"{sale.kind}={sale.commission_total}"
    )
    return sale


def set_payment_link(session, tenant_id: int, sale_id: int, payment_link: Optional[str]):
    """Set or clear the payment link of a sale (the only mutable field)."""
    from ebd.models import Sale

    if payment_link and not payment_link.startswith(('http://', 'https://')):
        raise ValidationError('payment_link deve ser uma URL http(s)')

    sale = session.query(Sale).filter_by(id=sale_id, tenant_id=tenant_id).first()
    if not sale:
        raise NotFoundError(f'Venda {sale_id} não encontrada')

    sale.payment_link = payment_link or None
    session.flush()
    return sale


def _load_summary(session, tenant_id: int, kind: Optional[str]) -> dict:
    from ebd.models import Sale, PayoutStatus

    query = session.query(Sale).filter(Sale.tenant_id == tenant_id)
    if kind:
        query = query.filter(Sale.kind == kind)

    summary = {
        'kind': kind or 'all',
        'sales': 0,
        'quantity': 0,
        'gross': Decimal('0.00'),
        'commission': Decimal('0.00'),
        'paid': Decimal('0.00'),
        'pending': Decimal('0.00'),
    }
    for sale in query.all():
        summary['sales'] += 1
        summary['quantity'] += sale.quantity
        summary['gross'] += _cents(to_decimal(sale.unit_price) * sale.quantity)
        commission = to_decimal(sale.commission_total)
        summary['commission'] += commission
        if any(batch.status == PayoutStatus.PAID.value for batch in sale.payout_batches):
            summary['paid'] += commission
        else:
            summary['pending'] += commission
    return summary


def commission_summary(session, tenant_id: int, kind: Optional[str] = None) -> dict:
    """
    Totals of sales, gross value and commission, split between paid and pending.

    Cached per tenant; record_sale and payout changes invalidate it.
    """
    if kind and kind not in ('royalty', 'commission'):
        raise ValidationError("kind deve ser 'royalty' ou 'commission'")

    try:
        cache = get_cache()
    except RuntimeError:
        return _load_summary(session, tenant_id, kind)

    ttl = current_app.config.get('CACHE_COMMISSIONS_TTL', 120) if has_app_context() else None
    return cache.memoize(
        tenant_id, COMMISSIONS_MODULE, f"summary:{kind or 'all'}",
        lambda: _load_summary(session, tenant_id, kind), ttl
    )
