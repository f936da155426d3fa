"""Online orders registered at checkout, before the Mercado Pago payment settles."""
import logging

from ebd.exceptions import ValidationError
from ebd.models import OnlineOrder, SyncStatus
from ebd.services.discount_service import (
    parse_line_items,
    quote_for_client,
    resolve_discount,
    quantize_money,
    to_decimal,
)
from ebd.utils.documents import clean_document

logger = logging.getLogger(__name__)


def create_online_order(session, tenant_id: int, data: dict) -> OnlineOrder:
    """
    Store a checkout order with the discount resolved for its client.

    Each stored item keeps the discount_pct of its line so the ERP order can
    be rebuilt later at the same prices. Without client_id no discount applies.
    """
    raw_items = data.get('items')
    items = parse_line_items(raw_items)

    if data.get('client_id') is not None:
        result = quote_for_client(session, tenant_id, data['client_id'], items)
    else:
        result = resolve_discount(items)

    shipping_cost = to_decimal(data.get('shipping_cost'), 'shipping_cost')
    if shipping_cost < 0:
        raise ValidationError('shipping_cost não pode ser negativo')

    stored_items = []
    for raw, line in zip(raw_items, result.lines):
        stored_items.append({
            'sku': raw.get('sku'),
            'title': line.title,
            'price': str(quantize_money(to_decimal(raw.get('unit_price', raw.get('price'))))),
            'quantity': line.quantity,
            'discount_pct': str(line.discount_pct),
        })

    payment_id = data.get('mercadopago_payment_id')
    order = OnlineOrder(
        tenant_id=tenant_id,
        client_id=data.get('client_id'),
        customer_name=data.get('customer_name'),
        customer_email=data.get('customer_email'),
        customer_document=clean_document(data.get('customer_document')) or None,
        customer_phone=data.get('customer_phone'),
        items=stored_items,
        shipping_method=data.get('shipping_method'),
        shipping_cost=quantize_money(shipping_cost),
        total=quantize_money(result.total + shipping_cost),
        mercadopago_payment_id=str(payment_id) if payment_id else None,
        payment_method=data.get('payment_method'),
        status=SyncStatus.PENDING.value,
    )
    session.add(order)
    session.flush()
    logger.info(
        f"Online order {order.id} registered: total={order.total} policy={result.policy.value} "
        f"payment={order.mercadopago_payment_id}"
    )
    return order
