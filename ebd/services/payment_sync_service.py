"""
Online order payment reconciliation (Mercado Pago -> local order -> Bling).

An approved payment without an ERP order gets one created with the discounted
item prices. If the ERP call fails the order is still marked approved and the
next sync retries the ERP step.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from flask import current_app, has_app_context

from ebd.exceptions import EbdError, NotFoundError, DataIntegrityError, ValidationError
from ebd.metrics import sync_items_total
from ebd.models import OnlineOrder, SyncStatus
from ebd.services.bling_client import build_order_payload
from ebd.services.discount_service import apply_line_discount, to_decimal, to_percentage, quantize_money
from ebd.services.mercadopago_service import payment_method_for

logger = logging.getLogger(__name__)

MP_STATUS_MAP = {
    'approved': SyncStatus.APPROVED,
    'authorized': SyncStatus.AUTHORIZED,
    'pending': SyncStatus.PROCESSING,
    'in_process': SyncStatus.PROCESSING,
    'in_mediation': SyncStatus.PROCESSING,
    'rejected': SyncStatus.REJECTED,
    'cancelled': SyncStatus.REJECTED,
    'refunded': SyncStatus.REJECTED,
    'charged_back': SyncStatus.REJECTED,
}

# Orders still waiting for a final payment outcome
OPEN_STATUSES = (SyncStatus.PENDING.value, SyncStatus.PROCESSING.value, SyncStatus.AUTHORIZED.value)


def map_mp_status(mp_status: Optional[str]) -> SyncStatus:
    return MP_STATUS_MAP.get((mp_status or '').lower(), SyncStatus.PROCESSING)


def erp_items_for_order(order: OnlineOrder) -> List[dict]:
    """Order items as ERP items, unit value = price * (1 - discount_pct/100)."""
    items = []
    for item in order.items or []:
        discount_pct = to_percentage(item.get('discount_pct'), 'discount_pct')
        items.append({
            'codigo': item.get('sku') or item.get('variant_id') or '0',
            'descricao': item.get('title') or 'Produto',
            'unidade': 'UN',
            'quantidade': int(item.get('quantity') or 1),
            'valor': apply_line_discount(quantize_money(to_decimal(item.get('price'), 'price')), discount_pct),
        })
    return items


def _find_order(session, tenant_id: int, order_id=None, payment_id=None) -> OnlineOrder:
    if order_id is None and payment_id is None:
        raise ValidationError('Informe order_id ou payment_id')
    query = session.query(OnlineOrder).filter(OnlineOrder.tenant_id == tenant_id)
    if order_id is not None:
        query = query.filter(OnlineOrder.id == int(order_id))
    else:
        query = query.filter(OnlineOrder.mercadopago_payment_id == str(payment_id))
    order = query.first()
    if not order:
        raise NotFoundError(f'Pedido não encontrado (order_id={order_id}, payment_id={payment_id})')
    return order


def _create_erp_order(order: OnlineOrder, bling) -> str:
    contact_id = None
    if order.customer_document:
        contact = bling.search_contact(document=order.customer_document)
        contact_id = contact.get('id') if contact else None
    elif order.customer_email:
        contact = bling.search_contact(email=order.customer_email)
        contact_id = contact.get('id') if contact else None

    payload = build_order_payload(
        erp_items_for_order(order),
        contact_id=contact_id,
        notes=f'Pedido online #{order.id} - pagamento Mercado Pago {order.mercadopago_payment_id} ({order.payment_method})',
        store_number=order.id,
    )
    created = bling.create_order(payload)
    if created.get('id') is None:
        raise DataIntegrityError('Bling não retornou o id do pedido criado')
    return str(created['id'])


def sync_payment_status(session, tenant_id: int, mp, bling, order_id=None, payment_id=None) -> dict:
    """
    Reconcile one online order with its Mercado Pago payment.

    Returns:
        dict with order id, status, mp_status and bling_order_id
    """
    order = _find_order(session, tenant_id, order_id, payment_id)

    if order.bling_order_id and order.status == SyncStatus.APPROVED.value:
        logger.info(f"[MP] Order {order.id} already synced with Bling {order.bling_order_id}")
        return {'order_id': order.id, 'status': order.status, 'mp_status': order.mp_status,
                'bling_order_id': order.bling_order_id, 'already_synced': True}

    if not order.mercadopago_payment_id:
        raise DataIntegrityError(f'Pedido {order.id} sem pagamento Mercado Pago vinculado')

    payment = mp.get_payment(order.mercadopago_payment_id)
    status = map_mp_status(payment.get('status'))

    order.mp_status = payment.get('status')
    order.mp_status_detail = payment.get('status_detail')
    order.payment_method = payment_method_for(payment.get('payment_type_id'), order.payment_method)
    order.status = status.value

    erp_error = None
    if status == SyncStatus.APPROVED and not order.bling_order_id:
        if bling is None:
            erp_error = 'Integração com o Bling não configurada'
        else:
            try:
                order.bling_order_id = _create_erp_order(order, bling)
                order.last_error = None
                logger.info(f"[MP] Order {order.id} approved, Bling order {order.bling_order_id} created")
            except EbdError as e:
                erp_error = e.message
        if erp_error:
            order.last_error = erp_error
            logger.error(f"[MP] Order {order.id} approved but ERP order failed: {erp_error}")

    session.flush()
    return {
        'order_id': order.id,
        'status': order.status,
        'mp_status': order.mp_status,
        'payment_method': order.payment_method,
        'bling_order_id': order.bling_order_id,
        'erp_error': erp_error,
    }


def sync_pending_payments(
    session,
    tenant_id: int,
    mp,
    bling,
    limit: Optional[int] = None,
    cursor: Optional[int] = None,
    max_age_days: int = 7,
) -> dict:
    """
    Reconcile a bounded batch of orders still waiting for payment (or for
    their ERP order after approval).
    """
    limit = int(limit or (current_app.config.get('SYNC_PAGE_SIZE', 50) if has_app_context() else 50))
    cutoff = datetime.utcnow() - timedelta(days=max_age_days)

    query = session.query(OnlineOrder).filter(
        OnlineOrder.tenant_id == tenant_id,
        OnlineOrder.mercadopago_payment_id.isnot(None),
        OnlineOrder.created_at >= cutoff,
        (OnlineOrder.status.in_(OPEN_STATUSES))
        | ((OnlineOrder.status == SyncStatus.APPROVED.value) & (OnlineOrder.bling_order_id.is_(None))),
    )
    if cursor:
        query = query.filter(OnlineOrder.id > int(cursor))
    orders = query.order_by(OnlineOrder.id).limit(limit).all()

    results = []
    for order in orders:
        try:
            outcome = sync_payment_status(session, tenant_id, mp, bling, order_id=order.id)
            results.append({'success': True, **outcome})
            sync_items_total.labels(flow='mp_payments', result=outcome['status']).inc()
        except EbdError as e:
            logger.error(f"[MP] Payment sync for order {order.id} failed: {e.message}")
            order.last_error = e.message
            results.append({'order_id': order.id, 'success': False, 'error': e.message})
            sync_items_total.labels(flow='mp_payments', result='error').inc()
        except Exception as e:
            logger.exception(f"[MP] Unexpected error syncing order {order.id}: {e}")
            order.last_error = str(e)[:500]
            results.append({'order_id': order.id, 'success': False, 'error': str(e)})
            sync_items_total.labels(flow='mp_payments', result='error').inc()

    session.flush()
    last_id = orders[-1].id if orders else None
    remaining = query.filter(OnlineOrder.id > last_id).count() if last_id is not None else 0

    def count(status):
        return sum(1 for r in results if r.get('success') and r.get('status') == status)

    return {
        'processed': len(results),
        'approved': count(SyncStatus.APPROVED.value),
        'rejected': count(SyncStatus.REJECTED.value),
        'pending': sum(1 for r in results if r.get('success') and r.get('status') in OPEN_STATUSES),
        'failed': sum(1 for r in results if not r.get('success')),
        'results': results,
        'next_cursor': last_id if remaining else None,
        'remaining': remaining,
    }
