"""
Payout batches (lotes de pagamento) and royalty redemptions (resgates).

A batch groups sales whose commission is paid together. Status flow:

    pending -> approved | paid | cancelled
    approved -> paid | cancelled
    paid, cancelled: terminal

A resgate batch converts royalty credit into products: on approval the
requested items become an ERP order priced with the redemption discount.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional

from ebd.exceptions import ValidationError, BusinessLogicError, NotFoundError
from ebd.models import Sale, PayoutBatch, PayoutStatus, PayoutKind
from ebd.services.cache_service import invalidate_commissions
from ebd.services.discount_service import apply_line_discount, to_decimal, to_percentage, quantize_money

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    PayoutStatus.PENDING: {PayoutStatus.APPROVED, PayoutStatus.PAID, PayoutStatus.CANCELLED},
    PayoutStatus.APPROVED: {PayoutStatus.PAID, PayoutStatus.CANCELLED},
    PayoutStatus.PAID: set(),
    PayoutStatus.CANCELLED: set(),
}

# Batches in these states still hold their sales
HOLDING_STATUSES = (PayoutStatus.PENDING.value, PayoutStatus.APPROVED.value, PayoutStatus.PAID.value)


def get_batch(session, tenant_id: int, batch_id: int) -> PayoutBatch:
    batch = session.query(PayoutBatch).filter_by(id=batch_id, tenant_id=tenant_id).first()
    if not batch:
        raise NotFoundError(f'Lote {batch_id} não encontrado')
    return batch


def create_batch(session, tenant_id: int, sale_ids: Iterable[int], kind: str = PayoutKind.COMMISSION.value,
                 notes: Optional[str] = None) -> PayoutBatch:
    """
    Group sales into a new pending batch.

    Raises:
        ValidationError: empty sale list or unknown kind
        NotFoundError: a sale does not exist for this tenant
        BusinessLogicError: sale of another kind, or already held by a batch
    """
    if kind not in (PayoutKind.COMMISSION.value, PayoutKind.ROYALTY.value):
        raise ValidationError("kind deve ser 'commission' ou 'royalty'")

    ids = sorted({int(sale_id) for sale_id in (sale_ids or [])})
    if not ids:
        raise ValidationError('Informe ao menos uma venda')

    sales = session.query(Sale).filter(Sale.tenant_id == tenant_id, Sale.id.in_(ids)).all()
    found = {sale.id for sale in sales}
    missing = [sale_id for sale_id in ids if sale_id not in found]
    if missing:
        raise NotFoundError(f'Vendas não encontradas: {missing}')

    for sale in sales:
        if sale.kind != kind:
            raise BusinessLogicError(f'Venda {sale.id} é do tipo {sale.kind}, não {kind}')
        held = [b for b in sale.payout_batches if b.status in HOLDING_STATUSES]
        if held:
            raise BusinessLogicError(
                f'Venda {sale.id} já pertence ao lote {held[0].id} ({held[0].status})', status_code=409
            )

    batch = PayoutBatch(
        tenant_id=tenant_id,
        kind=kind,
        status=PayoutStatus.PENDING.value,
        total=sum((to_decimal(sale.commission_total) for sale in sales), Decimal('0.00')),
        notes=notes,
    )
    batch.sales = sales
    session.add(batch)
    session.flush()

    invalidate_commissions(tenant_id)
    logger.info(f"Payout batch created: id={batch.id} kind={kind} sales={len(sales)} total={batch.total}")
    return batch


def build_resgate_order_items(items: List[dict]) -> List[dict]:
    """
    Convert redemption items into ERP order items.

    Each input item has sku, title, quantity, unit_price and discount_pct; the
    ERP item is priced at unit_price * (1 - discount_pct/100).
    """
    order_items = []
    for index, item in enumerate(items or []):
        try:
            quantity = int(item.get('quantity', 0))
        except (TypeError, ValueError):
            raise ValidationError(f'items[{index}].quantity inválida')
        if quantity <= 0:
            raise ValidationError(f'items[{index}].quantity deve ser maior que 0')

        discount_pct = to_percentage(item.get('discount_pct'), 'discount_pct')
        if item.get('sku') is None:
            logger.warning(f"Resgate item without SKU: {item.get('title')!r}")

        order_items.append({
            'codigo': item.get('sku') or '',
            'descricao': item.get('title') or '',
            'unidade': 'UN',
            'quantidade': quantity,
            'valor': apply_line_discount(item.get('unit_price'), discount_pct),
            'preco_cheio': quantize_money(to_decimal(item.get('unit_price'), 'unit_price')),
            'desconto': discount_pct,
        })
    return order_items


def create_resgate(session, tenant_id: int, items: List[dict], notes: Optional[str] = None) -> PayoutBatch:
    """Register a pending royalty redemption for the given items."""
    if not items:
        raise ValidationError('Informe ao menos um item para o resgate')

    order_items = build_resgate_order_items(items)
    total = sum((item['valor'] * item['quantidade'] for item in order_items), Decimal('0.00'))

    batch = PayoutBatch(
        tenant_id=tenant_id,
        kind=PayoutKind.RESGATE.value,
        status=PayoutStatus.PENDING.value,
        total=quantize_money(total),
        items=[dict(item) for item in items],
        notes=notes,
    )
    session.add(batch)
    session.flush()
    logger.info(f"Resgate created: id={batch.id} items={len(items)} total={batch.total}")
    return batch


def transition(session, batch: PayoutBatch, new_status, reference: Optional[str] = None) -> PayoutBatch:
    """Move a batch to a new status, enforcing the state machine."""
    try:
        target = PayoutStatus(new_status)
        current = PayoutStatus(batch.status)
    except ValueError:
        raise ValidationError(f'Status inválido: {new_status}')

    if target not in ALLOWED_TRANSITIONS[current]:
        raise BusinessLogicError(
            f'Transição inválida do lote {batch.id}: {current.value} -> {target.value}', status_code=409
        )

    now = datetime.utcnow()
    batch.status = target.value
    if target == PayoutStatus.APPROVED:
        batch.approved_at = now
    elif target == PayoutStatus.PAID:
        batch.paid_at = now
        if reference:
            batch.reference = reference
    elif target == PayoutStatus.CANCELLED:
        batch.cancelled_at = now

    session.flush()
    invalidate_commissions(batch.tenant_id)
    logger.info(f"Payout batch {batch.id}: {current.value} -> {target.value}")
    return batch


def approve(session, tenant_id: int, batch_id: int, bling=None, contact_id=None) -> PayoutBatch:
    """
    Approve a pending batch.

    For resgates the ERP order is created first; if the ERP call fails the
    batch stays pending and the ProviderError propagates.
    """
    batch = get_batch(session, tenant_id, batch_id)

    if batch.kind == PayoutKind.RESGATE.value:
        if batch.status != PayoutStatus.PENDING.value:
            raise BusinessLogicError(f'Resgate já foi processado. Status atual: {batch.status}', status_code=409)
        if bling is None:
            raise BusinessLogicError('Integração com o Bling não configurada')

        from ebd.services.bling_client import build_order_payload

        payload = build_order_payload(
            build_resgate_order_items(batch.items or []),
            contact_id=contact_id,
            notes='\n'.join(filter(None, [
                '** RESGATE DE ROYALTIES **',
                f'Obs: {batch.notes}' if batch.notes else '',
                f'Valor em Royalties: R$ {batch.total}',
            ])),
        )
        created = bling.create_order(payload)
        batch.bling_order_id = str(created.get('id')) if created.get('id') is not None else None
        logger.info(f"Resgate {batch.id} -> Bling order {batch.bling_order_id}")

    return transition(session, batch, PayoutStatus.APPROVED)


def mark_paid(session, tenant_id: int, batch_id: int, reference: Optional[str] = None) -> PayoutBatch:
    return transition(session, get_batch(session, tenant_id, batch_id), PayoutStatus.PAID, reference)


def cancel(session, tenant_id: int, batch_id: int) -> PayoutBatch:
    """Cancel a batch; its sales become available for a new one."""
    return transition(session, get_batch(session, tenant_id, batch_id), PayoutStatus.CANCELLED)
