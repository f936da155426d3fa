"""
Reconciliation of local orders, invoices and royalty sales with Bling.

Batch operations are bounded (limit/cursor or skip/max) and isolate failures
per item: one bad order never aborts the batch, it shows up in `results`.
Services flush; the caller commits.
"""
import logging
from datetime import datetime, date, timedelta
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from flask import current_app, has_app_context

from ebd.exceptions import EbdError, BusinessLogicError, ValidationError
from ebd.metrics import sync_items_total
from ebd.models import ErpOrder, ErpOrderStatus, Invoice, Product, Sale, SyncStatus
from ebd.services import bling_client as bling
from ebd.services.commission_service import record_sale
from ebd.services.discount_service import to_decimal

logger = logging.getLogger(__name__)

# Per-item failures that are reported instead of aborting a batch
ITEM_ERRORS = (EbdError, KeyError, TypeError, ValueError)

ORDER_STATUS_BY_SITUACAO = {
    bling.SITUACAO_EM_ABERTO: ErpOrderStatus.EM_ABERTO,
    bling.SITUACAO_ATENDIDO: ErpOrderStatus.ATENDIDO,
    bling.SITUACAO_CANCELADO: ErpOrderStatus.CANCELADO,
    bling.SITUACAO_EM_ANDAMENTO: ErpOrderStatus.EM_ANDAMENTO,
}

ORDER_SYNC_STATUS = {
    ErpOrderStatus.EM_ABERTO: SyncStatus.PROCESSING,
    ErpOrderStatus.EM_ANDAMENTO: SyncStatus.PROCESSING,
    ErpOrderStatus.ATENDIDO: SyncStatus.APPROVED,
    ErpOrderStatus.CANCELADO: SyncStatus.REJECTED,
}

ROYALTY_PAGE_SIZE = 100
ROYALTY_MAX_PAGES = 5


def _config(key, default):
    return current_app.config.get(key, default) if has_app_context() else default


def _parse_bling_datetime(value) -> Optional[datetime]:
    """'2024-05-01 10:20:00' or '2024-05-01' -> datetime."""
    if not value:
        return None
    text = str(value).strip()
    for fmt, size in (('%Y-%m-%d %H:%M:%S', 19), ('%Y-%m-%dT%H:%M:%S', 19), ('%Y-%m-%d', 10)):
        try:
            return datetime.strptime(text[:size], fmt)
        except ValueError:
            continue
    return None


def map_order_situacao(situacao_id: Optional[int]) -> Optional[ErpOrderStatus]:
    """Internal status for a Bling situacao id (None for ids we do not track)."""
    return ORDER_STATUS_BY_SITUACAO.get(situacao_id)


def invoice_sync_status(situacao: Optional[int], access_key: Optional[str] = None,
                        number: Optional[str] = None) -> SyncStatus:
    """
    NF-e situacao -> sync status.

    Authorized when situacao is 6, or when the access key has 44 digits and
    the invoice already has a number.
    """
    has_valid_key = bool(access_key) and len(str(access_key)) == 44
    if situacao == bling.NFE_AUTORIZADA or (has_valid_key and number):
        return SyncStatus.AUTHORIZED
    if situacao == bling.NFE_REJEITADA:
        return SyncStatus.REJECTED
    if situacao == bling.NFE_DENEGADA:
        return SyncStatus.DENIED
    return SyncStatus.PROCESSING


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------

def _apply_order_payload(order: ErpOrder, payload: dict) -> None:
    situacao = payload.get('situacao')
    situacao_id = bling.situacao_value(situacao.get('id') if isinstance(situacao, dict) else situacao)
    if payload.get('numero') is not None:
        order.bling_order_number = str(payload['numero'])
    if isinstance(situacao, dict) and situacao.get('valor') is not None:
        order.bling_status = str(situacao['valor'])
    if situacao_id is not None:
        order.bling_status_id = situacao_id
        status = map_order_situacao(situacao_id)
        if status is not None:
            order.status = status.value
            order.sync_status = ORDER_SYNC_STATUS[status].value
    if payload.get('total') is not None:
        order.total = to_decimal(payload['total'], 'total')
    order.last_error = None


def upsert_erp_order(session, tenant_id: int, payload: dict, client_id: Optional[int] = None):
    """
    Insert or overwrite the local mirror of a Bling order, keyed by its id.

    Returns:
        (ErpOrder, created)
    """
    bling_order_id = payload.get('id')
    if bling_order_id in (None, ''):
        raise ValidationError('Pedido Bling sem id')
    bling_order_id = str(bling_order_id)

    order = session.query(ErpOrder).filter_by(tenant_id=tenant_id, bling_order_id=bling_order_id).first()
    created = order is None
    if created:
        order = ErpOrder(
            tenant_id=tenant_id,
            bling_order_id=bling_order_id,
            client_id=client_id,
            status=ErpOrderStatus.EM_ABERTO.value,
            sync_status=SyncStatus.PENDING.value,
        )
        session.add(order)
    elif client_id is not None:
        order.client_id = client_id

    _apply_order_payload(order, payload)
    order.synced_at = datetime.utcnow()
    session.flush()
    return order, created


def sync_order_statuses(
    session,
    tenant_id: int,
    client,
    limit: Optional[int] = None,
    cursor: Optional[int] = None,
    force: bool = False,
    now: Optional[datetime] = None,
) -> dict:
    """
    Refresh the status of a bounded page of local orders from Bling.

    Orders synced in the last SYNC_STALE_MINUTES are skipped unless `force`.
    Orders that became ATENDIDO have their NF-es synced afterwards.
    """
    limit = int(limit or _config('SYNC_PAGE_SIZE', 50))
    now = now or datetime.utcnow()
    threshold = now - timedelta(minutes=_config('SYNC_STALE_MINUTES', 30))

    query = session.query(ErpOrder).filter(ErpOrder.tenant_id == tenant_id)
    if not force:
        query = query.filter((ErpOrder.synced_at.is_(None)) | (ErpOrder.synced_at < threshold))
    if cursor:
        query = query.filter(ErpOrder.id > int(cursor))
    orders = query.order_by(ErpOrder.id).limit(limit).all()

    results = []
    newly_fulfilled: List[ErpOrder] = []

    for order in orders:
        previous_status = order.status
        try:
            data = client.get_order(order.bling_order_id)
            order.synced_at = now
            if data is None:
                order.last_error = 'Pedido não encontrado no Bling'
                results.append({'id': order.id, 'bling_order_id': order.bling_order_id,
                                'success': True, 'status': 'NOT_FOUND'})
                sync_items_total.labels(flow='bling_orders', result='not_found').inc()
                continue

            _apply_order_payload(order, data)
            if order.status == ErpOrderStatus.ATENDIDO.value and previous_status != ErpOrderStatus.ATENDIDO.value:
                logger.info(f"[SYNC] Order {order.bling_order_id} became ATENDIDO, queueing NF-e sync")
                newly_fulfilled.append(order)

            results.append({'id': order.id, 'bling_order_id': order.bling_order_id,
                            'success': True, 'status': order.bling_status or order.status})
            sync_items_total.labels(flow='bling_orders', result='synced').inc()
        except ITEM_ERRORS as e:
            message = getattr(e, 'message', None) or str(e)
            logger.error(f"[SYNC] Order {order.bling_order_id} failed: {message}")
            order.sync_status = SyncStatus.ERROR.value
            order.last_error = message
            results.append({'id': order.id, 'bling_order_id': order.bling_order_id,
                            'success': False, 'error': message})
            sync_items_total.labels(flow='bling_orders', result='error').inc()

    session.flush()

    invoices = None
    if newly_fulfilled:
        invoices = sync_invoices_for_orders(session, tenant_id, client, newly_fulfilled)

    last_id = orders[-1].id if orders else None
    remaining = query.filter(ErpOrder.id > last_id).count() if last_id is not None else 0

    synced = sum(1 for r in results if r['success'])
    logger.info(f"[SYNC] Bling orders: {synced} synced, {len(results) - synced} failed, {remaining} remaining")
    return {
        'synced': synced,
        'failed': len(results) - synced,
        'results': results,
        'nfe_triggered': len(newly_fulfilled),
        'invoices': invoices,
        'next_cursor': last_id if remaining else None,
        'remaining': remaining,
    }


# ---------------------------------------------------------------------------
# Invoices (NF-e)
# ---------------------------------------------------------------------------

def _danfe_url(payload: dict) -> Optional[str]:
    if payload.get('linkDanfe'):
        return payload['linkDanfe']
    xml = payload.get('xml')
    if isinstance(xml, dict):
        return xml.get('linkDanfe') or xml.get('link')
    return None


def upsert_invoice(session, tenant_id: int, payload: dict, erp_order: Optional[ErpOrder] = None):
    """
    Insert or overwrite a NF-e keyed by its Bling id.

    Returns:
        (Invoice, created)
    """
    nfe_id = payload.get('id')
    if nfe_id in (None, ''):
        raise ValidationError('NF-e Bling sem id')
    nfe_id = str(nfe_id)

    invoice = session.query(Invoice).filter_by(tenant_id=tenant_id, bling_nfe_id=nfe_id).first()
    created = invoice is None
    if created:
        invoice = Invoice(tenant_id=tenant_id, bling_nfe_id=nfe_id)
        session.add(invoice)

    if erp_order is not None:
        invoice.erp_order_id = erp_order.id
        invoice.bling_order_id = erp_order.bling_order_id

    situacao = bling.situacao_value(payload.get('situacao'))
    number = str(payload['numero']) if payload.get('numero') else invoice.number
    access_key = payload.get('chaveAcesso') or invoice.access_key

    invoice.situacao = situacao
    invoice.number = number
    invoice.access_key = access_key
    invoice.sync_status = invoice_sync_status(situacao, access_key, number).value
    invoice.danfe_url = _danfe_url(payload) or invoice.danfe_url
    xml = payload.get('xml')
    if isinstance(xml, str) and xml.startswith('http'):
        invoice.xml_url = xml
    invoice.issued_at = _parse_bling_datetime(payload.get('dataEmissao')) or invoice.issued_at
    invoice.synced_at = datetime.utcnow()
    session.flush()
    return invoice, created


def sync_invoices_for_orders(session, tenant_id: int, client, orders: Iterable[ErpOrder]) -> dict:
    """Fetch and upsert the NF-es of each order, isolating failures per order."""
    results = []
    for order in orders:
        try:
            summaries = client.invoices_for_order(order.bling_order_id)
            stored = []
            for summary in summaries:
                detail = client.get_invoice(summary['id']) or summary
                invoice, _ = upsert_invoice(session, tenant_id, detail, erp_order=order)
                stored.append(invoice.to_dict())
            results.append({'bling_order_id': order.bling_order_id, 'success': True, 'invoices': stored})
            sync_items_total.labels(flow='bling_invoices', result='synced').inc()
        except ITEM_ERRORS as e:
            message = getattr(e, 'message', None) or str(e)
            logger.error(f"[SYNC] NF-e sync for order {order.bling_order_id} failed: {message}")
            results.append({'bling_order_id': order.bling_order_id, 'success': False, 'error': message})
            sync_items_total.labels(flow='bling_invoices', result='error').inc()

    synced = sum(1 for r in results if r['success'])
    return {'synced': synced, 'failed': len(results) - synced, 'results': results}


# ---------------------------------------------------------------------------
# Royalty sales from authorized NF-es
# ---------------------------------------------------------------------------

def _royalty_product_index(session, tenant_id: int) -> Dict[str, Product]:
    """Products with a commission configured, indexed by Bling id and SKU."""
    products = session.query(Product).filter(
        Product.tenant_id == tenant_id,
        Product.active.is_(True),
    ).all()
    index = {}
    for product in products:
        if not product.commission:
            continue
        if product.sku:
            index.setdefault(f'sku:{product.sku}', product)
        if product.bling_product_id:
            index[f'id:{product.bling_product_id}'] = product
    return index


def _match_product(index: Dict[str, Product], item: dict) -> Optional[Product]:
    produto = item.get('produto') or {}
    product_id = produto.get('id')
    codigo = item.get('codigo') or produto.get('codigo')
    product = index.get(f'id:{product_id}') if product_id is not None else None
    if product is None and codigo:
        product = index.get(f'sku:{codigo}')
    return product


def _list_authorized_invoices(client, date_from: date, date_to: date) -> List[dict]:
    authorized = []
    for page in range(1, ROYALTY_MAX_PAGES + 1):
        nfes = client.list_invoices(
            page=page, limit=ROYALTY_PAGE_SIZE,
            dataEmissaoInicial=date_from.isoformat(), dataEmissaoFinal=date_to.isoformat(),
        )
        if not nfes:
            break
        page_authorized = [n for n in nfes if bling.situacao_value(n.get('situacao')) == bling.NFE_AUTORIZADA]
        authorized.extend(page_authorized)
        logger.info(f"[BLING] NF-e page {page}: {len(page_authorized)} authorized of {len(nfes)}")
        if len(nfes) < ROYALTY_PAGE_SIZE:
            break
    return authorized


def _import_nfe_royalties(session, tenant_id: int, client, index, nfe: dict) -> Optional[dict]:
    """
    Record the royalty sales of one NF-e.

    Returns None when the NF-e has no items, else the books found, the sales
    already stored and the new (sale, gross) pairs.
    """
    detail = client.get_invoice(nfe['id'])
    items = (detail or {}).get('itens') or []
    if not items:
        return None

    # One sale per product per NF-e; repeated lines are merged
    books_found = 0
    lines: Dict[int, dict] = {}
    for item in items:
        product = _match_product(index, item)
        if product is None:
            continue
        books_found += 1
        quantity = int(item.get('quantidade') or 1)
        unit_price = to_decimal(item.get('valor') or item.get('valorUnidade') or product.price)
        line = lines.setdefault(product.id, {'product': product, 'quantity': 0, 'gross': Decimal('0')})
        line['quantity'] += quantity
        line['gross'] += unit_price * quantity

    nfe_id = str(detail.get('id') or nfe['id'])
    issued = _parse_bling_datetime(detail.get('dataEmissao'))
    already_existing = 0
    sales = []
    for product_id, line in lines.items():
        exists = session.query(Sale.id).filter_by(
            tenant_id=tenant_id, bling_order_id=nfe_id, product_id=product_id
        ).first()
        if exists:
            already_existing += 1
            continue
        sale = record_sale(
            session, tenant_id, product_id,
            quantity=line['quantity'],
            unit_price=line['gross'] / line['quantity'],
            sale_date=issued.date() if issued else date.today(),
            source='bling_nfe',
            bling_order_id=nfe_id,
            bling_order_number=str(detail['numero']) if detail.get('numero') else None,
        )
        sales.append((sale, line['gross']))
    return {'books_found': books_found, 'already_existing': already_existing, 'sales': sales}


def sync_royalty_sales(
    session,
    tenant_id: int,
    client,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    max_invoices: int = 30,
    skip: int = 0,
) -> dict:
    """
    Import royalty sales from authorized NF-es issued in a date range.

    Items are matched to products by Bling product id, then by SKU. A sale is
    stored once per (NF-e, product); re-running the same window inserts
    nothing new.
    """
    date_to = date_to or date.today()
    date_from = date_from or (date_to - timedelta(days=30))
    if date_from > date_to:
        raise ValidationError('date_from deve ser anterior a date_to')
    skip = max(int(skip or 0), 0)
    max_invoices = max(int(max_invoices or 30), 1)

    index = _royalty_product_index(session, tenant_id)
    if not index:
        raise BusinessLogicError('Nenhum produto com comissão e vínculo Bling (id ou SKU)')

    authorized = _list_authorized_invoices(client, date_from, date_to)
    total_available = len(authorized)
    batch = authorized[skip:skip + max_invoices]

    result = {
        'nfes_processed': 0,
        'synced': 0,
        'skipped': 0,
        'books_found': 0,
        'inserted': 0,
        'already_existing': 0,
        'errors': 0,
        'summary': {
            'total_quantity': 0,
            'total_sales_value': Decimal('0.00'),
            'total_royalties': Decimal('0.00'),
        },
    }

    for nfe in batch:
        result['nfes_processed'] += 1
        savepoint = session.begin_nested()
        try:
            imported = _import_nfe_royalties(session, tenant_id, client, index, nfe)
            savepoint.commit()
        except ITEM_ERRORS as e:
            savepoint.rollback()
            message = getattr(e, 'message', None) or str(e)
            logger.error(f"[SYNC] NF-e {nfe.get('id')} royalty import failed: {message}")
            result['errors'] += 1
            sync_items_total.labels(flow='bling_royalties', result='error').inc()
            continue

        if imported is None:
            result['skipped'] += 1
            continue
        result['synced'] += 1
        result['books_found'] += imported['books_found']
        result['already_existing'] += imported['already_existing']
        for sale, gross in imported['sales']:
            result['inserted'] += 1
            result['summary']['total_quantity'] += sale.quantity
            result['summary']['total_sales_value'] += gross
            result['summary']['total_royalties'] += sale.commission_total
        sync_items_total.labels(flow='bling_royalties', result='synced').inc()

    processed_until = skip + len(batch)
    result['total_available'] = total_available
    result['next_skip'] = processed_until if processed_until < total_available else None
    logger.info(
        f"[SYNC] Royalties: {result['nfes_processed']} NF-es, {result['inserted']} new sales, "
        f"{result['errors']} errors ({processed_until}/{total_available})"
    )
    return result
