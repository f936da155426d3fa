"""
Sync API: batched reconciliation with Bling and Mercado Pago.

Meant to be hit by a scheduler; when CRON_SECRET is set every call needs the
X-Cron-Secret header. Each call processes one bounded page and returns a
cursor for the next one.
"""
import logging
from datetime import date

from flask import Blueprint, request, jsonify, g, current_app

from ebd.database import get_session
from ebd.exceptions import ValidationError, NotFoundError
from ebd.middleware import require_tenant, require_cron_secret, find_tenant
from ebd.services import erp_sync_service, payment_sync_service, providers
from ebd.services.token_manager import TokenManager

logger = logging.getLogger(__name__)

sync_bp = Blueprint('sync', __name__, url_prefix='/api/sync')


def _int_arg(data, key, default=None):
    value = data.get(key, default)
    if value in (None, ''):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{key} deve ser um número inteiro')


def _date_arg(data, key):
    value = data.get(key)
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{key} deve estar no formato AAAA-MM-DD')


@sync_bp.route('/bling/orders', methods=['POST'])
@require_cron_secret
@require_tenant
def sync_bling_orders():
    """Refresh ERP order statuses (and their NF-es) for one page."""
    data = request.get_json(silent=True) or {}
    session = get_session()
    client = providers.get_bling_client(session, g.tenant_id)

    result = erp_sync_service.sync_order_statuses(
        session, g.tenant_id, client,
        limit=_int_arg(data, 'limit'),
        cursor=_int_arg(data, 'cursor'),
        force=bool(data.get('force')),
    )
    session.commit()
    logger.info(f"[BLING] Order sync tenant={g.tenant_id}: {result['synced']} ok, {result['failed']} failed")
    return jsonify(result), 200


@sync_bp.route('/bling/royalties', methods=['POST'])
@require_cron_secret
@require_tenant
def sync_bling_royalties():
    """Import royalty sales from authorized NF-es (date_from/date_to, max_nfes, skip)."""
    data = request.get_json(silent=True) or {}
    session = get_session()
    client = providers.get_bling_client(session, g.tenant_id)

    result = erp_sync_service.sync_royalty_sales(
        session, g.tenant_id, client,
        date_from=_date_arg(data, 'date_from'),
        date_to=_date_arg(data, 'date_to'),
        max_invoices=_int_arg(data, 'max_nfes', 30),
        skip=_int_arg(data, 'skip', 0),
    )
    session.commit()
    return jsonify(result), 200


@sync_bp.route('/payments', methods=['POST'])
@require_cron_secret
@require_tenant
def sync_payments():
    """Reconcile open Mercado Pago payments for one page."""
    data = request.get_json(silent=True) or {}
    session = get_session()

    result = payment_sync_service.sync_pending_payments(
        session, g.tenant_id,
        providers.get_mercadopago(),
        providers.get_bling_client(session, g.tenant_id),
        limit=_int_arg(data, 'limit'),
        cursor=_int_arg(data, 'cursor'),
        max_age_days=_int_arg(data, 'max_age_days', 7),
    )
    session.commit()
    return jsonify(result), 200


@sync_bp.route('/payments/<int:order_id>', methods=['POST'])
@require_cron_secret
@require_tenant
def sync_payment(order_id):
    """Reconcile a single online order."""
    session = get_session()
    result = payment_sync_service.sync_payment_status(
        session, g.tenant_id,
        providers.get_mercadopago(),
        providers.get_bling_client(session, g.tenant_id),
        order_id=order_id,
    )
    session.commit()
    return jsonify(result), 200


@sync_bp.route('/bling/callback')
def bling_oauth_callback():
    """
    OAuth redirect target: trades ?code for the first token pair.

    The tenant slug travels in ?state.
    """
    code = request.args.get('code')
    if not code:
        raise ValidationError('code é obrigatório')

    tenant = find_tenant(request.args.get('state'))
    if tenant is None:
        raise NotFoundError('Tenant não encontrado (state)')

    session = get_session()
    TokenManager(session, tenant.id, provider='bling').exchange_code(
        code, redirect_uri=current_app.config.get('BLING_REDIRECT_URI')
    )
    session.commit()
    return jsonify({'status': 'connected', 'provider': 'bling', 'tenant': tenant.slug}), 200
