"""Commissions API: sales, payment links, summaries and payout batches."""
import logging
from datetime import date

from flask import Blueprint, request, jsonify, g

from ebd.database import get_session
from ebd.exceptions import ValidationError
from ebd.middleware import require_tenant
from ebd.models import PayoutKind
from ebd.services import commission_service, payout_service, providers
from ebd.services.email_service import send_payout_paid_email, send_resgate_approved_email
from ebd.services.whatsapp_service import send_payout_paid_whatsapp, send_resgate_approved_whatsapp

logger = logging.getLogger(__name__)

commissions_bp = Blueprint('commissions', __name__, url_prefix='/api/commissions')


def _parse_date(value, field_name):
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field_name} deve estar no formato AAAA-MM-DD')


@commissions_bp.route('/sales', methods=['POST'])
@require_tenant
def create_sale():
    """Record a sale; the commission is frozen at the product's current percentage."""
    data = request.get_json(silent=True) or {}
    if data.get('product_id') is None:
        raise ValidationError('product_id é obrigatório')

    session = get_session()
    sale = commission_service.record_sale(
        session,
        g.tenant_id,
        product_id=data['product_id'],
        quantity=data.get('quantity'),
        unit_price=data.get('unit_price'),
        sale_date=_parse_date(data.get('sale_date'), 'sale_date'),
        client_id=data.get('client_id'),
        payment_link=data.get('payment_link'),
    )
    session.commit()
    return jsonify(sale.to_dict()), 201


@commissions_bp.route('/sales/<int:sale_id>/payment-link', methods=['PATCH'])
@require_tenant
def update_payment_link(sale_id):
    data = request.get_json(silent=True) or {}
    session = get_session()
    sale = commission_service.set_payment_link(session, g.tenant_id, sale_id, data.get('payment_link'))
    session.commit()
    return jsonify(sale.to_dict()), 200


@commissions_bp.route('/summary')
@require_tenant
def summary():
    """Totals split between paid and pending (?kind=royalty|commission)."""
    result = commission_service.commission_summary(get_session(), g.tenant_id, request.args.get('kind'))
    return jsonify(result), 200


@commissions_bp.route('/payouts', methods=['POST'])
@require_tenant
def create_payout():
    """
    Create a payout batch.

    Body:
        kind: commission | royalty (with sale_ids) or resgate (with items)
    """
    data = request.get_json(silent=True) or {}
    kind = data.get('kind', PayoutKind.COMMISSION.value)
    session = get_session()

    if kind == PayoutKind.RESGATE.value:
        batch = payout_service.create_resgate(session, g.tenant_id, data.get('items') or [], data.get('notes'))
    else:
        batch = payout_service.create_batch(session, g.tenant_id, data.get('sale_ids') or [], kind, data.get('notes'))
    session.commit()
    return jsonify(batch.to_dict()), 201


@commissions_bp.route('/payouts/<int:batch_id>/<action>', methods=['POST'])
@require_tenant
def payout_action(batch_id, action):
    """
    Move a batch through its lifecycle.

    Actions:
        approve: resgates create the Bling order first (optional contact_id)
        pay: optional reference
        cancel

    approve (resgates) and pay notify through notify_email and/or notify_phone (WhatsApp).
    """
    data = request.get_json(silent=True) or {}
    session = get_session()

    if action == 'approve':
        batch = payout_service.get_batch(session, g.tenant_id, batch_id)
        bling = None
        if batch.kind == PayoutKind.RESGATE.value:
            bling = providers.get_bling_client(session, g.tenant_id)
        batch = payout_service.approve(session, g.tenant_id, batch_id, bling=bling, contact_id=data.get('contact_id'))
        session.commit()
        if batch.kind == PayoutKind.RESGATE.value:
            if data.get('notify_email'):
                send_resgate_approved_email(session, batch, data['notify_email'])
            if data.get('notify_phone'):
                send_resgate_approved_whatsapp(session, batch, data['notify_phone'])
            session.commit()
    elif action == 'pay':
        batch = payout_service.mark_paid(session, g.tenant_id, batch_id, data.get('reference'))
        session.commit()
        if data.get('notify_email'):
            send_payout_paid_email(session, batch, data['notify_email'])
        if data.get('notify_phone'):
            send_payout_paid_whatsapp(session, batch, data['notify_phone'])
        session.commit()
    elif action == 'cancel':
        batch = payout_service.cancel(session, g.tenant_id, batch_id)
        session.commit()
    else:
        raise ValidationError(f'Ação inválida: {action}')

    return jsonify(batch.to_dict()), 200
