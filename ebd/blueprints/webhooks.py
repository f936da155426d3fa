"""
Webhooks Blueprint for Mercado Pago and Shopify notifications.

Every delivery is stored in the webhook log first; redeliveries of an event
already processed are acknowledged without side effects.
"""
import hashlib
import hmac
import logging

from flask import Blueprint, request, jsonify, current_app, g

from ebd.database import get_session
from ebd.exceptions import EbdError
from ebd.middleware import find_tenant
from ebd.models import OnlineOrder
from ebd.services import providers
from ebd.services.payment_sync_service import sync_payment_status
from ebd.services.shopify_service import verify_webhook, upsert_shopify_order
from ebd.services.webhook_service import record_event, mark_processed, mark_failed

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint('webhooks', __name__, url_prefix='/webhooks')


def verify_mp_signature(request_data: bytes, signature: str) -> bool:
    """Verify the X-Signature header (hex HMAC-SHA256 of the raw body)."""
    secret = current_app.config.get('MP_WEBHOOK_SECRET')

    # Secret unset, misconfigured with a URL, or debug mode: verification skipped
    if not secret or secret.startswith('http') or current_app.debug:
        logger.info("Skipping MP webhook signature verification (dev mode or misconfigured secret)")
        return True

    if not signature:
        logger.warning("Missing X-Signature header in MP webhook")
        return False

    expected_signature = hmac.new(secret.encode('utf-8'), request_data, hashlib.sha256).hexdigest()
    is_valid = hmac.compare_digest(signature, expected_signature)
    if not is_valid:
        logger.warning("Invalid MP webhook signature")
    return is_valid


@webhooks_bp.route('/mercadopago', methods=['POST'])
def mercadopago_webhook():
    """
    Handle Mercado Pago payment notifications.

    Accepts the JSON body ({type, action, data: {id}}) and the legacy
    ?topic=payment&id=... query form.
    """
    if not verify_mp_signature(request.get_data(), request.headers.get('X-Signature', '')):
        return jsonify({'error': 'Invalid signature'}), 401

    data = request.get_json(silent=True) or {}
    event_type = data.get('type') or request.args.get('topic') or request.args.get('type')
    payment_id = (data.get('data') or {}).get('id') or request.args.get('id') or request.args.get('data.id')

    if not data and not payment_id:
        logger.warning("Empty webhook payload")
        return jsonify({'error': 'Empty payload'}), 400

    logger.info(f"Received MP webhook: type={event_type}, action={data.get('action')}, id={payment_id}")

    if event_type != 'payment':
        return jsonify({'status': 'ignored', 'type': event_type}), 200
    if not payment_id:
        return jsonify({'error': 'Missing payment_id'}), 400

    session = get_session()
    event, is_new = record_event(session, 'mercadopago', event_type, payment_id, data or dict(request.args))
    if not is_new:
        return jsonify({'status': 'duplicate'}), 200

    order = session.query(OnlineOrder).filter_by(mercadopago_payment_id=str(payment_id)).first()
    if order is None:
        logger.info(f"[MP] No online order for payment {payment_id}")
        mark_processed(session, event)
        return jsonify({'status': 'ignored', 'reason': 'order_not_found'}), 200

    try:
        result = sync_payment_status(
            session, order.tenant_id,
            providers.get_mercadopago(),
            providers.get_bling_client(session, order.tenant_id),
            order_id=order.id,
        )
        session.commit()
    except EbdError as e:
        logger.error(f"Error processing MP webhook for payment {payment_id}: {e.message}")
        session.rollback()
        mark_failed(session, event)
        return jsonify({'error': 'Processing failed', 'message': e.message}), 500
    except Exception as e:
        logger.exception(f"Error processing MP webhook for payment {payment_id}: {e}")
        session.rollback()
        mark_failed(session, event)
        return jsonify({'error': 'Processing failed'}), 500

    mark_processed(session, event)
    return jsonify({'status': 'processed', **result}), 200


@webhooks_bp.route('/shopify/orders', methods=['POST'])
def shopify_orders_webhook():
    """
    Mirror Shopify order create/update notifications.

    The tenant comes from ?tenant=<slug> (or the X-Tenant header).
    """
    raw_body = request.get_data()
    secret = current_app.config.get('SHOPIFY_WEBHOOK_SECRET')
    if not secret:
        logger.warning("Skipping Shopify webhook HMAC verification (SHOPIFY_WEBHOOK_SECRET not set)")
    elif not verify_webhook(raw_body, request.headers.get('X-Shopify-Hmac-Sha256'), secret):
        logger.warning("Invalid Shopify webhook HMAC")
        return jsonify({'error': 'Invalid signature'}), 401

    tenant = find_tenant(request.args.get('tenant')) or g.get('tenant')
    if tenant is None:
        return jsonify({'error': 'Unknown tenant'}), 404

    payload = request.get_json(silent=True)
    if not payload:
        return jsonify({'error': 'Empty payload'}), 400

    topic = request.headers.get('X-Shopify-Topic', 'orders/updated')
    session = get_session()
    event, is_new = record_event(session, 'shopify', topic, payload.get('id'), payload)
    if not is_new:
        return jsonify({'status': 'duplicate'}), 200

    try:
        order, created = upsert_shopify_order(session, tenant.id, payload)
        session.commit()
    except EbdError as e:
        logger.error(f"Error processing Shopify webhook: {e.message}")
        session.rollback()
        mark_failed(session, event)
        return jsonify(e.to_dict()), e.status_code

    mark_processed(session, event)
    return jsonify({
        'status': 'processed',
        'created': created,
        'shopify_order_id': order.shopify_order_id,
        'document': order.customer_document,
        'document_source': order.document_source,
    }), 200
