"""WhatsApp text messages through the Meta Cloud API."""
import logging
import re
from typing import Optional

import requests
from flask import current_app

from ebd.metrics import provider_requests_total
from ebd.models import MessageLog
from ebd.services.email_service import new_tracking_token
from ebd.utils.formatters import money_br

logger = logging.getLogger(__name__)

GRAPH_API_URL = 'https://graph.facebook.com'


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """
    Brazilian number in E.164 digits (55 + DDD + number).

    Examples:
        "(11) 98765-4321" -> "5511987654321"
        "+55 11 3333-4444" -> "551133334444"
        "123" -> None
    """
    digits = re.sub(r'\D', '', phone or '').lstrip('0')
    if len(digits) in (10, 11):
        return f'55{digits}'
    if digits.startswith('55') and len(digits) in (12, 13):
        return digits
    return None


def send_text(session, tenant_id: int, phone: str, body: str, template: Optional[str] = None, http=None) -> bool:
    """Send a plain text message; logged in MessageLog. Returns False on failure."""
    cfg = current_app.config
    to = normalize_phone(phone)

    log = MessageLog(
        tenant_id=tenant_id,
        channel='whatsapp',
        recipient=to or (phone or ''),
        template=template,
        status='queued',
        tracking_token=new_tracking_token(),
    )
    session.add(log)
    session.flush()

    if not to:
        logger.warning(f"[WHATSAPP] Invalid phone number: {phone!r}")
        log.status = 'failed'
        log.last_error = 'Telefone inválido'
        session.flush()
        return False

    if not cfg.get('WHATSAPP_TOKEN') or not cfg.get('WHATSAPP_PHONE_NUMBER_ID'):
        logger.warning(f"[WHATSAPP DISABLED] Message skipped for {to}")
        log.status = 'skipped'
        session.flush()
        return True

    url = f"{GRAPH_API_URL}/{cfg.get('WHATSAPP_API_VERSION', 'v21.0')}/{cfg['WHATSAPP_PHONE_NUMBER_ID']}/messages"
    try:
        response = (http or requests).post(
            url,
            json={
                'messaging_product': 'whatsapp',
                'to': to,
                'type': 'text',
                'text': {'body': body},
            },
            headers={'Authorization': f"Bearer {cfg['WHATSAPP_TOKEN']}"},
            timeout=10,
        )
        if response.status_code >= 400:
            raise RuntimeError(f"WhatsApp API answered {response.status_code}: {response.text[:300]}")

        messages = (response.json() or {}).get('messages') or []
        log.provider_message_id = messages[0].get('id') if messages else None
        log.status = 'sent'
        provider_requests_total.labels(provider='whatsapp', outcome='ok').inc()
        logger.info(f"[WHATSAPP] Message sent to {to}")
        return True

    except Exception as e:
        logger.exception(f"[WHATSAPP] Failed to send message to {to}: {e}")
        provider_requests_total.labels(provider='whatsapp', outcome='error').inc()
        log.status = 'failed'
        log.last_error = str(e)[:1000]
        return False

    finally:
        session.flush()


def send_payout_paid_whatsapp(session, batch, phone: str, http=None) -> bool:
    kind_label = {'royalty': 'royalties', 'commission': 'comissões'}.get(batch.kind, batch.kind)
    body = f"Pagamento de {kind_label} realizado: lote #{batch.id}, valor {money_br(batch.total)}."
    if batch.reference:
        body += f" Comprovante: {batch.reference}"
    return send_text(session, batch.tenant_id, phone, body, template='payout_paid', http=http)


def send_resgate_approved_whatsapp(session, batch, phone: str, http=None) -> bool:
    body = f"Seu resgate de {money_br(batch.total)} em royalties foi aprovado."
    if batch.bling_order_id:
        body += f" Pedido: {batch.bling_order_id}"
    return send_text(session, batch.tenant_id, phone, body, template='resgate_aprovado', http=http)
