"""
Transactional email.

Two transports: the Resend HTTP API (EMAIL_PROVIDER=resend, default) or SMTP
through Flask-Mail (EMAIL_PROVIDER=smtp). Every message is logged in
MessageLog with a tracking token; the HTML gets an open pixel and its links
are rewritten through the click redirect.

Sending never breaks the calling flow: failures are logged and return False.
"""
import logging
import re
import secrets
from typing import Optional
from urllib.parse import quote

import requests
from flask import current_app
from flask_mail import Mail, Message

from ebd.metrics import provider_requests_total
from ebd.models import MessageLog
from ebd.utils.formatters import money_br

logger = logging.getLogger(__name__)

mail = Mail()

_HREF_PATTERN = re.compile(r'href=(["\'])(https?://[^"\']+)\1', re.IGNORECASE)


def init_mail(app):
    """Initialize Flask-Mail with app."""
    mail.init_app(app)


def _mail_enabled() -> bool:
    """SMTP configured and not suppressed."""
    cfg = current_app.config
    return bool(
        not cfg.get("MAIL_SUPPRESS_SEND", False)
        and cfg.get("MAIL_SERVER")
        and cfg.get("MAIL_USERNAME")
    )


def _resend_enabled() -> bool:
    cfg = current_app.config
    return bool(not cfg.get("MAIL_SUPPRESS_SEND", False) and cfg.get("RESEND_API_KEY"))


def new_tracking_token() -> str:
    return secrets.token_urlsafe(24)


def add_tracking(html: str, token: str, base_url: str) -> str:
    """Rewrite http(s) links through /t/c/<token> and append the /t/o/<token>.gif pixel."""
    base_url = base_url.rstrip('/')

    def _rewrite(match):
        quote_char, url = match.group(1), match.group(2)
        return f'href={quote_char}{base_url}/t/c/{token}?u={quote(url, safe="")}{quote_char}'

    tracked = _HREF_PATTERN.sub(_rewrite, html)
    pixel = f'<img src="{base_url}/t/o/{token}.gif" width="1" height="1" alt="" style="display:none">'
    if '</body>' in tracked:
        return tracked.replace('</body>', f'{pixel}</body>', 1)
    return tracked + pixel


def _send_resend(to: str, subject: str, html: str, text: Optional[str], http=None) -> str:
    cfg = current_app.config
    response = (http or requests).post(
        cfg.get('RESEND_API_URL', 'https://api.resend.com/emails'),
        json={
            'from': cfg.get('EMAIL_FROM'),
            'to': [to],
            'subject': subject,
            'html': html,
            **({'text': text} if text else {}),
        },
        headers={'Authorization': f"Bearer {cfg.get('RESEND_API_KEY')}"},
        timeout=10,
    )
    if response.status_code >= 400:
        provider_requests_total.labels(provider='resend', outcome='client_error').inc()
        raise RuntimeError(f"Resend answered {response.status_code}: {response.text[:300]}")
    provider_requests_total.labels(provider='resend', outcome='ok').inc()
    return (response.json() or {}).get('id')


def send_transactional_email(
    session,
    tenant_id: int,
    to: str,
    subject: str,
    html: str,
    template: Optional[str] = None,
    text: Optional[str] = None,
    http=None,
) -> bool:
    """
    Send one tracked email.

    Returns:
        True if sent (or skipped because mail is disabled), False on failure
    """
    log = MessageLog(
        tenant_id=tenant_id,
        channel='email',
        recipient=to,
        subject=subject,
        template=template,
        status='queued',
        tracking_token=new_tracking_token(),
    )
    session.add(log)
    session.flush()

    provider = current_app.config.get('EMAIL_PROVIDER', 'resend')
    tracked_html = add_tracking(html, log.tracking_token, current_app.config.get('APP_BASE_URL', ''))

    try:
        logger.info(f"[EMAIL] Sending '{template or subject}' to {to} via {provider}")
        if provider == 'smtp':
            if not _mail_enabled():
                logger.warning(f"[MAIL DISABLED] Email skipped for {to}")
                log.status = 'skipped'
                return True
            mail.send(Message(subject=subject, recipients=[to], body=text, html=tracked_html))
        else:
            if not _resend_enabled():
                logger.warning(f"[MAIL DISABLED] Email skipped for {to}")
                log.status = 'skipped'
                return True
            log.provider_message_id = _send_resend(to, subject, tracked_html, text, http=http)

        log.status = 'sent'
        logger.info(f"[EMAIL] Email sent to {to} (log {log.id})")
        return True

    except Exception as e:
        logger.exception(f"[EMAIL] Failed to send email to {to}: {e}")
        log.status = 'failed'
        log.last_error = str(e)[:1000]
        return False

    finally:
        session.flush()


def send_payout_paid_email(session, batch, to: str, http=None) -> bool:
    """Notify the beneficiary that a payout batch was paid."""
    kind_label = {'royalty': 'royalties', 'commission': 'comissões'}.get(batch.kind, batch.kind)
    html = f"""
    <!DOCTYPE html>
    <html>
    <head><meta charset="UTF-8"></head>
    <body style="font-family: Arial, sans-serif; color: #333;">
        <h2>Pagamento de {kind_label} realizado</h2>
        <p>O lote <strong>#{batch.id}</strong> foi pago.</p>
        <p>Valor: <strong>{money_br(batch.total)}</strong></p>
        {f'<p>Comprovante: {batch.reference}</p>' if batch.reference else ''}
    </body>
    </html>
    """
    return send_transactional_email(
        session, batch.tenant_id, to,
        subject=f"Pagamento de {kind_label} - {money_br(batch.total)}",
        html=html,
        template='payout_paid',
        text=f"O lote #{batch.id} foi pago. Valor: {money_br(batch.total)}",
        http=http,
    )


def send_resgate_approved_email(session, batch, to: str, http=None) -> bool:
    """Notify an author that the royalty redemption was approved."""
    items = batch.items or []
    rows = "".join(
        f"<li>{item.get('quantity')}x {item.get('title')}</li>" for item in items
    )
    html = f"""
    <!DOCTYPE html>
    <html>
    <head><meta charset="UTF-8"></head>
    <body style="font-family: Arial, sans-serif; color: #333;">
        <h2>Resgate aprovado</h2>
        <p>Seu resgate de {money_br(batch.total)} em royalties foi aprovado.</p>
        <ul>{rows}</ul>
        {f'<p>Pedido: {batch.bling_order_id}</p>' if batch.bling_order_id else ''}
    </body>
    </html>
    """
    return send_transactional_email(
        session, batch.tenant_id, to,
        subject="Resgate de royalties aprovado",
        html=html,
        template='resgate_aprovado',
        http=http,
    )
