"""
Idempotent webhook log.

Each delivery is stored once, keyed by a SHA-256 dedupe key built from the
provider, topic, resource id and the canonical JSON payload. Redeliveries of
an already stored event are acknowledged without reprocessing.
"""
import hashlib
import json
import logging
from datetime import datetime
from typing import Optional, Tuple

from sqlalchemy.exc import IntegrityError

from ebd.models import WebhookEvent, WebhookStatus

logger = logging.getLogger(__name__)


def dedupe_key(provider: str, topic: str, resource_id: Optional[str], payload: dict) -> str:
    components = [
        provider,
        topic or '',
        str(resource_id) if resource_id else '',
        json.dumps(payload, sort_keys=True, default=str),
    ]
    return hashlib.sha256(':'.join(components).encode()).hexdigest()


def record_event(session, provider: str, topic: str, resource_id, payload: dict) -> Tuple[Optional[WebhookEvent], bool]:
    """
    Store a webhook delivery.

    Returns:
        (event, True) for a new event, (existing event or None, False) for a duplicate
    """
    key = dedupe_key(provider, topic, resource_id, payload)
    existing = session.query(WebhookEvent).filter(WebhookEvent.dedupe_key == key).first()
    if existing and existing.status == WebhookStatus.FAILED.value:
        # Redelivery of a failed event is processed again
        existing.status = WebhookStatus.PROCESSING.value
        session.commit()
        return existing, True
    if existing:
        logger.info(f"[{provider.upper()}] Webhook already received: {key[:16]}...")
        return existing, False

    event = WebhookEvent(
        provider=provider,
        topic=topic or 'unknown',
        resource_id=str(resource_id) if resource_id else None,
        payload_json=payload,
        dedupe_key=key,
        status=WebhookStatus.PROCESSING.value,
    )
    try:
        session.add(event)
        session.commit()
    except IntegrityError:
        # Concurrent delivery stored it first
        session.rollback()
        logger.warning(f"[{provider.upper()}] Webhook dedupe conflict (race): {key[:16]}...")
        return None, False
    return event, True


def mark_processed(session, event: WebhookEvent) -> None:
    event.status = WebhookStatus.PROCESSED.value
    event.processed_at = datetime.utcnow()
    session.commit()


def mark_failed(session, event: WebhookEvent) -> None:
    event.status = WebhookStatus.FAILED.value
    session.commit()
