"""Open/click tracking for logged messages."""
import logging
from datetime import datetime
from typing import Optional
from urllib.parse import urlparse

from ebd.models import MessageLog

logger = logging.getLogger(__name__)

# 1x1 transparent GIF
PIXEL_GIF = (
    b'GIF89a\x01\x00\x01\x00\x80\x00\x00\x00\x00\x00\xff\xff\xff!\xf9\x04\x01\x00\x00\x00\x00'
    b',\x00\x00\x00\x00\x01\x00\x01\x00\x00\x02\x02D\x01\x00;'
)


def _find(session, token: str) -> Optional[MessageLog]:
    if not token:
        return None
    return session.query(MessageLog).filter_by(tracking_token=token).first()


def record_open(session, token: str) -> Optional[MessageLog]:
    """Count an open; unknown tokens are ignored."""
    log = _find(session, token)
    if log is None:
        return None
    log.open_count = (log.open_count or 0) + 1
    if log.opened_at is None:
        log.opened_at = datetime.utcnow()
    session.flush()
    return log


def record_click(session, token: str) -> Optional[MessageLog]:
    """Count a click (a click implies the message was opened)."""
    log = _find(session, token)
    if log is None:
        return None
    now = datetime.utcnow()
    log.click_count = (log.click_count or 0) + 1
    if log.clicked_at is None:
        log.clicked_at = now
    if log.opened_at is None:
        log.opened_at = now
        log.open_count = (log.open_count or 0) + 1
    session.flush()
    return log


def is_safe_redirect(url: Optional[str]) -> bool:
    """Only absolute http(s) URLs may be redirected to."""
    if not url:
        return False
    parsed = urlparse(url)
    return parsed.scheme in ('http', 'https') and bool(parsed.netloc)
