"""
Shopify orders: webhook verification, customer document lookup and the local
order mirror.
"""
import base64
import hashlib
import hmac
import logging
from datetime import datetime
from typing import Optional, Tuple

from flask import current_app, has_app_context

from ebd.exceptions import ValidationError
from ebd.models import ShopifyOrder
from ebd.services.discount_service import to_decimal
from ebd.services.provider_http import ProviderSession
from ebd.utils.documents import clean_document, validate_document

logger = logging.getLogger(__name__)

PROVIDER = 'shopify'

# note_attributes names that may hold the CPF/CNPJ
_DOCUMENT_ATTRIBUTE_HINTS = ('cpf', 'cnpj', 'document', 'tax')


def verify_webhook(raw_body: bytes, hmac_header: Optional[str], secret: str) -> bool:
    """
    Check the X-Shopify-Hmac-Sha256 header: base64(HMAC-SHA256(secret, raw body)).
    """
    if not hmac_header or not secret:
        return False
    digest = hmac.new(secret.encode('utf-8'), raw_body, hashlib.sha256).digest()
    expected = base64.b64encode(digest).decode('utf-8')
    return hmac.compare_digest(expected, hmac_header.strip())


def _document_from_text(text: Optional[str]) -> Optional[str]:
    digits = clean_document(text)
    return digits if len(digits) in (11, 14) else None


def extract_customer_document(order: dict) -> Tuple[Optional[str], Optional[str]]:
    """
    Find the buyer's CPF/CNPJ in a Shopify order payload.

    Looks at, in order: note_attributes whose name mentions cpf/cnpj/document/tax,
    billing_address.company, shipping_address.company and customer.note.

    Returns:
        (document digits, source field) or (None, None)
    """
    for attr in order.get('note_attributes') or []:
        name = (attr.get('name') or '').lower()
        if any(hint in name for hint in _DOCUMENT_ATTRIBUTE_HINTS) and attr.get('value'):
            document = clean_document(str(attr['value'])) or str(attr['value'])
            return document, f"note_attributes.{attr.get('name')}"

    for field in ('billing_address', 'shipping_address'):
        address = order.get(field) or {}
        document = _document_from_text(address.get('company'))
        if document:
            return document, f'{field}.company'

    customer = order.get('customer') or {}
    document = _document_from_text(customer.get('note'))
    if document:
        return document, 'customer.note'

    return None, None


def upsert_shopify_order(session, tenant_id: int, payload: dict):
    """
    Insert or overwrite a Shopify order keyed by its id.

    Returns:
        (ShopifyOrder, created)
    """
    shopify_id = payload.get('id')
    if shopify_id in (None, ''):
        raise ValidationError('Pedido Shopify sem id')
    shopify_id = str(shopify_id)

    order = session.query(ShopifyOrder).filter_by(tenant_id=tenant_id, shopify_order_id=shopify_id).first()
    created = order is None
    if created:
        order = ShopifyOrder(tenant_id=tenant_id, shopify_order_id=shopify_id)
        session.add(order)

    document, source = extract_customer_document(payload)
    if document and not validate_document(document):
        logger.warning(f"[SHOPIFY] Order {shopify_id}: document from {source} fails check digits")

    order.name = payload.get('name') or order.name
    order.email = payload.get('email') or (payload.get('customer') or {}).get('email') or order.email
    if document:
        order.customer_document = document
        order.document_source = source
    order.financial_status = payload.get('financial_status')
    order.fulfillment_status = payload.get('fulfillment_status')
    if payload.get('total_price') is not None:
        order.total_price = to_decimal(payload['total_price'], 'total_price')
    order.synced_at = datetime.utcnow()
    session.flush()

    logger.info(
        f"[SHOPIFY] Order {order.name or shopify_id} {'created' if created else 'updated'} "
        f"(document source: {order.document_source})"
    )
    return order, created


class ShopifyAdminClient:
    """REST Admin API lookups."""

    def __init__(self, shop_domain: Optional[str] = None, admin_token: Optional[str] = None,
                 api_version: Optional[str] = None, http=None, sleep=None):
        config = current_app.config if has_app_context() else {}
        shop_domain = shop_domain or config.get('SHOPIFY_SHOP_DOMAIN')
        admin_token = admin_token or config.get('SHOPIFY_ADMIN_TOKEN')
        api_version = api_version or config.get('SHOPIFY_API_VERSION', '2024-10')
        if not shop_domain or not admin_token:
            raise ValidationError('SHOPIFY_SHOP_DOMAIN e SHOPIFY_ADMIN_TOKEN são obrigatórios')

        kwargs = {'http': http, 'headers': {'X-Shopify-Access-Token': admin_token}, 'min_interval': 0}
        if sleep is not None:
            kwargs['sleep'] = sleep
        self.http = ProviderSession(PROVIDER, f'https://{shop_domain}/admin/api/{api_version}', **kwargs)

    def get_order(self, order_id) -> Optional[dict]:
        data = self.http.get(f'/orders/{order_id}.json', allow_404=True)
        return data.get('order') if data else None
