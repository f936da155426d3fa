"""Models package - exports all SQLAlchemy models."""
# Core
from ebd.models.tenant import Tenant
from ebd.models.client import Client, ClientCategoryDiscount
from ebd.models.product import Product, ProductCommission

# Commissions / royalties
from ebd.models.sale import Sale
from ebd.models.payout import PayoutBatch, PayoutStatus, PayoutKind, payout_batch_sale

# External reconciliation
from ebd.models.sync_status import SyncStatus
from ebd.models.provider_token import ProviderToken
from ebd.models.erp_order import ErpOrder, ErpOrderStatus
from ebd.models.invoice import Invoice
from ebd.models.online_order import OnlineOrder
from ebd.models.shopify_order import ShopifyOrder
from ebd.models.webhook_event import WebhookEvent, WebhookStatus

# Messaging
from ebd.models.message_log import MessageLog

__all__ = [
    'Tenant', 'Client', 'ClientCategoryDiscount', 'Product', 'ProductCommission',
    'Sale', 'PayoutBatch', 'PayoutStatus', 'PayoutKind', 'payout_batch_sale',
    'SyncStatus', 'ProviderToken', 'ErpOrder', 'ErpOrderStatus', 'Invoice',
    'OnlineOrder', 'ShopifyOrder', 'WebhookEvent', 'WebhookStatus',
    'MessageLog',
]
