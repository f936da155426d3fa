"""Factories for the external provider clients used by routes and CLI commands."""
from ebd.services.bling_client import BlingClient
from ebd.services.mercadopago_service import MercadoPagoService
from ebd.services.shopify_service import ShopifyAdminClient


def get_bling_client(session, tenant_id: int) -> BlingClient:
    return BlingClient.for_tenant(session, tenant_id)


def get_mercadopago() -> MercadoPagoService:
    return MercadoPagoService()


def get_shopify_admin() -> ShopifyAdminClient:
    return ShopifyAdminClient()
