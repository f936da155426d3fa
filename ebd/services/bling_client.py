"""Bling ERP (API v3) client."""
import logging
from datetime import date
from typing import Any, Dict, List, Optional

from flask import current_app, has_app_context

from ebd.services.provider_http import ProviderSession
from ebd.services.token_manager import TokenManager

logger = logging.getLogger(__name__)

PROVIDER = 'bling'
BLING_API_URL = 'https://www.bling.com.br/Api/v3'

# Bling "situacao" ids for sales orders
SITUACAO_EM_ABERTO = 28
SITUACAO_ATENDIDO = 31
SITUACAO_CANCELADO = 34
SITUACAO_EM_ANDAMENTO = 37

# NF-e situacao values
NFE_AUTORIZADA = 6
NFE_REJEITADA = 7
NFE_DENEGADA = 8


def situacao_value(raw) -> Optional[int]:
    """Bling returns situacao either as a number or as {"id": .., "valor": ..}."""
    if isinstance(raw, dict):
        raw = raw.get('valor') if raw.get('valor') is not None else raw.get('id')
    try:
        return int(raw) if raw is not None else None
    except (TypeError, ValueError):
        return None


def build_order_payload(items: List[dict], contact_id=None, notes: Optional[str] = None,
                        order_date: Optional[date] = None, store_number: Optional[str] = None) -> dict:
    """Sales order body for POST /pedidos/vendas."""
    payload = {
        'data': (order_date or date.today()).isoformat(),
        'itens': [
            {
                'codigo': item.get('codigo') or '',
                'descricao': item.get('descricao') or '',
                'unidade': item.get('unidade') or 'UN',
                'quantidade': item['quantidade'],
                'valor': item['valor'],
            }
            for item in items
        ],
    }
    if contact_id:
        payload['contato'] = {'id': int(contact_id)}
    if notes:
        payload['observacoes'] = notes
    if store_number:
        payload['numeroLoja'] = str(store_number)
    return payload


class BlingClient:
    """
    Thin wrapper over the Bling v3 REST endpoints used by the sync flows.

    Single-entity lookups return None on 404; everything else goes through
    the ProviderSession retry policy.
    """

    def __init__(self, session: ProviderSession):
        self.http = session

    @classmethod
    def for_tenant(cls, db_session, tenant_id: int, http=None, sleep=None) -> 'BlingClient':
        """Client authenticated with the tenant's stored Bling credentials."""
        config = current_app.config if has_app_context() else {}
        tokens = TokenManager(db_session, tenant_id, provider=PROVIDER, http=http)
        kwargs = {'token_manager': tokens, 'http': http}
        if sleep is not None:
            kwargs['sleep'] = sleep
        return cls(ProviderSession(PROVIDER, config.get('BLING_API_URL', BLING_API_URL), **kwargs))

    # Orders

    def get_order(self, order_id) -> Optional[Dict[str, Any]]:
        data = self.http.get(f'/pedidos/vendas/{order_id}', allow_404=True)
        return data.get('data') if data else None

    def list_orders(self, page: int = 1, limit: int = 100, **filters) -> List[Dict[str, Any]]:
        params = {'pagina': page, 'limite': limit}
        params.update({k: v for k, v in filters.items() if v is not None})
        return (self.http.get('/pedidos/vendas', params=params) or {}).get('data') or []

    def create_order(self, payload: dict) -> Dict[str, Any]:
        """Create a sales order; returns {"id": ..., "numero": ...}."""
        data = self.http.post('/pedidos/vendas', json_body=payload)
        created = (data or {}).get('data') or {}
        logger.info(f"[BLING] Order created: id={created.get('id')} numero={created.get('numero')}")
        return created

    # NF-e

    def get_invoice(self, nfe_id) -> Optional[Dict[str, Any]]:
        data = self.http.get(f'/nfe/{nfe_id}', allow_404=True)
        return data.get('data') if data else None

    def list_invoices(self, page: int = 1, limit: int = 100, **filters) -> List[Dict[str, Any]]:
        params = {'pagina': page, 'limite': limit}
        params.update({k: v for k, v in filters.items() if v is not None})
        return (self.http.get('/nfe', params=params) or {}).get('data') or []

    def invoices_for_order(self, order_id) -> List[Dict[str, Any]]:
        return self.list_invoices(idPedidoVenda=order_id)

    # Contacts / products

    def search_contact(self, document: Optional[str] = None, email: Optional[str] = None) -> Optional[Dict[str, Any]]:
        if document:
            params = {'numeroDocumento': document}
        elif email:
            params = {'pesquisa': email.lower(), 'limite': 1}
        else:
            return None
        contacts = (self.http.get('/contatos', params=params) or {}).get('data') or []
        return contacts[0] if contacts else None

    def search_product(self, sku: Optional[str] = None, name: Optional[str] = None) -> List[Dict[str, Any]]:
        if sku:
            params = {'codigo': sku, 'limite': 10}
        elif name:
            params = {'nome': name, 'limite': 10}
        else:
            return []
        return (self.http.get('/produtos', params=params) or {}).get('data') or []
