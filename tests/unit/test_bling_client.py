"""
Unit tests for the Bling v3 client.
"""
from datetime import date
from decimal import Decimal

import pytest

from ebd.services.bling_client import build_order_payload, situacao_value


class TestHelpers:

    @pytest.mark.parametrize('raw, expected', [
        (31, 31),
        ('28', 28),
        ({'id': 34, 'valor': 34}, 34),
        ({'id': 37}, 37),
        (None, None),
        ('abc', None),
    ])
    def test_situacao_value(self, raw, expected):
        assert situacao_value(raw) == expected

    def test_order_payload(self):
        payload = build_order_payload(
            [{'codigo': 'REV-1', 'descricao': 'Revista', 'quantidade': 2, 'valor': Decimal('13.93')}],
            contact_id='42', notes='Pedido #1', order_date=date(2024, 5, 1), store_number=7,
        )
        assert payload == {
            'data': '2024-05-01',
            'itens': [{'codigo': 'REV-1', 'descricao': 'Revista', 'unidade': 'UN',
                       'quantidade': 2, 'valor': Decimal('13.93')}],
            'contato': {'id': 42},
            'observacoes': 'Pedido #1',
            'numeroLoja': '7',
        }

    def test_order_payload_without_contact(self):
        payload = build_order_payload([{'quantidade': 1, 'valor': 1}])
        assert 'contato' not in payload
        assert 'numeroLoja' not in payload


class TestBlingClient:

    def test_get_order(self, bling, fake_http):
        fake_http.route('GET', '/pedidos/vendas/5', json_data={'data': {'id': 5, 'situacao': {'id': 31}}})
        assert bling.get_order(5)['id'] == 5
        call = fake_http.calls[0]
        assert call['url'] == 'https://bling.test/Api/v3/pedidos/vendas/5'
        assert call['headers']['Authorization'] == 'Bearer test-token'

    def test_missing_order_is_none(self, bling, fake_http):
        fake_http.route('GET', '/pedidos/vendas/5', status_code=404, json_data={'error': {'type': 'RESOURCE_NOT_FOUND'}})
        assert bling.get_order(5) is None

    def test_list_orders_drops_empty_filters(self, bling, fake_http):
        fake_http.route('GET', '/pedidos/vendas', json_data={'data': [{'id': 1}, {'id': 2}]})
        assert len(bling.list_orders(page=2, limit=50, idContato=None, dataInicial='2024-01-01')) == 2
        assert fake_http.calls[0]['params'] == {'pagina': 2, 'limite': 50, 'dataInicial': '2024-01-01'}

    def test_invoices_for_order(self, bling, fake_http):
        fake_http.route('GET', '/nfe', json_data={'data': [{'id': 900}]})
        assert bling.invoices_for_order(5) == [{'id': 900}]
        assert fake_http.calls[0]['params']['idPedidoVenda'] == 5

    def test_search_contact(self, bling, fake_http):
        fake_http.route('GET', '/contatos', json_data={'data': []})
        assert bling.search_contact(email='Igreja@Test.com') is None
        assert fake_http.calls[0]['params'] == {'pesquisa': 'igreja@test.com', 'limite': 1}
        assert bling.search_contact() is None
        assert len(fake_http.calls) == 1

    def test_search_product(self, bling, fake_http):
        fake_http.route('GET', '/produtos', json_data={'data': [{'id': 3, 'codigo': 'REV-1'}]})
        assert bling.search_product(sku='REV-1')[0]['id'] == 3
        assert bling.search_product(name='Revista')[0]['codigo'] == 'REV-1'
        assert fake_http.calls[1]['params'] == {'nome': 'Revista', 'limite': 10}
        assert bling.search_product() == []

    def test_create_order(self, bling, fake_http):
        fake_http.route('POST', '/pedidos/vendas', json_data={'data': {'id': 10, 'numero': 3}})
        assert bling.create_order({'itens': []}) == {'id': 10, 'numero': 3}
        assert fake_http.calls[0]['data'] == '{"itens": []}'
