"""
Unit tests for Bling order, NF-e and royalty reconciliation.
"""
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from ebd.exceptions import BusinessLogicError, ValidationError
from ebd.models import ErpOrder, Invoice, Sale, SyncStatus
from ebd.services.erp_sync_service import (
    invoice_sync_status,
    map_order_situacao,
    sync_order_statuses,
    sync_royalty_sales,
    upsert_erp_order,
    upsert_invoice,
)

ACCESS_KEY = '3' * 44


def order_payload(bling_id, situacao_id=28, **extra):
    return {'id': bling_id, 'numero': 1000 + bling_id, 'situacao': {'id': situacao_id, 'valor': 0}, **extra}


class TestMappings:

    def test_order_situacao(self):
        assert map_order_situacao(31).value == 'ATENDIDO'
        assert map_order_situacao(34).value == 'CANCELADO'
        assert map_order_situacao(999) is None

    @pytest.mark.parametrize('situacao, key, number, expected', [
        (6, None, None, SyncStatus.AUTHORIZED),
        (1, ACCESS_KEY, '123', SyncStatus.AUTHORIZED),
        (1, ACCESS_KEY, None, SyncStatus.PROCESSING),
        (1, '123', '123', SyncStatus.PROCESSING),
        (7, None, None, SyncStatus.REJECTED),
        (8, None, None, SyncStatus.DENIED),
        (None, None, None, SyncStatus.PROCESSING),
    ])
    def test_invoice_status(self, situacao, key, number, expected):
        assert invoice_sync_status(situacao, key, number) == expected


class TestUpsertErpOrder:

    def test_insert_then_update(self, session, tenant):
        order, created = upsert_erp_order(session, tenant.id, order_payload(100, total='150.50'))
        assert created
        assert order.status == 'EM_ABERTO'
        assert order.sync_status == 'processing'
        assert order.total == Decimal('150.50')

        again, created = upsert_erp_order(session, tenant.id, order_payload(100, situacao_id=31))
        assert not created
        assert again.id == order.id
        assert again.status == 'ATENDIDO'
        assert again.sync_status == 'approved'
        assert session.query(ErpOrder).count() == 1

    def test_same_id_other_tenant_is_separate(self, session, tenant, other_tenant):
        upsert_erp_order(session, tenant.id, order_payload(100))
        _, created = upsert_erp_order(session, other_tenant.id, order_payload(100))
        assert created

    def test_missing_id(self, session, tenant):
        with pytest.raises(ValidationError):
            upsert_erp_order(session, tenant.id, {'numero': 1})


class TestSyncOrderStatuses:

    @pytest.fixture
    def orders(self, session, tenant):
        created = [upsert_erp_order(session, tenant.id, order_payload(i))[0] for i in (100, 101, 102)]
        session.commit()
        return created

    def test_batch_isolates_failures(self, session, tenant, bling, fake_http, orders):
        fake_http.route('GET', '/pedidos/vendas/100', json_data={'data': order_payload(100, situacao_id=31)})
        fake_http.route('GET', '/pedidos/vendas/101', status_code=404)
        fake_http.route('GET', '/pedidos/vendas/102', status_code=500, text='erro interno')
        fake_http.route('GET', '/nfe', json_data={'data': [{'id': 900}]})
        fake_http.route('GET', '/nfe/900', json_data={'data': {
            'id': 900, 'numero': '1234', 'situacao': 6, 'chaveAcesso': ACCESS_KEY,
            'linkDanfe': 'https://bling.test/danfe/900', 'dataEmissao': '2024-05-02 10:00:00',
        }})

        result = sync_order_statuses(session, tenant.id, bling, force=True)

        assert result['synced'] == 2
        assert result['failed'] == 1
        assert result['nfe_triggered'] == 1
        assert result['remaining'] == 0
        assert result['next_cursor'] is None

        by_bling_id = {r['bling_order_id']: r for r in result['results']}
        assert by_bling_id['101']['status'] == 'NOT_FOUND'
        assert by_bling_id['102']['success'] is False

        assert orders[0].status == 'ATENDIDO'
        assert orders[2].sync_status == 'error'
        assert orders[2].last_error

        invoice = session.query(Invoice).one()
        assert invoice.erp_order_id == orders[0].id
        assert invoice.sync_status == 'authorized'
        assert invoice.danfe_url == 'https://bling.test/danfe/900'
        assert fake_http.calls_to('/nfe', 'GET')[0]['params']['idPedidoVenda'] == '100'

    def test_recently_synced_orders_are_skipped(self, session, tenant, bling, fake_http, orders):
        result = sync_order_statuses(session, tenant.id, bling)
        assert result['results'] == []
        assert fake_http.calls == []

    def test_cursor_pagination(self, session, tenant, bling, fake_http, orders):
        fake_http.route('GET', '/pedidos/vendas/', json_data={'data': order_payload(0, situacao_id=37)})
        later = datetime.utcnow() + timedelta(hours=2)

        first = sync_order_statuses(session, tenant.id, bling, limit=2, now=later)
        assert [r['id'] for r in first['results']] == [orders[0].id, orders[1].id]
        assert first['next_cursor'] == orders[1].id
        assert first['remaining'] == 1

        second = sync_order_statuses(session, tenant.id, bling, limit=2, cursor=first['next_cursor'], now=later)
        assert [r['id'] for r in second['results']] == [orders[2].id]
        assert second['next_cursor'] is None


class TestUpsertInvoice:

    def test_idempotent(self, session, tenant):
        upsert_invoice(session, tenant.id, {'id': 1, 'situacao': 1})
        invoice, created = upsert_invoice(session, tenant.id, {'id': 1, 'situacao': 6, 'numero': '55'})
        assert not created
        assert invoice.sync_status == 'authorized'
        assert invoice.number == '55'
        assert session.query(Invoice).count() == 1


class TestSyncRoyaltySales:

    @pytest.fixture
    def products(self, make_product):
        return (
            make_product(title='Livro A', price='50.00', commission_pct='10', sku='LIV-A', bling_product_id='7001'),
            make_product(title='Livro B', price='30.00', commission_pct='10', sku='LIV-B'),
        )

    @pytest.fixture
    def nfes(self, fake_http):
        fake_http.route('GET', '/nfe', json_data={'data': [
            {'id': 1, 'situacao': 6},
            {'id': 2, 'situacao': 2},
            {'id': 3, 'situacao': {'valor': 6}},
        ]})
        fake_http.route('GET', '/nfe/1', json_data={'data': {
            'id': 1, 'numero': '10', 'dataEmissao': '2024-05-02 10:00:00',
            'itens': [
                {'produto': {'id': 7001}, 'codigo': 'XX', 'quantidade': 2, 'valor': 50},
                {'codigo': 'LIV-A', 'quantidade': 1, 'valor': 50},
                {'codigo': 'NAO-CADASTRADO', 'quantidade': 1, 'valor': 10},
            ],
        }})
        fake_http.route('GET', '/nfe/3', json_data={'data': {
            'id': 3, 'numero': '11', 'itens': [{'codigo': 'LIV-B', 'quantidade': 1, 'valor': '30.00'}],
        }})
        return fake_http

    def test_imports_authorized_invoices(self, session, tenant, bling, products, nfes):
        result = sync_royalty_sales(session, tenant.id, bling, date(2024, 5, 1), date(2024, 5, 31))

        assert result['total_available'] == 2
        assert result['nfes_processed'] == 2
        assert result['inserted'] == 2
        assert result['books_found'] == 3
        assert result['summary']['total_quantity'] == 4
        assert result['summary']['total_sales_value'] == Decimal('180')
        assert result['summary']['total_royalties'] == Decimal('18.00')
        assert result['next_skip'] is None

        sale = session.query(Sale).filter_by(bling_order_id='1').one()
        assert sale.quantity == 3
        assert sale.source == 'bling_nfe'
        assert sale.sale_date == date(2024, 5, 2)

        params = nfes.calls_to('/nfe', 'GET')[0]['params']
        assert params['dataEmissaoInicial'] == '2024-05-01'
        assert params['dataEmissaoFinal'] == '2024-05-31'

    def test_rerun_inserts_nothing(self, session, tenant, bling, products, nfes):
        sync_royalty_sales(session, tenant.id, bling, date(2024, 5, 1), date(2024, 5, 31))
        again = sync_royalty_sales(session, tenant.id, bling, date(2024, 5, 1), date(2024, 5, 31))
        assert again['inserted'] == 0
        assert again['already_existing'] == 2
        assert session.query(Sale).count() == 2

    def test_skip_and_max(self, session, tenant, bling, products, nfes):
        result = sync_royalty_sales(session, tenant.id, bling, date(2024, 5, 1), date(2024, 5, 31), max_invoices=1)
        assert result['nfes_processed'] == 1
        assert result['next_skip'] == 1

        rest = sync_royalty_sales(session, tenant.id, bling, date(2024, 5, 1), date(2024, 5, 31),
                                  max_invoices=1, skip=1)
        assert rest['inserted'] == 1
        assert rest['next_skip'] is None

    def test_failed_invoice_does_not_abort(self, session, tenant, bling, products, fake_http):
        fake_http.route('GET', '/nfe', json_data={'data': [{'id': 1, 'situacao': 6}, {'id': 3, 'situacao': 6}]})
        fake_http.route('GET', '/nfe/1', status_code=400, json_data={'error': {'description': 'NF-e inválida'}})
        fake_http.route('GET', '/nfe/3', json_data={'data': {
            'id': 3, 'itens': [{'codigo': 'LIV-B', 'quantidade': 1, 'valor': '30.00'}],
        }})
        result = sync_royalty_sales(session, tenant.id, bling, date(2024, 5, 1), date(2024, 5, 31))
        assert result['errors'] == 1
        assert result['inserted'] == 1

    def test_partially_failed_invoice_writes_nothing(self, session, tenant, bling, products, fake_http):
        fake_http.route('GET', '/nfe', json_data={'data': [{'id': 1, 'situacao': 6}]})
        fake_http.route('GET', '/nfe/1', json_data={'data': {
            'id': 1, 'itens': [
                {'codigo': 'LIV-A', 'quantidade': 2, 'valor': '50.00'},
                {'codigo': 'LIV-B', 'quantidade': -1, 'valor': '30.00'},
            ],
        }})
        result = sync_royalty_sales(session, tenant.id, bling, date(2024, 5, 1), date(2024, 5, 31))
        session.commit()

        assert result['errors'] == 1
        assert result['inserted'] == 0
        assert result['summary']['total_quantity'] == 0
        assert session.query(Sale).filter_by(tenant_id=tenant.id).count() == 0

    def test_requires_linked_products(self, session, tenant, bling):
        with pytest.raises(BusinessLogicError):
            sync_royalty_sales(session, tenant.id, bling)

    def test_invalid_range(self, session, tenant, bling, products):
        with pytest.raises(ValidationError):
            sync_royalty_sales(session, tenant.id, bling, date(2024, 6, 1), date(2024, 5, 1))
