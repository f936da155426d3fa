"""
Unit tests for Mercado Pago payment reconciliation.
"""
import json
from decimal import Decimal

import pytest
import requests

from ebd.exceptions import DataIntegrityError, NotFoundError, ProviderError, ValidationError
from ebd.services.mercadopago_service import MercadoPagoService, payment_method_for
from ebd.services.payment_sync_service import (
    erp_items_for_order,
    map_mp_status,
    sync_payment_status,
    sync_pending_payments,
)


def approved(payment_type='credit_card'):
    return {'status': 'approved', 'status_detail': 'accredited', 'payment_type_id': payment_type}


@pytest.fixture
def erp_routes(fake_http):
    fake_http.route('GET', '/contatos', json_data={'data': [{'id': 77}]})
    fake_http.route('POST', '/pedidos/vendas', json_data={'data': {'id': 999, 'numero': 5}})
    return fake_http


class TestMappings:

    @pytest.mark.parametrize('mp_status, expected', [
        ('approved', 'approved'),
        ('authorized', 'authorized'),
        ('in_process', 'processing'),
        ('pending', 'processing'),
        ('rejected', 'rejected'),
        ('refunded', 'rejected'),
        ('whatever', 'processing'),
        (None, 'processing'),
    ])
    def test_status(self, mp_status, expected):
        assert map_mp_status(mp_status).value == expected

    def test_payment_method(self):
        assert payment_method_for('credit_card') == 'card'
        assert payment_method_for('ticket') == 'boleto'
        assert payment_method_for(None) == 'pix'
        assert payment_method_for('crypto', fallback='boleto') == 'boleto'

    def test_erp_items_apply_discount(self, make_online_order):
        items = erp_items_for_order(make_online_order())
        assert items == [{
            'codigo': 'REV-1', 'descricao': 'Revista EBD Adultos', 'unidade': 'UN',
            'quantidade': 2, 'valor': Decimal('14.00'),
        }]

    def test_erp_items_reject_discount_over_100(self, make_online_order):
        order = make_online_order(items=[{'sku': 'REV-1', 'title': 'Revista', 'price': '20.00', 'quantity': 1, 'discount_pct': 150}])
        with pytest.raises(ValidationError):
            erp_items_for_order(order)


class TestSyncPaymentStatus:

    def test_approved_creates_erp_order(self, session, tenant, bling, erp_routes, fake_mp, make_online_order):
        order = make_online_order()
        fake_mp.payments['111'] = approved()

        result = sync_payment_status(session, tenant.id, fake_mp, bling, order_id=order.id)

        assert result['status'] == 'approved'
        assert result['bling_order_id'] == '999'
        assert result['erp_error'] is None
        assert order.payment_method == 'card'
        assert order.mp_status_detail == 'accredited'

        assert erp_routes.calls_to('/contatos')[0]['params'] == {'numeroDocumento': '52998224725'}
        body = json.loads(erp_routes.calls_to('/pedidos/vendas', 'POST')[0]['data'])
        assert body['contato'] == {'id': 77}
        assert body['itens'][0]['valor'] == 14.0
        assert body['numeroLoja'] == str(order.id)

    def test_lookup_by_payment_id(self, session, tenant, bling, erp_routes, fake_mp, make_online_order):
        make_online_order(payment_id='222')
        fake_mp.payments['222'] = approved('pix')
        result = sync_payment_status(session, tenant.id, fake_mp, bling, payment_id='222')
        assert result['payment_method'] == 'pix'

    def test_already_synced_is_not_fetched_again(self, session, tenant, bling, fake_http, fake_mp, make_online_order):
        order = make_online_order(status='approved', bling_order_id='999')
        result = sync_payment_status(session, tenant.id, fake_mp, bling, order_id=order.id)
        assert result['already_synced'] is True
        assert fake_mp.requested == []
        assert fake_http.calls == []

    def test_erp_failure_keeps_payment_approved(self, session, tenant, bling, fake_http, fake_mp, make_online_order):
        fake_http.route('GET', '/contatos', json_data={'data': []})
        fake_http.route('POST', '/pedidos/vendas', status_code=500, text='indisponível')
        order = make_online_order()
        fake_mp.payments['111'] = approved()

        result = sync_payment_status(session, tenant.id, fake_mp, bling, order_id=order.id)

        assert result['status'] == 'approved'
        assert result['bling_order_id'] is None
        assert result['erp_error']
        assert order.last_error == result['erp_error']

    def test_rejected_payment(self, session, tenant, bling, fake_http, fake_mp, make_online_order):
        order = make_online_order()
        fake_mp.payments['111'] = {'status': 'rejected', 'status_detail': 'cc_rejected_other_reason'}
        result = sync_payment_status(session, tenant.id, fake_mp, bling, order_id=order.id)
        assert result['status'] == 'rejected'
        assert fake_http.calls == []

    def test_order_without_payment(self, session, tenant, bling, fake_mp, make_online_order):
        order = make_online_order(payment_id=None)
        with pytest.raises(DataIntegrityError):
            sync_payment_status(session, tenant.id, fake_mp, bling, order_id=order.id)

    def test_order_of_other_tenant(self, session, other_tenant, bling, fake_mp, make_online_order):
        order = make_online_order()
        with pytest.raises(NotFoundError):
            sync_payment_status(session, other_tenant.id, fake_mp, bling, order_id=order.id)


class TestSyncPendingPayments:

    def test_batch_report(self, session, tenant, bling, erp_routes, fake_mp, make_online_order):
        paid = make_online_order(payment_id='1')
        waiting = make_online_order(payment_id='2')
        missing = make_online_order(payment_id='3')
        make_online_order(payment_id='4', status='rejected')
        fake_mp.payments['1'] = approved()
        fake_mp.payments['2'] = {'status': 'pending'}

        result = sync_pending_payments(session, tenant.id, fake_mp, bling)

        assert result['processed'] == 3
        assert result['approved'] == 1
        assert result['pending'] == 1
        assert result['failed'] == 1
        assert result['remaining'] == 0
        assert paid.bling_order_id == '999'
        assert waiting.status == 'processing'
        assert missing.last_error

    def test_network_failure_is_isolated_per_order(self, session, tenant, bling, make_online_order):
        first = make_online_order(payment_id='1')
        second = make_online_order(payment_id='2')
        mp = retrying_mp(requests.ConnectionError('boom'), max_retries=0)

        result = sync_pending_payments(session, tenant.id, mp, bling)

        assert result['processed'] == 2
        assert result['failed'] == 2
        assert all(not r['success'] for r in result['results'])
        assert first.last_error and second.last_error
        assert first.status == 'pending'

    def test_retries_erp_step_for_approved_orders(self, session, tenant, bling, erp_routes, fake_mp, make_online_order):
        order = make_online_order(status='approved')
        fake_mp.payments['111'] = approved()
        result = sync_pending_payments(session, tenant.id, fake_mp, bling)
        assert result['approved'] == 1
        assert order.bling_order_id == '999'

    def test_cursor(self, session, tenant, bling, fake_mp, make_online_order):
        orders = [make_online_order(payment_id=str(i)) for i in range(3)]
        for i in range(3):
            fake_mp.payments[str(i)] = {'status': 'in_process'}

        first = sync_pending_payments(session, tenant.id, fake_mp, bling, limit=2)
        assert first['next_cursor'] == orders[1].id
        assert first['remaining'] == 1

        second = sync_pending_payments(session, tenant.id, fake_mp, bling, limit=2, cursor=first['next_cursor'])
        assert [r['order_id'] for r in second['results']] == [orders[2].id]


class FakeSdk:
    def __init__(self, response):
        self.response = response

    def payment(self):
        return self

    def get(self, payment_id):
        return self.response


class ScriptedSdk:
    """SDK double answering from a script; exceptions in the script are raised."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    def payment(self):
        return self

    def get(self, payment_id):
        outcome = self.outcomes[min(self.calls, len(self.outcomes) - 1)]
        self.calls += 1
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def retrying_mp(*outcomes, max_retries=2):
    return MercadoPagoService(sdk=ScriptedSdk(*outcomes), max_retries=max_retries, sleep=lambda seconds: None)


class TestMercadoPagoService:

    def test_get_payment(self, app):
        sdk = FakeSdk({'status': 200, 'response': {'id': 1, 'status': 'approved'}})
        assert MercadoPagoService(sdk=sdk).get_payment(1)['status'] == 'approved'

    def test_error_status(self, app):
        sdk = FakeSdk({'status': 404, 'response': {'message': 'Payment not found'}})
        with pytest.raises(ProviderError) as exc:
            MercadoPagoService(sdk=sdk).get_payment(1)
        assert exc.value.http_status == 404

    def test_missing_token(self, app, monkeypatch):
        monkeypatch.setitem(app.config, 'MP_ACCESS_TOKEN', None)
        with pytest.raises(ProviderError):
            MercadoPagoService().get_payment(1)

    def test_server_error_is_retried(self, app):
        mp = retrying_mp(
            {'status': 503, 'response': {'message': 'unavailable'}},
            {'status': 200, 'response': {'id': 1, 'status': 'approved'}},
        )
        assert mp.get_payment(1)['status'] == 'approved'
        assert mp.sdk.calls == 2

    def test_network_error_becomes_provider_error(self, app):
        mp = retrying_mp(requests.ConnectionError('boom'))
        with pytest.raises(ProviderError) as exc:
            mp.get_payment(1)
        assert exc.value.provider == 'mercadopago'
        assert mp.sdk.calls == 3

    def test_client_error_is_not_retried(self, app):
        mp = retrying_mp({'status': 400, 'response': {'message': 'bad id'}})
        with pytest.raises(ProviderError):
            mp.get_payment('x')
        assert mp.sdk.calls == 1
