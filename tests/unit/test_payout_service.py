"""
Unit tests for payout batches and royalty redemptions.
"""
from decimal import Decimal

import pytest

from ebd.exceptions import BusinessLogicError, NotFoundError, ProviderError, ValidationError
from ebd.models import PayoutStatus
from ebd.services import payout_service
from ebd.services.commission_service import record_sale


@pytest.fixture
def commission_sales(session, tenant, make_product):
    product = make_product(price='100.00', commission_pct='10', kind='commission')
    sales = [record_sale(session, tenant.id, product.id, quantity=q) for q in (1, 2)]
    session.commit()
    return sales


class TestCreateBatch:

    def test_total_is_sum_of_commissions(self, session, tenant, commission_sales):
        batch = payout_service.create_batch(session, tenant.id, [s.id for s in commission_sales])
        assert batch.status == PayoutStatus.PENDING.value
        assert batch.total == Decimal('30.00')
        assert {s.id for s in batch.sales} == {s.id for s in commission_sales}

    def test_sale_cannot_be_in_two_open_batches(self, session, tenant, commission_sales):
        payout_service.create_batch(session, tenant.id, [commission_sales[0].id])
        with pytest.raises(BusinessLogicError) as exc:
            payout_service.create_batch(session, tenant.id, [commission_sales[0].id])
        assert exc.value.status_code == 409

    def test_cancelled_batch_releases_sales(self, session, tenant, commission_sales):
        batch = payout_service.create_batch(session, tenant.id, [commission_sales[0].id])
        payout_service.cancel(session, tenant.id, batch.id)
        again = payout_service.create_batch(session, tenant.id, [commission_sales[0].id])
        assert again.id != batch.id

    def test_kind_mismatch(self, session, tenant, commission_sales):
        with pytest.raises(BusinessLogicError):
            payout_service.create_batch(session, tenant.id, [commission_sales[0].id], kind='royalty')

    def test_missing_sale(self, session, tenant, commission_sales):
        with pytest.raises(NotFoundError):
            payout_service.create_batch(session, tenant.id, [commission_sales[0].id, 9999])

    def test_empty_and_unknown_kind(self, session, tenant):
        with pytest.raises(ValidationError):
            payout_service.create_batch(session, tenant.id, [])
        with pytest.raises(ValidationError):
            payout_service.create_batch(session, tenant.id, [1], kind='resgate')


class TestTransitions:

    def test_pending_approved_paid(self, session, tenant, commission_sales):
        batch = payout_service.create_batch(session, tenant.id, [commission_sales[0].id])
        payout_service.approve(session, tenant.id, batch.id)
        assert batch.status == 'approved'
        assert batch.approved_at is not None

        payout_service.mark_paid(session, tenant.id, batch.id, reference='PIX-123')
        assert batch.status == 'paid'
        assert batch.reference == 'PIX-123'
        assert batch.paid_at is not None

    def test_pending_can_be_paid_directly(self, session, tenant, commission_sales):
        batch = payout_service.create_batch(session, tenant.id, [commission_sales[0].id])
        payout_service.mark_paid(session, tenant.id, batch.id)
        assert batch.status == 'paid'

    @pytest.mark.parametrize('terminal', ['paid', 'cancelled'])
    def test_terminal_states(self, session, tenant, commission_sales, terminal):
        batch = payout_service.create_batch(session, tenant.id, [commission_sales[0].id])
        payout_service.transition(session, batch, terminal)
        for target in ('pending', 'approved', 'paid', 'cancelled'):
            with pytest.raises(BusinessLogicError) as exc:
                payout_service.transition(session, batch, target)
            assert exc.value.status_code == 409

    def test_unknown_status(self, session, tenant, commission_sales):
        batch = payout_service.create_batch(session, tenant.id, [commission_sales[0].id])
        with pytest.raises(ValidationError):
            payout_service.transition(session, batch, 'archived')

    def test_batch_of_other_tenant(self, session, tenant, other_tenant, commission_sales):
        batch = payout_service.create_batch(session, tenant.id, [commission_sales[0].id])
        with pytest.raises(NotFoundError):
            payout_service.cancel(session, other_tenant.id, batch.id)


class TestResgate:

    ITEMS = [
        {'sku': 'REV-01', 'title': 'Revista EBD Adultos', 'quantity': 2, 'unit_price': '19.90', 'discount_pct': 30},
        {'sku': 'LIV-02', 'title': 'Livro Devocional', 'quantity': 1, 'unit_price': '50.00', 'discount_pct': 0},
    ]

    def test_order_items_are_discounted(self):
        items = payout_service.build_resgate_order_items(self.ITEMS)
        assert items[0]['valor'] == Decimal('13.93')
        assert items[0]['preco_cheio'] == Decimal('19.90')
        assert items[0]['unidade'] == 'UN'
        assert items[1]['valor'] == Decimal('50.00')

    def test_invalid_quantity(self):
        with pytest.raises(ValidationError):
            payout_service.build_resgate_order_items([{'sku': 'X', 'quantity': 0, 'unit_price': 1}])

    @pytest.mark.parametrize('pct', [150, -5])
    def test_discount_outside_range_rejected(self, pct):
        with pytest.raises(ValidationError):
            payout_service.build_resgate_order_items(
                [{'sku': 'X', 'title': 'Livro', 'quantity': 1, 'unit_price': '10.00', 'discount_pct': pct}])

    def test_create_resgate_total(self, session, tenant):
        batch = payout_service.create_resgate(session, tenant.id, self.ITEMS, notes='Autor X')
        assert batch.kind == 'resgate'
        assert batch.total == Decimal('77.86')

    def test_approve_creates_bling_order(self, session, tenant, bling, fake_http):
        fake_http.route('POST', '/pedidos/vendas', json_data={'data': {'id': 555, 'numero': 10}})
        batch = payout_service.create_resgate(session, tenant.id, self.ITEMS)

        payout_service.approve(session, tenant.id, batch.id, bling=bling, contact_id=42)

        assert batch.status == 'approved'
        assert batch.bling_order_id == '555'
        call = fake_http.calls_to('/pedidos/vendas', 'POST')[0]
        assert '"contato": {"id": 42}' in call['data']
        assert 'RESGATE DE ROYALTIES' in call['data']

    def test_approve_failure_keeps_pending(self, session, tenant, bling, fake_http):
        fake_http.route('POST', '/pedidos/vendas', status_code=400, json_data={'error': {'description': 'contato inválido'}})
        batch = payout_service.create_resgate(session, tenant.id, self.ITEMS)

        with pytest.raises(ProviderError):
            payout_service.approve(session, tenant.id, batch.id, bling=bling)
        assert batch.status == 'pending'

    def test_approve_twice(self, session, tenant, bling, fake_http):
        fake_http.route('POST', '/pedidos/vendas', json_data={'data': {'id': 1}})
        batch = payout_service.create_resgate(session, tenant.id, self.ITEMS)
        payout_service.approve(session, tenant.id, batch.id, bling=bling)
        with pytest.raises(BusinessLogicError):
            payout_service.approve(session, tenant.id, batch.id, bling=bling)
