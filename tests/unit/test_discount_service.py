"""
Unit tests for discount resolution.
"""
from decimal import Decimal

import pytest

from ebd.exceptions import ValidationError, NotFoundError
from ebd.services.discount_service import (
    DiscountPolicy,
    LineItem,
    apply_line_discount,
    is_church_client,
    is_reseller_client,
    parse_line_items,
    quote_for_client,
    reseller_tier,
    resolve_discount,
    setup_tier,
)


def cart(*lines):
    return [LineItem(title=title, unit_price=price, quantity=qty) for title, price, qty in lines]


class TestTiers:
    """Threshold tables."""

    @pytest.mark.parametrize('subtotal, pct, label', [
        ('501', 30, 'Premium'),
        ('800', 30, 'Premium'),
        ('500.99', 25, 'Avançado'),
        ('301', 25, 'Avançado'),
        ('50', 20, 'Básico'),
        ('0.01', 20, 'Básico'),
        ('0', 0, ''),
    ])
    def test_setup_tier(self, subtotal, pct, label):
        assert setup_tier(Decimal(subtotal)) == (Decimal(pct), label)

    @pytest.mark.parametrize('subtotal, pct, label', [
        ('699.90', 30, 'Ouro'),
        ('699.89', 25, 'Prata'),
        ('499.90', 25, 'Prata'),
        ('300', 20, 'Bronze'),
        ('299.90', 20, 'Bronze'),
        ('100', 0, ''),
    ])
    def test_reseller_tier(self, subtotal, pct, label):
        assert reseller_tier(Decimal(subtotal)) == (Decimal(pct), label)


class TestClientTypes:

    def test_church_types(self):
        assert is_church_client('Igreja CNPJ')
        assert is_church_client('IGREJA CPF')
        assert not is_church_client('ADVEC Igreja')
        assert not is_church_client(None)

    def test_reseller_types(self):
        assert is_reseller_client('Revendedor')
        assert is_reseller_client(' reseller ')
        assert not is_reseller_client('Revendedora Autorizada')


class TestResolveDiscount:
    """Policy precedence and amounts."""

    def test_category_overrides_win_over_everything(self):
        items = cart(('Revista EBD Adultos', '100.00', 1), ('Bíblia Sagrada', '100.00', 1))
        result = resolve_discount(
            items,
            client_type='ADVEC',
            onboarding_complete=True,
            seller_discount_pct=15,
            category_overrides={'revistas': Decimal('10')},
        )
        assert result.policy == DiscountPolicy.CATEGORY
        assert result.discount_amount == Decimal('10.00')
        assert result.total == Decimal('190.00')
        assert result.discount_pct == Decimal('5.00')
        assert result.tier_label == 'Por Categoria (5%)'
        assert [line.discount_pct for line in result.lines] == [Decimal('10'), Decimal('0')]

    def test_zero_overrides_are_ignored(self):
        items = cart(('Revista EBD Adultos', '100.00', 1))
        result = resolve_discount(items, seller_discount_pct=12, category_overrides={'revistas': 0})
        assert result.policy == DiscountPolicy.SELLER

    def test_seller_discount_is_flat(self):
        items = cart(('Revista EBD Adultos', '33.33', 3))
        result = resolve_discount(items, client_type='Revendedor', seller_discount_pct='12.5')
        assert result.policy == DiscountPolicy.SELLER
        assert result.discount_pct == Decimal('12.5')
        assert result.subtotal == Decimal('99.99')
        assert result.discount_amount == Decimal('12.50')
        assert result.total == Decimal('87.49')
        assert result.tier_label == 'Vendedor (12.5%)'

    def test_advec_special_title_gets_fifty_percent(self):
        items = cart(('O Evangelho de João - Milagre do Novo Nascimento', '10.00', 2))
        result = resolve_discount(items, client_type='ADVEC')
        assert result.policy == DiscountPolicy.ADVEC
        assert result.discount_pct == Decimal('50.00')
        assert result.total == Decimal('10.00')

    def test_advec_other_titles_get_forty_percent(self):
        items = cart(('Revista EBD Adultos', '25.00', 4))
        result = resolve_discount(items, client_type='advec sede')
        assert result.discount_pct == Decimal('40.00')
        assert result.discount_amount == Decimal('40.00')
        assert result.tier_label == 'ADVEC (40%)'

    def test_advec_mixed_cart_blends_between_forty_and_fifty(self):
        items = cart(
            ('Evangelho de João', '10.00', 10),
            ('Revista EBD Adultos', '30.00', 5),
        )
        result = resolve_discount(items, client_type='ADVEC')
        # 50 + 60 = 110 discount over 250
        assert result.discount_amount == Decimal('110.00')
        assert result.discount_pct == Decimal('44.00')
        assert Decimal('40') <= result.discount_pct <= Decimal('50')

    def test_advec_special_product_id(self):
        items = [LineItem(title='Produto', unit_price='10', quantity=1,
                          product_id='gid://shopify/Product/8053891186863')]
        assert resolve_discount(items, client_type='ADVEC').discount_pct == Decimal('50.00')

    @pytest.mark.parametrize('subtotal, pct, label', [
        ('501.00', '30', 'Premium'),
        ('301.00', '25', 'Avançado'),
        ('50.00', '20', 'Básico'),
    ])
    def test_church_with_onboarding_uses_setup_tiers(self, subtotal, pct, label):
        result = resolve_discount(cart(('Revista EBD Adultos', subtotal, 1)),
                                  client_type='Igreja CNPJ', onboarding_complete=True)
        assert result.policy == DiscountPolicy.SETUP
        assert result.discount_pct == Decimal(pct)
        assert result.tier_label == label

    def test_church_without_onboarding_gets_nothing(self):
        result = resolve_discount(cart(('Revista EBD Adultos', '600.00', 1)), client_type='Igreja CPF')
        assert result.policy == DiscountPolicy.NONE
        assert result.total == Decimal('600.00')

    def test_empty_cart_with_onboarding_has_no_tier(self):
        result = resolve_discount([], client_type='Igreja CNPJ', onboarding_complete=True)
        assert result.discount_pct == Decimal('0')
        assert result.tier_label == ''
        assert result.total == Decimal('0.00')

    @pytest.mark.parametrize('subtotal, pct, label', [
        ('699.90', '30', 'Ouro'),
        ('300.00', '20', 'Bronze'),
        ('100.00', '0', ''),
    ])
    def test_reseller_tiers(self, subtotal, pct, label):
        result = resolve_discount(cart(('Bíblia Sagrada', subtotal, 1)), client_type='REVENDEDOR')
        assert result.policy == DiscountPolicy.RESELLER
        assert result.discount_pct == Decimal(pct)
        assert result.tier_label == label

    def test_representative_and_unknown_types_get_nothing(self):
        for client_type in ('Representante', 'Pessoa Física', None):
            result = resolve_discount(cart(('Bíblia Sagrada', '900', 1)), client_type=client_type)
            assert result.policy == DiscountPolicy.NONE
            assert result.discount_amount == Decimal('0.00')

    def test_total_is_subtotal_minus_discount(self):
        items = cart(('Revista EBD', '19.90', 7), ('Evangelho de João', '4.99', 3))
        result = resolve_discount(items, client_type='ADVEC')
        assert result.total == result.subtotal - result.discount_amount
        assert result.total >= 0

    def test_to_dict_uses_strings(self):
        data = resolve_discount(cart(('Revista EBD', '10', 1)), seller_discount_pct=10).to_dict()
        assert data['policy'] == 'seller'
        assert data['total'] == '9.00'
        assert data['lines'][0]['category'] == 'revistas'

    @pytest.mark.parametrize('pct', [150, -5])
    def test_seller_discount_outside_range_rejected(self, pct):
        with pytest.raises(ValidationError):
            resolve_discount(cart(('Livro X', '100', 1)), seller_discount_pct=pct)

    @pytest.mark.parametrize('pct', [120, -5])
    def test_category_override_outside_range_rejected(self, pct):
        with pytest.raises(ValidationError):
            resolve_discount(cart(('Livro X', '100', 1)), category_overrides={'livros': pct})

    def test_full_seller_discount_gives_zero_total(self):
        result = resolve_discount(cart(('Livro X', '100', 1)), seller_discount_pct=100)
        assert result.total == Decimal('0.00')


class TestHelpers:

    def test_apply_line_discount_rounds_to_cents(self):
        assert apply_line_discount('19.90', 30) == Decimal('13.93')
        assert apply_line_discount('10.00', 0) == Decimal('10.00')

    def test_parse_line_items(self):
        items = parse_line_items([{'title': 'Revista EBD', 'price': '12.50', 'quantity': 2}])
        assert items[0].gross == Decimal('25.00')
        assert items[0].category == 'revistas'

    @pytest.mark.parametrize('raw', [
        None,
        [],
        [{'price': 10}],
        [{'title': 'X', 'unit_price': 'abc'}],
        [{'title': 'X', 'unit_price': 10, 'quantity': 0}],
        [{'title': 'X', 'unit_price': -1}],
    ])
    def test_parse_line_items_rejects_malformed(self, raw):
        with pytest.raises(ValidationError):
            parse_line_items(raw)


class TestQuoteForClient:

    def test_stored_client_profile(self, session, tenant, make_client):
        client = make_client(client_type='Igreja CNPJ', onboarding_completed=True)
        result = quote_for_client(session, tenant.id, client.id, cart(('Revista EBD', '400', 1)))
        assert result.policy == DiscountPolicy.SETUP
        assert result.discount_pct == Decimal('25')

    def test_stored_category_overrides(self, session, tenant, make_client):
        client = make_client(client_type='ADVEC', category_discounts={'biblias': 15})
        result = quote_for_client(session, tenant.id, client.id, cart(('Bíblia Sagrada', '100', 1)))
        assert result.policy == DiscountPolicy.CATEGORY
        assert result.total == Decimal('85.00')

    def test_client_of_other_tenant_not_found(self, session, other_tenant, make_client):
        client = make_client(client_type='ADVEC')
        with pytest.raises(NotFoundError):
            quote_for_client(session, other_tenant.id, client.id, cart(('Bíblia', '10', 1)))
