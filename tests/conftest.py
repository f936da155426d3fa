import json
import uuid
from decimal import Decimal

import pytest

from ebd import create_app
from ebd.database import create_all, drop_all, get_session
from ebd.exceptions import ProviderError
from ebd.models import (
    Tenant, Client, ClientCategoryDiscount, Product, ProductCommission, ProviderToken,
)


class FakeResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, status_code=200, json_data=None, text=None):
        self.status_code = status_code
        self._json = json_data
        if text is None:
            text = json.dumps(json_data) if json_data is not None else ''
        self.text = text
        self.content = text.encode('utf-8')

    def json(self):
        if self._json is None:
            raise ValueError('No JSON body')
        return self._json


class FakeHttp:
    """
    Records outgoing calls and answers them from scripted responses.

    route(method, fragment, ...) answers every call whose URL contains the
    fragment (longest fragment wins); several responses for one route are
    consumed in order and the last one repeats. add(...) feeds a FIFO used
    when no route matches. An Exception instance in place of a response is
    raised.
    """

    def __init__(self):
        self.calls = []
        self._queue = []
        self._routes = {}

    def add(self, status_code=200, json_data=None, text=None):
        self._queue.append(FakeResponse(status_code, json_data, text))
        return self

    def add_error(self, error):
        self._queue.append(error)
        return self

    def route(self, method, fragment, status_code=200, json_data=None, text=None):
        self._routes.setdefault((method.upper(), fragment), []).append(FakeResponse(status_code, json_data, text))
        return self

    def _next(self, method, url):
        matches = [
            (fragment, responses) for (m, fragment), responses in self._routes.items()
            if m == method.upper() and fragment in url
        ]
        if matches:
            _, responses = max(matches, key=lambda match: len(match[0]))
            return responses.pop(0) if len(responses) > 1 else responses[0]
        if self._queue:
            return self._queue.pop(0)
        raise AssertionError(f'Unexpected request: {method} {url}')

    def request(self, method, url, **kwargs):
        self.calls.append({'method': method.upper(), 'url': url, **kwargs})
        response = self._next(method, url)
        if isinstance(response, Exception):
            raise response
        return response

    def post(self, url, **kwargs):
        return self.request('POST', url, **kwargs)

    def get(self, url, **kwargs):
        return self.request('GET', url, **kwargs)

    def calls_to(self, fragment, method=None):
        return [
            call for call in self.calls
            if fragment in call['url'] and (method is None or call['method'] == method.upper())
        ]


class FakeMercadoPago:
    """MercadoPagoService double: payments keyed by id."""

    def __init__(self, payments=None, error=None):
        self.payments = payments or {}
        self.error = error
        self.requested = []

    def get_payment(self, payment_id):
        self.requested.append(str(payment_id))
        if self.error is not None:
            raise self.error
        if str(payment_id) not in self.payments:
            raise ProviderError('mercadopago', 'Payment not found', http_status=404)
        return self.payments[str(payment_id)]


def no_sleep(seconds):
    pass


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing."""
    app = create_app('config.TestingConfig')
    ctx = app.app_context()
    ctx.push()
    yield app
    ctx.pop()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Fresh in-memory schema per test."""
    create_all()
    session = get_session()
    yield session
    session.rollback()
    session.remove()
    drop_all()


@pytest.fixture
def fake_http():
    return FakeHttp()


@pytest.fixture
def fake_mp():
    return FakeMercadoPago()


@pytest.fixture
def bling(fake_http):
    """BlingClient over a scripted HTTP session with a static token."""
    from ebd.services.bling_client import BlingClient
    from ebd.services.provider_http import ProviderSession

    return BlingClient(ProviderSession(
        'bling', 'https://bling.test/Api/v3',
        access_token='test-token', http=fake_http, min_interval=0, sleep=no_sleep,
    ))


@pytest.fixture(scope='function')
def tenant(session):
    """Create test tenant."""
    suffix = str(uuid.uuid4())[:8]
    tenant = Tenant(slug=f'editora-{suffix}', name=f'Editora {suffix}', active=True)
    session.add(tenant)
    session.commit()
    return tenant


@pytest.fixture(scope='function')
def other_tenant(session):
    """Second tenant for isolation tests."""
    suffix = str(uuid.uuid4())[:8]
    tenant = Tenant(slug=f'outra-{suffix}', name=f'Outra {suffix}', active=True)
    session.add(tenant)
    session.commit()
    return tenant


@pytest.fixture
def make_client(session, tenant):
    """Factory for stored clients; category_discounts maps category -> pct."""
    def _make(client_type=None, onboarding_completed=False, seller_discount_pct=None,
              category_discounts=None, **kwargs):
        client = Client(
            tenant_id=tenant.id,
            name=kwargs.pop('name', 'Igreja Teste'),
            client_type=client_type,
            onboarding_completed=onboarding_completed,
            seller_discount_pct=seller_discount_pct,
            **kwargs,
        )
        for category, pct in (category_discounts or {}).items():
            client.category_discounts.append(ClientCategoryDiscount(category=category, percentage=Decimal(str(pct))))
        session.add(client)
        session.commit()
        return client
    return _make


@pytest.fixture
def make_product(session, tenant):
    """Factory for products with an optional commission configuration."""
    def _make(title='Revista EBD Adultos - Aluno', price='20.00', commission_pct='10', kind='royalty',
              sku=None, bling_product_id=None, tenant_id=None):
        product = Product(
            tenant_id=tenant_id or tenant.id,
            title=title,
            price=Decimal(price),
            sku=sku,
            bling_product_id=bling_product_id,
            active=True,
        )
        if commission_pct is not None:
            product.commission = ProductCommission(percentage=Decimal(str(commission_pct)), kind=kind)
        session.add(product)
        session.commit()
        return product
    return _make


@pytest.fixture
def bling_token(session, tenant):
    """Stored Bling credentials with a still-valid access token."""
    from datetime import datetime, timedelta

    token = ProviderToken(
        tenant_id=tenant.id,
        provider='bling',
        client_id='client-id',
        client_secret='client-secret',
        access_token='stored-access',
        refresh_token='stored-refresh',
        token_expires_at=datetime.utcnow() + timedelta(hours=2),
    )
    session.add(token)
    session.commit()
    return token


@pytest.fixture
def make_online_order(session, tenant):
    """Factory for checkout orders waiting on a Mercado Pago payment."""
    from ebd.models import OnlineOrder

    def _make(payment_id='111', status='pending', items=None, **kwargs):
        order = OnlineOrder(
            tenant_id=kwargs.pop('tenant_id', tenant.id),
            customer_name='Igreja Batista Central',
            customer_email='compras@igreja.test',
            customer_document=kwargs.pop('customer_document', '52998224725'),
            items=items if items is not None else [
                {'sku': 'REV-1', 'title': 'Revista EBD Adultos', 'price': '20.00', 'quantity': 2, 'discount_pct': 30},
            ],
            total=Decimal('28.00'),
            mercadopago_payment_id=payment_id,
            status=status,
            **kwargs,
        )
        session.add(order)
        session.commit()
        return order
    return _make
