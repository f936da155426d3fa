"""
Discount resolution for carts and ERP quotes.

Exactly one discount policy applies per calculation. Policies are evaluated in
a fixed priority order and the first one that matches wins:

1. Per-category overrides configured for the client (any value > 0)
2. Discount assigned by the seller
3. ADVEC clients (50% on a short list of titles, 40% on everything else)
4. Church / CPF / CNPJ clients that finished the onboarding setup
5. Resellers (tiered by cart subtotal)
6. No discount

Money is handled as Decimal. Result amounts are quantized to cents; the
per-line values are kept unrounded in `lines` for reporting.
"""
import enum
import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ebd.exceptions import ValidationError, NotFoundError
from ebd.services.category_service import classify

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')
ZERO = Decimal('0')
HUNDRED = Decimal('100')

# Titles (lowercase substrings) with the ADVEC 50% schedule
ADVEC_50_TITLES = (
    'evangelho de joão',
    'evangelho de joao',
    'milagre do novo nascimento',
    'carta aos efésios',
    'carta aos efesios',
)
# Shopify product ids with the same schedule (checked before the title)
ADVEC_50_PRODUCT_IDS = (
    'gid://shopify/Product/8053892432047',  # O Evangelho De João - Milagre Do Novo Nascimento
    'gid://shopify/Product/8053891186863',  # Carta Aos Efésios
)
ADVEC_SPECIAL_PCT = Decimal('50')
ADVEC_DEFAULT_PCT = Decimal('40')


class DiscountPolicy(str, enum.Enum):
    """Which rule produced a discount."""
    ADVEC = 'advec'
    SETUP = 'setup'
    RESELLER = 'reseller'
    REPRESENTATIVE = 'representative'
    SELLER = 'seller'
    CATEGORY = 'category'
    NONE = 'none'


def to_decimal(value, field_name: str = 'value') -> Decimal:
    """Convert numbers/strings to Decimal without going through float repr."""
    if value is None or value == '':
        return ZERO
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f'{field_name} inválido: {value!r}')


def to_percentage(value, field_name: str = 'percentual') -> Decimal:
    """Decimal percentage, rejecting anything outside [0, 100]."""
    pct = to_decimal(value, field_name)
    if pct < ZERO or pct > HUNDRED:
        raise ValidationError(f'{field_name} deve estar entre 0 e 100: {value!r}')
    return pct


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _pct_label(value: Decimal) -> str:
    """10.00 -> '10', 12.50 -> '12.5'."""
    text = format(quantize_money(value), 'f')
    return text.rstrip('0').rstrip('.') if '.' in text else text


@dataclass
class LineItem:
    """One cart / order line."""
    title: str
    unit_price: Decimal
    quantity: int
    product_id: Optional[str] = None
    category: Optional[str] = None

    def __post_init__(self):
        self.unit_price = to_decimal(self.unit_price, 'unit_price')
        self.quantity = int(self.quantity)
        if self.category is None:
            self.category = classify(self.title)

    @property
    def gross(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass
class ClientProfile:
    """The client attributes the resolver looks at."""
    client_type: Optional[str] = None
    onboarding_completed: bool = False
    seller_discount_pct: Decimal = ZERO
    category_overrides: Dict[str, Decimal] = field(default_factory=dict)

    def __post_init__(self):
        self.seller_discount_pct = to_percentage(self.seller_discount_pct, 'seller_discount_pct')
        self.category_overrides = {
            category: to_percentage(pct, f'category_overrides.{category}')
            for category, pct in (self.category_overrides or {}).items()
        }


@dataclass
class LineDiscount:
    product_id: Optional[str]
    title: str
    category: str
    quantity: int
    gross: Decimal
    discount_pct: Decimal
    discount_amount: Decimal  # unrounded
    net: Decimal  # unrounded

    def to_dict(self):
        return {
            'product_id': self.product_id,
            'title': self.title,
            'category': self.category,
            'quantity': self.quantity,
            'gross': str(self.gross),
            'discount_pct': str(self.discount_pct),
            'discount_amount': str(self.discount_amount),
            'net': str(self.net),
        }


@dataclass
class DiscountResult:
    subtotal: Decimal
    discount_pct: Decimal
    discount_amount: Decimal
    total: Decimal
    policy: DiscountPolicy
    tier_label: str = ''
    lines: List[LineDiscount] = field(default_factory=list)

    def to_dict(self):
        return {
            'subtotal': str(self.subtotal),
            'discount_pct': str(self.discount_pct),
            'discount_amount': str(self.discount_amount),
            'total': str(self.total),
            'policy': self.policy.value,
            'tier_label': self.tier_label,
            'lines': [line.to_dict() for line in self.lines],
        }


# ---------------------------------------------------------------------------
# Client type predicates (client_type is free text from the CRM)
# ---------------------------------------------------------------------------

def is_advec_client(client_type: Optional[str]) -> bool:
    return bool(client_type) and 'ADVEC' in client_type.upper()


def is_church_client(client_type: Optional[str]) -> bool:
    """Igreja CPF / Igreja CNPJ (never ADVEC)."""
    if not client_type:
        return False
    upper = client_type.upper()
    return (
        any(term in upper for term in ('IGREJA', 'CHURCH', 'CPF', 'CNPJ'))
        and 'ADVEC' not in upper
    )


def is_reseller_client(client_type: Optional[str]) -> bool:
    return bool(client_type) and client_type.strip().upper() in ('REVENDEDOR', 'RESELLER')


def is_advec_special_product(title: str, product_id: Optional[str] = None) -> bool:
    if product_id and product_id in ADVEC_50_PRODUCT_IDS:
        return True
    lowered = (title or '').lower()
    return any(term in lowered for term in ADVEC_50_TITLES)


# ---------------------------------------------------------------------------
# Tier tables
# ---------------------------------------------------------------------------

def setup_tier(subtotal: Decimal) -> Tuple[Decimal, str]:
    """Progressive discount for churches that completed the setup."""
    if subtotal >= Decimal('501'):
        return Decimal('30'), 'Premium'
    if subtotal >= Decimal('301'):
        return Decimal('25'), 'Avançado'
    if subtotal > ZERO:
        return Decimal('20'), 'Básico'
    return ZERO, ''


def reseller_tier(subtotal: Decimal) -> Tuple[Decimal, str]:
    """Tiered discount for resellers."""
    if subtotal >= Decimal('699.90'):
        return Decimal('30'), 'Ouro'
    if subtotal >= Decimal('499.90'):
        return Decimal('25'), 'Prata'
    if subtotal >= Decimal('299.90'):
        return Decimal('20'), 'Bronze'
    return ZERO, ''


# ---------------------------------------------------------------------------
# Result builders
# ---------------------------------------------------------------------------

def _per_line_result(items, subtotal, pct_for_line, policy, label_for_pct) -> DiscountResult:
    lines = []
    exact_discount = ZERO
    for item in items:
        pct = pct_for_line(item)
        gross = item.gross
        line_discount = gross * pct / HUNDRED
        exact_discount += line_discount
        lines.append(LineDiscount(
            product_id=item.product_id,
            title=item.title,
            category=item.category,
            quantity=item.quantity,
            gross=gross,
            discount_pct=pct,
            discount_amount=line_discount,
            net=gross - line_discount,
        ))

    blended = quantize_money(exact_discount / subtotal * HUNDRED) if subtotal > 0 else ZERO
    discount_amount = quantize_money(exact_discount)
    subtotal = quantize_money(subtotal)
    return DiscountResult(
        subtotal=subtotal,
        discount_pct=blended,
        discount_amount=discount_amount,
        total=subtotal - discount_amount,
        policy=policy,
        tier_label=label_for_pct(blended),
        lines=lines,
    )


def _flat_result(items, subtotal, pct, policy, tier_label) -> DiscountResult:
    result = _per_line_result(items, subtotal, lambda item: pct, policy, lambda _: tier_label)
    # A flat percentage is reported as configured, not re-derived from cents
    result.discount_pct = pct
    return result


# ---------------------------------------------------------------------------
# Rule chain
# ---------------------------------------------------------------------------

@dataclass
class _Context:
    items: Sequence[LineItem]
    subtotal: Decimal
    profile: ClientProfile


def _has_category_overrides(ctx: _Context) -> bool:
    return any(pct > 0 for pct in ctx.profile.category_overrides.values())


def _apply_category_overrides(ctx: _Context) -> DiscountResult:
    overrides = ctx.profile.category_overrides
    return _per_line_result(
        ctx.items, ctx.subtotal,
        lambda item: overrides.get(item.category, ZERO),
        DiscountPolicy.CATEGORY,
        lambda pct: f'Por Categoria ({pct.quantize(Decimal("1"), rounding=ROUND_HALF_UP)}%)',
    )


def _has_seller_discount(ctx: _Context) -> bool:
    return ctx.profile.seller_discount_pct > 0


def _apply_seller_discount(ctx: _Context) -> DiscountResult:
    pct = ctx.profile.seller_discount_pct
    return _flat_result(ctx.items, ctx.subtotal, pct, DiscountPolicy.SELLER, f'Vendedor ({_pct_label(pct)}%)')


def _is_advec(ctx: _Context) -> bool:
    return is_advec_client(ctx.profile.client_type)


def _apply_advec(ctx: _Context) -> DiscountResult:
    def pct_for_line(item):
        return ADVEC_SPECIAL_PCT if is_advec_special_product(item.title, item.product_id) else ADVEC_DEFAULT_PCT

    return _per_line_result(
        ctx.items, ctx.subtotal, pct_for_line, DiscountPolicy.ADVEC,
        lambda pct: f'ADVEC ({pct.quantize(Decimal("1"), rounding=ROUND_HALF_UP)}%)',
    )


def _is_onboarded_church(ctx: _Context) -> bool:
    return is_church_client(ctx.profile.client_type) and ctx.profile.onboarding_completed


def _apply_setup(ctx: _Context) -> DiscountResult:
    pct, label = setup_tier(ctx.subtotal)
    return _flat_result(ctx.items, ctx.subtotal, pct, DiscountPolicy.SETUP, label)


def _is_reseller(ctx: _Context) -> bool:
    return is_reseller_client(ctx.profile.client_type)


def _apply_reseller(ctx: _Context) -> DiscountResult:
    pct, label = reseller_tier(ctx.subtotal)
    return _flat_result(ctx.items, ctx.subtotal, pct, DiscountPolicy.RESELLER, label)


def _always(ctx: _Context) -> bool:
    return True


def _apply_none(ctx: _Context) -> DiscountResult:
    return _flat_result(ctx.items, ctx.subtotal, ZERO, DiscountPolicy.NONE, '')


DISCOUNT_RULES: Tuple[Tuple[Callable[[_Context], bool], Callable[[_Context], DiscountResult]], ...] = (
    (_has_category_overrides, _apply_category_overrides),
    (_has_seller_discount, _apply_seller_discount),
    (_is_advec, _apply_advec),
    (_is_onboarded_church, _apply_setup),
    (_is_reseller, _apply_reseller),
    (_always, _apply_none),
)


def resolve_discount(
    items: Sequence[LineItem],
    client_type: Optional[str] = None,
    onboarding_complete: bool = False,
    seller_discount_pct=ZERO,
    category_overrides: Optional[Dict[str, Decimal]] = None,
) -> DiscountResult:
    """
    Compute the single applicable discount for a cart.

    Never raises for unknown client types: anything unrecognized ends with
    policy NONE.
    """
    profile = ClientProfile(
        client_type=client_type,
        onboarding_completed=bool(onboarding_complete),
        seller_discount_pct=seller_discount_pct,
        category_overrides=category_overrides or {},
    )
    return resolve_for_profile(items, profile)


def resolve_for_profile(items: Sequence[LineItem], profile: ClientProfile) -> DiscountResult:
    items = list(items)
    ctx = _Context(items=items, subtotal=sum((item.gross for item in items), ZERO), profile=profile)
    for predicate, handler in DISCOUNT_RULES:
        if predicate(ctx):
            result = handler(ctx)
            logger.debug(
                f"Discount resolved: policy={result.policy.value} pct={result.discount_pct} "
                f"subtotal={result.subtotal} client_type={profile.client_type!r}"
            )
            return result
    raise AssertionError('discount rule chain has no terminal rule')  # pragma: no cover


def apply_line_discount(unit_price, discount_pct) -> Decimal:
    """Unit price after a percentage discount, in cents (ERP order items)."""
    price = to_decimal(unit_price, 'unit_price')
    pct = to_percentage(discount_pct, 'discount_pct')
    return quantize_money(price * (HUNDRED - pct) / HUNDRED)


# ---------------------------------------------------------------------------
# Persistence helpers
# ---------------------------------------------------------------------------

def parse_line_items(raw_items) -> List[LineItem]:
    """Build LineItems from a JSON payload, rejecting malformed lines."""
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError('items deve ser uma lista não vazia')

    items = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f'items[{index}] inválido')
        title = raw.get('title')
        if not title:
            raise ValidationError(f'items[{index}].title é obrigatório')
        price = to_decimal(raw.get('unit_price', raw.get('price')), f'items[{index}].unit_price')
        if price < 0:
            raise ValidationError(f'items[{index}].unit_price não pode ser negativo')
        try:
            quantity = int(raw.get('quantity', 1))
        except (TypeError, ValueError):
            raise ValidationError(f'items[{index}].quantity inválida')
        if quantity <= 0:
            raise ValidationError(f'items[{index}].quantity deve ser maior que 0')
        items.append(LineItem(
            title=title,
            unit_price=price,
            quantity=quantity,
            product_id=raw.get('product_id'),
            category=raw.get('category'),
        ))
    return items


def profile_for_client(client) -> ClientProfile:
    """ClientProfile from a persisted Client row."""
    return ClientProfile(
        client_type=client.client_type,
        onboarding_completed=bool(client.onboarding_completed),
        seller_discount_pct=client.seller_discount_pct or ZERO,
        category_overrides=client.category_overrides,
    )


def quote_for_client(session, tenant_id: int, client_id: int, items: Sequence[LineItem]) -> DiscountResult:
    """Resolve the discount for a stored client."""
    from ebd.models import Client

    client = session.query(Client).filter_by(id=client_id, tenant_id=tenant_id).first()
    if not client:
        raise NotFoundError(f'Cliente {client_id} não encontrado')
    return resolve_for_profile(items, profile_for_client(client))
