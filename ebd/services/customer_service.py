"""Client profiles maintained by admins and sales reps."""
import logging

from ebd.exceptions import ValidationError, NotFoundError
from ebd.models import Client, ClientCategoryDiscount
from ebd.services.category_service import CATEGORY_NAMES
from ebd.services.discount_service import to_percentage, ZERO
from ebd.utils.documents import clean_document, validate_document

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ('name', 'client_type', 'document', 'email', 'phone', 'onboarding_completed',
                  'seller_discount_pct', 'active')


def get_client(session, tenant_id: int, client_id: int) -> Client:
    client = session.query(Client).filter_by(id=client_id, tenant_id=tenant_id).first()
    if not client:
        raise NotFoundError(f'Cliente {client_id} não encontrado')
    return client


def _apply_profile(client: Client, data: dict) -> None:
    for key in PROFILE_FIELDS:
        if key not in data:
            continue
        value = data[key]
        if key == 'name':
            value = (value or '').strip()
            if not value:
                raise ValidationError('name é obrigatório')
        elif key == 'document':
            value = clean_document(value) or None
            if value and not validate_document(value):
                raise ValidationError('document não é um CPF/CNPJ válido')
        elif key == 'seller_discount_pct':
            value = to_percentage(value, 'seller_discount_pct') if value not in (None, '') else None
        elif key in ('onboarding_completed', 'active'):
            value = bool(value)
        setattr(client, key, value)


def set_category_overrides(session, client: Client, overrides) -> Client:
    """
    Replace the per-category overrides of a client.

    Categories must be known tags; a percentage of 0 removes the override.
    """
    if not isinstance(overrides, dict):
        raise ValidationError('category_overrides deve ser um objeto {categoria: percentual}')

    wanted = {}
    for category, pct in overrides.items():
        if category not in CATEGORY_NAMES:
            raise ValidationError(f'Categoria desconhecida: {category}')
        pct = to_percentage(pct, f'category_overrides.{category}')
        if pct > ZERO:
            wanted[category] = pct

    current = {d.category: d for d in client.category_discounts}
    for category, discount in current.items():
        if category not in wanted:
            client.category_discounts.remove(discount)
    for category, pct in wanted.items():
        if category in current:
            current[category].percentage = pct
        else:
            client.category_discounts.append(ClientCategoryDiscount(category=category, percentage=pct))
    session.flush()
    return client


def create_client(session, tenant_id: int, data: dict) -> Client:
    """Create a client profile (flush only; caller commits)."""
    if not (data.get('name') or '').strip():
        raise ValidationError('name é obrigatório')
    client = Client(tenant_id=tenant_id, onboarding_completed=False, active=True)
    _apply_profile(client, data)
    session.add(client)
    if data.get('category_overrides'):
        set_category_overrides(session, client, data['category_overrides'])
    session.flush()
    logger.info(f"Client created: tenant={tenant_id} id={client.id} type={client.client_type!r}")
    return client


def update_client(session, tenant_id: int, client_id: int, data: dict) -> Client:
    """Partial update; only the keys present in data change."""
    client = get_client(session, tenant_id, client_id)
    _apply_profile(client, data)
    if 'category_overrides' in data:
        set_category_overrides(session, client, data['category_overrides'] or {})
    session.flush()
    return client
