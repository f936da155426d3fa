"""Request context: tenant resolution and access guards for the JSON API."""
import hmac
from functools import wraps

from flask import g, request, current_app
from sqlalchemy.exc import SQLAlchemyError

from ebd.database import get_session
from ebd.exceptions import UnauthorizedError
from ebd.models import Tenant

TENANT_HEADER = 'X-Tenant'
CRON_SECRET_HEADER = 'X-Cron-Secret'


def find_tenant(slug):
    """Active tenant by slug, or None."""
    if not slug:
        return None
    return get_session().query(Tenant).filter_by(slug=slug.strip(), active=True).first()


def load_tenant():
    """
    Load the tenant named by the X-Tenant header into g.

    Sets g.tenant and g.tenant_id (None when missing or unknown).
    """
    g.tenant = None
    g.tenant_id = None

    slug = request.headers.get(TENANT_HEADER)
    if not slug:
        return
    try:
        tenant = find_tenant(slug)
    except SQLAlchemyError as e:
        current_app.logger.error(f"Error loading tenant '{slug}': {e}")
        return
    if tenant:
        g.tenant = tenant
        g.tenant_id = tenant.id


def require_tenant(f):
    """Decorator: reject requests without a valid, active tenant."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('tenant_id') is None:
            raise UnauthorizedError(f'Tenant ausente ou inválido (header {TENANT_HEADER})', 401)
        return f(*args, **kwargs)
    return decorated_function


def require_cron_secret(f):
    """Decorator: when CRON_SECRET is configured, X-Cron-Secret must match it."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        secret = current_app.config.get('CRON_SECRET')
        if secret:
            provided = request.headers.get(CRON_SECRET_HEADER, '')
            if not hmac.compare_digest(provided, secret):
                current_app.logger.warning(f"Invalid cron secret on {request.path}")
                raise UnauthorizedError('Cron secret inválido', 401)
        return f(*args, **kwargs)
    return decorated_function
