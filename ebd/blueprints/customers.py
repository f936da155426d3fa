"""Clients API: profiles read by the discount resolver at checkout."""
import logging

from flask import Blueprint, request, jsonify, g
from sqlalchemy import func

from ebd.database import get_session
from ebd.middleware import require_tenant
from ebd.models import Client
from ebd.services import customer_service

logger = logging.getLogger(__name__)

customers_bp = Blueprint('customers', __name__, url_prefix='/api/clients')


@customers_bp.route('', methods=['GET'])
@require_tenant
def list_clients():
    """Active clients; ?q= filters by name, ?type= by client type."""
    query = get_session().query(Client).filter(Client.tenant_id == g.tenant_id, Client.active.is_(True))
    term = (request.args.get('q') or '').strip()
    if term:
        query = query.filter(func.lower(Client.name).like(f'%{term.lower()}%'))
    if request.args.get('type'):
        query = query.filter(Client.client_type == request.args['type'])
    clients = query.order_by(Client.name).limit(100).all()
    return jsonify({'clients': [client.to_dict() for client in clients]}), 200


@customers_bp.route('', methods=['POST'])
@require_tenant
def create_client():
    session = get_session()
    client = customer_service.create_client(session, g.tenant_id, request.get_json(silent=True) or {})
    session.commit()
    return jsonify(client.to_dict()), 201


@customers_bp.route('/<int:client_id>', methods=['GET'])
@require_tenant
def view_client(client_id):
    client = customer_service.get_client(get_session(), g.tenant_id, client_id)
    return jsonify(client.to_dict()), 200


@customers_bp.route('/<int:client_id>', methods=['PATCH'])
@require_tenant
def update_client(client_id):
    """Partial update of type, onboarding flag, seller discount or overrides."""
    session = get_session()
    client = customer_service.update_client(session, g.tenant_id, client_id, request.get_json(silent=True) or {})
    session.commit()
    logger.info(f"Client {client_id} updated by tenant {g.tenant_id}")
    return jsonify(client.to_dict()), 200


@customers_bp.route('/<int:client_id>/category-overrides', methods=['PUT'])
@require_tenant
def replace_category_overrides(client_id):
    """Body: {categoria: percentual}; categories left out are removed."""
    session = get_session()
    client = customer_service.get_client(session, g.tenant_id, client_id)
    customer_service.set_category_overrides(session, client, request.get_json(silent=True) or {})
    session.commit()
    return jsonify(client.to_dict()), 200
