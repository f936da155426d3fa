"""Online orders API: checkout registration and status lookup."""
from flask import Blueprint, request, jsonify, g

from ebd.database import get_session
from ebd.exceptions import NotFoundError
from ebd.middleware import require_tenant
from ebd.models import OnlineOrder
from ebd.services.checkout_service import create_online_order

orders_bp = Blueprint('orders', __name__, url_prefix='/api/orders')


@orders_bp.route('', methods=['POST'])
@require_tenant
def create_order():
    """
    Register a checkout order.

    Body:
        items: [{sku, title, price, quantity}]
        client_id (discount resolved for the stored profile), mercadopago_payment_id,
        customer_name / customer_email / customer_document / customer_phone,
        shipping_method, shipping_cost
    """
    session = get_session()
    order = create_online_order(session, g.tenant_id, request.get_json(silent=True) or {})
    session.commit()
    return jsonify({**order.to_dict(), 'items': order.items}), 201


@orders_bp.route('/<int:order_id>', methods=['GET'])
@require_tenant
def view_order(order_id):
    order = get_session().query(OnlineOrder).filter_by(id=order_id, tenant_id=g.tenant_id).first()
    if order is None:
        raise NotFoundError(f'Pedido {order_id} não encontrado')
    return jsonify({**order.to_dict(), 'items': order.items, 'last_error': order.last_error}), 200
