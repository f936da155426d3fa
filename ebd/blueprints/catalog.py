"""Catalog API: products and the commission each sale freezes."""
from flask import Blueprint, request, jsonify, g

from ebd.database import get_session
from ebd.middleware import require_tenant
from ebd.models import Product
from ebd.services import catalog_service

catalog_bp = Blueprint('catalog', __name__, url_prefix='/api/products')


@catalog_bp.route('', methods=['GET'])
@require_tenant
def list_products():
    query = get_session().query(Product).filter(Product.tenant_id == g.tenant_id)
    if request.args.get('active', '1') != '0':
        query = query.filter(Product.active.is_(True))
    products = query.order_by(Product.title).all()
    return jsonify({'products': [product.to_dict() for product in products]}), 200


@catalog_bp.route('', methods=['POST'])
@require_tenant
def upsert_product():
    """Create a product (or update the one with the same SKU)."""
    session = get_session()
    product = catalog_service.upsert_product(session, g.tenant_id, request.get_json(silent=True) or {})
    session.commit()
    return jsonify(product.to_dict()), 201


@catalog_bp.route('/<int:product_id>', methods=['PATCH'])
@require_tenant
def update_product(product_id):
    session = get_session()
    product = catalog_service.upsert_product(
        session, g.tenant_id, request.get_json(silent=True) or {}, product_id=product_id
    )
    session.commit()
    return jsonify(product.to_dict()), 200


@catalog_bp.route('/<int:product_id>/commission', methods=['PUT'])
@require_tenant
def set_commission(product_id):
    """Body: {percentage, kind: royalty|commission, beneficiary_name?}"""
    data = request.get_json(silent=True) or {}
    session = get_session()
    product = catalog_service.get_product(session, g.tenant_id, product_id)
    catalog_service.set_commission(
        session, product,
        percentage=data.get('percentage'),
        kind=data.get('kind', 'royalty'),
        beneficiary_name=data.get('beneficiary_name'),
    )
    session.commit()
    return jsonify(product.to_dict()), 200


@catalog_bp.route('/<int:product_id>/commission', methods=['DELETE'])
@require_tenant
def remove_commission(product_id):
    session = get_session()
    product = catalog_service.get_product(session, g.tenant_id, product_id)
    catalog_service.remove_commission(session, product)
    session.commit()
    return jsonify(product.to_dict()), 200
