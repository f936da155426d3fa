"""Pricing API: cart discount quotes and product classification."""
import logging

from flask import Blueprint, request, jsonify, g

from ebd.database import get_session
from ebd.exceptions import ValidationError
from ebd.middleware import require_tenant
from ebd.services.category_service import classify_with_subcategory, category_name
from ebd.services.discount_service import parse_line_items, quote_for_client, resolve_discount

logger = logging.getLogger(__name__)

pricing_bp = Blueprint('pricing', __name__, url_prefix='/api/pricing')


@pricing_bp.route('/quote', methods=['POST'])
@require_tenant
def quote():
    """
    Resolve the discount for a cart.

    Body:
        items: [{title, unit_price, quantity, product_id?}]
        client_id: stored client (its type, onboarding and overrides apply), or
        client_type / onboarding_completed / seller_discount_pct / category_overrides
        (onboarding_complete and category_discounts are accepted as aliases)
    """
    data = request.get_json(silent=True) or {}
    items = parse_line_items(data.get('items'))

    if data.get('client_id') is not None:
        result = quote_for_client(get_session(), g.tenant_id, data['client_id'], items)
    else:
        overrides = data.get('category_overrides') or data.get('category_discounts') or {}
        if not isinstance(overrides, dict):
            raise ValidationError('category_overrides deve ser um objeto {categoria: percentual}')
        result = resolve_discount(
            items,
            client_type=data.get('client_type'),
            onboarding_complete=bool(data.get('onboarding_completed', data.get('onboarding_complete'))),
            seller_discount_pct=data.get('seller_discount_pct') or 0,
            category_overrides=overrides,
        )
    return jsonify(result.to_dict()), 200


@pricing_bp.route('/classify')
def classify():
    """Category of a product title (?title=...)."""
    title = request.args.get('title', '').strip()
    if not title:
        raise ValidationError('title é obrigatório')
    category, subcategory = classify_with_subcategory(title)
    return jsonify({
        'title': title,
        'category': category,
        'category_name': category_name(category),
        'subcategory': subcategory,
    }), 200
