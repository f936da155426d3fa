"""Open pixel and click redirect for tracked messages."""
from flask import Blueprint, Response, request, redirect, jsonify

from ebd.database import get_session
from ebd.services.tracking_service import PIXEL_GIF, record_open, record_click, is_safe_redirect

tracking_bp = Blueprint('tracking', __name__, url_prefix='/t')


@tracking_bp.route('/o/<token>.gif')
def open_pixel(token):
    session = get_session()
    record_open(session, token)
    session.commit()
    return Response(PIXEL_GIF, mimetype='image/gif', headers={
        'Cache-Control': 'no-store, no-cache, must-revalidate, max-age=0',
        'Pragma': 'no-cache',
    })


@tracking_bp.route('/c/<token>')
def click_redirect(token):
    """Count the click and redirect to ?u. Unknown tokens are not redirected."""
    target = request.args.get('u')
    if not is_safe_redirect(target):
        return jsonify({'error': 'Invalid redirect target'}), 400

    session = get_session()
    log = record_click(session, token)
    session.commit()
    if log is None:
        return jsonify({'error': 'Unknown tracking token'}), 404
    return redirect(target, code=302)
