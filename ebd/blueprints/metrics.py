"""
Prometheus metrics blueprint.

Exposes /metrics; restrict it to the internal network in production.
"""
import time

from flask import Blueprint, Response, request, g
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from ebd.metrics import (
    registry,
    http_requests_total,
    http_request_duration_seconds,
    http_requests_in_flight,
)

metrics_bp = Blueprint('metrics', __name__)


def setup_metrics_instrumentation(app):
    """Register before/after request hooks that feed the HTTP collectors."""

    @app.before_request
    def before_request_metrics():
        g._prometheus_metrics_start_time = time.time()
        http_requests_in_flight.inc()

    @app.after_request
    def after_request_metrics(response):
        if hasattr(g, '_prometheus_metrics_start_time'):
            duration = time.time() - g._prometheus_metrics_start_time
            endpoint = request.endpoint or 'unknown'

            http_request_duration_seconds.labels(
                method=request.method,
                endpoint=endpoint
            ).observe(duration)

            http_requests_total.labels(
                method=request.method,
                endpoint=endpoint,
                http_status=response.status_code
            ).inc()

            http_requests_in_flight.dec()
        return response


@metrics_bp.route('/metrics')
def metrics():
    """Prometheus-formatted metrics (all workers in multi-process mode)."""
    return Response(generate_latest(registry), mimetype=CONTENT_TYPE_LATEST)
