"""Prometheus collectors shared by the HTTP layer and the sync services."""
import os

from prometheus_client import Counter, Histogram, Gauge, CollectorRegistry, REGISTRY
from prometheus_client import multiprocess

# Gunicorn multi-process mode
MULTIPROCESS_MODE = os.environ.get('PROMETHEUS_MULTIPROC_DIR') is not None

if MULTIPROCESS_MODE:
    registry = CollectorRegistry()
    multiprocess.MultiProcessCollector(registry)
else:
    registry = REGISTRY

_collector_registry = registry if not MULTIPROCESS_MODE else None

# HTTP Request Metrics
http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'http_status'],
    registry=_collector_registry
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request latency in seconds',
    ['method', 'endpoint'],
    registry=_collector_registry,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)
)

http_requests_in_flight = Gauge(
    'http_requests_in_flight',
    'Number of HTTP requests currently being processed',
    registry=_collector_registry
)

# External providers (bling, mercadopago, shopify, resend, whatsapp)
provider_requests_total = Counter(
    'provider_requests_total',
    'Outgoing requests to external providers',
    ['provider', 'outcome'],
    registry=_collector_registry
)

# Batched reconciliation flows
sync_items_total = Counter(
    'sync_items_total',
    'Items processed by sync flows',
    ['flow', 'result'],
    registry=_collector_registry
)
