"""
Prometheus metrics for the POS API.

/metrics is not authenticated; keep it reachable from the monitoring network only.
"""
from flask import Blueprint, Response, request, g
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CollectorRegistry, CONTENT_TYPE_LATEST
from prometheus_client import multiprocess, REGISTRY
import time
import os

metrics_bp = Blueprint('metrics', __name__)

# Gunicorn workers share samples through PROMETHEUS_MULTIPROC_DIR
MULTIPROCESS_MODE = os.environ.get('PROMETHEUS_MULTIPROC_DIR') is not None

if MULTIPROCESS_MODE:
    registry = CollectorRegistry()
    multiprocess.MultiProcessCollector(registry)
    _metric_registry = None
else:
    registry = REGISTRY
    _metric_registry = REGISTRY

# Requests
http_requests_total = Counter(
    'http_requests_total',
    'HTTP requests by endpoint and status',
    ['method', 'endpoint', 'http_status'],
    registry=_metric_registry
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request latency in seconds',
    ['method', 'endpoint'],
    registry=_metric_registry,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0)
)

http_requests_in_flight = Gauge(
    'http_requests_in_flight',
    'Requests being processed',
    registry=_metric_registry,
    multiprocess_mode='livesum'
)

# Checkout
promotion_evaluations_total = Counter(
    'pos_promotion_evaluations_total',
    'Cart evaluations by resulting active promotion',
    ['active_promotion'],
    registry=_metric_registry
)

sales_created_total = Counter(
    'pos_sales_created_total',
    'Sales persisted by payment method',
    ['payment_method'],
    registry=_metric_registry
)

sale_rejections_total = Counter(
    'pos_sale_rejections_total',
    'Checkouts rejected before persisting, by error code',
    ['reason'],
    registry=_metric_registry
)

_SKIPPED_ENDPOINTS = {'metrics.metrics', 'static'}


def record_evaluation(active_promotion: str) -> None:
    promotion_evaluations_total.labels(active_promotion=active_promotion).inc()


def record_sale(payment_method: str) -> None:
    sales_created_total.labels(payment_method=payment_method).inc()


def record_rejection(reason) -> None:
    sale_rejections_total.labels(reason=reason or 'business_rule').inc()


def setup_metrics_instrumentation(app):
    """Time every request except scrapes of /metrics itself."""

    @app.before_request
    def start_request_timer():
        if request.endpoint in _SKIPPED_ENDPOINTS:
            return
        g._metrics_started_at = time.perf_counter()
        http_requests_in_flight.inc()

    @app.after_request
    def observe_request(response):
        started_at = g.pop('_metrics_started_at', None)
        if started_at is None:
            return response

        endpoint = request.endpoint or 'unknown'
        try:
            http_request_duration_seconds.labels(
                method=request.method, endpoint=endpoint
            ).observe(time.perf_counter() - started_at)
            http_requests_total.labels(
                method=request.method, endpoint=endpoint, http_status=response.status_code
            ).inc()
        except ValueError as e:
            app.logger.warning(f"Failed to record metrics: {e}")
        finally:
            http_requests_in_flight.dec()

        return response


@metrics_bp.route('/metrics')
def metrics():
    """Prometheus scrape endpoint."""
    return Response(generate_latest(registry), mimetype=CONTENT_TYPE_LATEST)
