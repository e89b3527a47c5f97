"""
Prometheus metrics for checkout monitoring.
"""
from prometheus_client import Counter, generate_latest, CONTENT_TYPE_LATEST, REGISTRY
from prometheus_client.openmetrics.exposition import generate_latest as generate_latest_openmetrics


shipping_quotes_total = Counter(
    'shipping_quotes_total',
    'Total number of shipping quotes computed',
    ['result']
)

coupon_evaluations_total = Counter(
    'coupon_evaluations_total',
    'Total number of coupon evaluations',
    ['result']
)

orders_placed_total = Counter(
    'orders_placed_total',
    'Total number of pending orders created by checkout',
    ['requires_shipping']
)

payments_committed_total = Counter(
    'payments_committed_total',
    'Total number of orders whose payment was committed'
)

stock_oversell_total = Counter(
    'stock_oversell_total',
    'Total number of order lines whose stock decrement failed at payment commit'
)

coupon_over_redemptions_total = Counter(
    'coupon_over_redemptions_total',
    'Total number of coupon redemptions committed past the usage limit'
)


def get_metrics_payload(openmetrics: bool = False) -> tuple[bytes, str]:
    """
    Render the metrics registry.

    Returns:
        (content, content_type) for the calling layer to expose
    """
    if openmetrics:
        content = generate_latest_openmetrics(REGISTRY)
        content_type = "application/openmetrics-text; version=1.0.0; charset=utf-8"
    else:
        content = generate_latest(REGISTRY)
        content_type = CONTENT_TYPE_LATEST
    return content, content_type
