"""
Prometheus metrics for checkout monitoring.

Tracks:
- QR payment creations by outcome
- BNB API calls and latency
- Token refreshes
- Status checks by normalized status
- Purchase webhook deliveries
"""
from prometheus_client import Counter, Histogram

# QR payment metrics
qr_payments_created_total = Counter(
    "qr_payments_created_total",
    "Total QR payment creation attempts",
    ["outcome"],  # created, validation_error, provider_error
)

qr_payment_amount_bob = Histogram(
    "qr_payment_amount_bob",
    "Amounts of created QR payments in BOB",
    buckets=(10, 50, 100, 250, 500, 1000, 2500, 5000, 10000),
)

# BNB API metrics
bnb_api_requests_total = Counter(
    "bnb_api_requests_total",
    "Total BNB API requests",
    ["operation", "status"],  # operation: create_qr, qr_status
)

bnb_api_duration_seconds = Histogram(
    "bnb_api_duration_seconds",
    "BNB API call duration in seconds",
    ["operation"],
    buckets=(0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0, 30.0),
)

bnb_token_refreshes_total = Counter(
    "bnb_token_refreshes_total",
    "Total BNB token refreshes",
    ["result"],  # success, failure
)

# Status poller metrics
status_checks_total = Counter(
    "status_checks_total",
    "Total QR status checks",
    ["status", "conclusive"],
)

# Purchase webhook metrics
purchase_webhooks_total = Counter(
    "purchase_webhooks_total",
    "Total purchase webhook notifications",
    ["outcome", "reason"],  # ok, skipped, failed
)

purchase_webhook_attempts_total = Counter(
    "purchase_webhook_attempts_total",
    "Total purchase webhook delivery attempts",
    ["destination"],  # main, upsell
)


class MetricsCollector:
    """Helper class for collecting metrics."""

    @staticmethod
    def record_qr_creation(outcome: str, amount_bob: float = 0) -> None:
        """Record a QR payment creation attempt."""
        qr_payments_created_total.labels(outcome=outcome).inc()
        if amount_bob > 0:
            qr_payment_amount_bob.observe(amount_bob)

    @staticmethod
    def record_bnb_api_call(operation: str, status: str, duration_seconds: float) -> None:
        """Record a BNB API call."""
        bnb_api_requests_total.labels(operation=operation, status=status).inc()
        bnb_api_duration_seconds.labels(operation=operation).observe(duration_seconds)

    @staticmethod
    def record_token_refresh(result: str) -> None:
        """Record a token refresh."""
        bnb_token_refreshes_total.labels(result=result).inc()

    @staticmethod
    def record_status_check(status: str, conclusive: bool) -> None:
        """Record a normalized status check."""
        status_checks_total.labels(status=status, conclusive=str(conclusive).lower()).inc()

    @staticmethod
    def record_webhook_notification(outcome: str, reason: str = "") -> None:
        """Record the outcome of a notify-once call."""
        purchase_webhooks_total.labels(outcome=outcome, reason=reason).inc()

    @staticmethod
    def record_webhook_attempt(destination: str) -> None:
        """Record one webhook delivery attempt."""
        purchase_webhook_attempts_total.labels(destination=destination).inc()


# Export singleton instance
metrics = MetricsCollector()
