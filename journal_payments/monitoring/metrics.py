"""
Prometheus metrics for payment flow monitoring.

Tracks:
- Transactions created by service type
- Gateway outcomes by provider
- Leniency overrides applied to gateway responses
- Payment attempt state transitions
- Redirect handoffs by delivery method
- Backend request durations
"""
from prometheus_client import Counter, Histogram

payment_transactions_created_total = Counter(
    "payment_transactions_created_total",
    "Total transactions created",
    ["service_type", "currency"],
)

payment_gateway_outcomes_total = Counter(
    "payment_gateway_outcomes_total",
    "Total normalized gateway outcomes",
    ["provider", "outcome", "error_code"],
)

payment_gateway_overrides_total = Counter(
    "payment_gateway_overrides_total",
    "Gateway responses whose success flag was inferred or overridden",
    ["rule"],  # inferred_success, inferred_failure, url_override
)

payment_attempt_transitions_total = Counter(
    "payment_attempt_transitions_total",
    "Payment attempt state transitions",
    ["from_state", "to_state"],
)

payment_redirect_handoffs_total = Counter(
    "payment_redirect_handoffs_total",
    "Checkout redirect handoffs",
    ["method"],  # primary navigator name, secondary, manual, failed
)

backend_request_duration_seconds = Histogram(
    "backend_request_duration_seconds",
    "Portal backend request duration in seconds",
    ["operation", "status"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)


class MetricsCollector:
    """Helper class for collecting metrics."""

    @staticmethod
    def record_transaction_created(service_type: str, currency: str) -> None:
        """Record a created transaction."""
        payment_transactions_created_total.labels(
            service_type=service_type, currency=currency
        ).inc()

    @staticmethod
    def record_gateway_outcome(provider: str, success: bool, error_code: str = "") -> None:
        """Record a normalized gateway outcome."""
        payment_gateway_outcomes_total.labels(
            provider=provider,
            outcome="success" if success else "failed",
            error_code=error_code or "",
        ).inc()

    @staticmethod
    def record_gateway_override(rule: str) -> None:
        """Record an inferred or overridden success flag."""
        payment_gateway_overrides_total.labels(rule=rule).inc()

    @staticmethod
    def record_attempt_transition(from_state: str, to_state: str) -> None:
        """Record a payment attempt transition."""
        payment_attempt_transitions_total.labels(
            from_state=from_state, to_state=to_state
        ).inc()

    @staticmethod
    def record_redirect_handoff(method: str) -> None:
        """Record how a checkout redirect was delivered."""
        payment_redirect_handoffs_total.labels(method=method).inc()

    @staticmethod
    def record_backend_request(operation: str, status: str, duration_seconds: float) -> None:
        """Record a backend API call."""
        backend_request_duration_seconds.labels(operation=operation, status=status).observe(
            duration_seconds
        )


# Export singleton instance
metrics = MetricsCollector()
