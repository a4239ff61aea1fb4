"""HTTP utilities public API (barrel module).

This package provides:
- Transport construction with TLS policy and connection pooling
- The circuit breaker
- The method-aware retry policy with Retry-After support
- Idempotency keys for financial operations

Recommended import pattern for consumers:
    from awx_client.utils.http import CircuitBreaker, RetryPolicy
"""

from .circuit_breaker import CircuitBreaker, CircuitBreakerState
from .client_manager import (
    create_http_client,
    create_limits,
    create_ssl_context,
    create_timeout,
    limits_from_settings,
)
from .idempotency import (
    FINANCIAL_OPERATIONS,
    IDEMPOTENCY_HEADER,
    generate_idempotency_key,
    is_financial_operation,
    requires_idempotency_key,
)
from .retry import (
    IDEMPOTENT_METHODS,
    RetryAfter,
    RetryAfterKind,
    RetryContext,
    RetryPolicy,
    is_idempotent_method,
)

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerState",
    "create_http_client",
    "create_limits",
    "create_ssl_context",
    "create_timeout",
    "limits_from_settings",
    "FINANCIAL_OPERATIONS",
    "IDEMPOTENCY_HEADER",
    "generate_idempotency_key",
    "is_financial_operation",
    "requires_idempotency_key",
    "IDEMPOTENT_METHODS",
    "RetryAfter",
    "RetryAfterKind",
    "RetryContext",
    "RetryPolicy",
    "is_idempotent_method",
]
