"""
Resilience for document store calls: a shared circuit breaker and retry with backoff.
"""

from .retry_service import (
    RetryService,
    CircuitBreaker,
    CircuitBreakerState,
    CircuitBreakerError,
    RETRIABLE_ERRORS,
    get_retry_service,
    exponential_backoff_delay,
    is_retriable
)

__all__ = [
    'RetryService',
    'CircuitBreaker',
    'CircuitBreakerState',
    'CircuitBreakerError',
    'RETRIABLE_ERRORS',
    'get_retry_service',
    'exponential_backoff_delay',
    'is_retriable'
]
