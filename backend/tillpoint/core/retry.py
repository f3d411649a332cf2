"""Client-side retry policy.

Retries belong to callers of the API, never to the services. A policy is a
plain value object so every client call site can share or override it.
"""

from dataclasses import dataclass, field
from typing import FrozenSet, Optional

# Business-rule rejections: retrying the same request cannot succeed
DEFAULT_NON_RETRYABLE_STATUSES = frozenset({400, 401, 403, 404, 409, 422})


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff.

    ``max_attempts`` counts the first try, so the default of 3 means one
    request plus two retries, each delayed ``base_delay * factor ** n``
    seconds (capped at ``max_delay``).
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    factor: float = 2.0
    max_delay: float = 30.0
    non_retryable_statuses: FrozenSet[int] = field(default=DEFAULT_NON_RETRYABLE_STATUSES)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.factor < 1:
            raise ValueError("base_delay must be >= 0 and factor >= 1")

    def delay_for(self, retry_number: int) -> float:
        """Delay before the given retry (1 = first retry)."""
        return min(self.base_delay * (self.factor ** (retry_number - 1)), self.max_delay)

    def should_retry(self, attempt: int, status_code: Optional[int] = None) -> bool:
        """Whether to retry after ``attempt`` (1-based) ended with ``status_code``.

        ``status_code`` is None for transport failures (connection refused,
        timeouts), which are always retryable.
        """
        if attempt >= self.max_attempts:
            return False
        if status_code is None:
            return True
        if status_code in self.non_retryable_statuses:
            return False
        return status_code == 429 or status_code >= 500


NO_RETRY = RetryPolicy(max_attempts=1)
