"""HTTP client for the Tillpoint API.

Retries follow an explicit RetryPolicy: transport failures, 429 and 5xx
responses are retried with exponential backoff, business-rule rejections
(400/401/403/404/409/422) never are.

Creating an order is not idempotent, so a create whose outcome is unknown
(the connection dropped after sending) is not retried; a 503 means the
server rolled back and is safe to retry. Payments and shift calls are safe
to retry because a duplicate is rejected server-side.
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional

import httpx

from tillpoint.core.retry import RetryPolicy

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Non-2xx response, after retries were exhausted or ruled out."""

    def __init__(self, status_code: int, error: str, detail: Any):
        self.status_code = status_code
        self.error = error
        self.detail = detail
        super().__init__(f"{status_code} {error}: {detail}")


class PosApiClient:
    """Synchronous client; ``transport`` and ``sleep`` are injectable for tests."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        policy: Optional[RetryPolicy] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.policy = policy or RetryPolicy()
        self.token = token
        self._sleep = sleep
        self._client = httpx.Client(
            base_url=base_url.rstrip("/") + "/api/v1",
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _request(self, method: str, path: str, retry_transport_errors: bool = True, **kwargs) -> Any:
        attempt = 0
        while True:
            attempt += 1
            try:
                response = self._client.request(method, path, headers=self._headers(), **kwargs)
            except httpx.TransportError as e:
                if not retry_transport_errors or not self.policy.should_retry(attempt):
                    raise
                delay = self.policy.delay_for(attempt)
                logger.warning(f"{method} {path} failed ({e}), retry {attempt} in {delay:.1f}s")
                self._sleep(delay)
                continue

            if response.is_success:
                return response.json() if response.content else None

            if self.policy.should_retry(attempt, response.status_code):
                delay = self.policy.delay_for(attempt)
                logger.warning(f"{method} {path} -> {response.status_code}, retry {attempt} in {delay:.1f}s")
                self._sleep(delay)
                continue

            try:
                body = response.json()
            except ValueError:
                body = {}
            raise ApiError(
                response.status_code,
                body.get("error", "http_error") if isinstance(body, dict) else "http_error",
                body.get("detail", response.text) if isinstance(body, dict) else response.text,
            )

    # ==================== Auth ====================

    def login(self, staff_code: str, pin: str) -> Dict[str, Any]:
        """Log in and keep the token for subsequent calls."""
        data = self._request("POST", "/auth/login", json={"staff_code": staff_code, "pin": pin})
        self.token = data["access_token"]
        return data

    # ==================== Orders ====================

    def create_order(self, order: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/orders", retry_transport_errors=False, json=order)

    def get_order(self, order_id: int) -> Dict[str, Any]:
        return self._request("GET", f"/orders/{order_id}")

    def list_orders(self, statuses: Optional[List[str]] = None) -> List[Dict[str, Any]]:
        params = [("status", s) for s in statuses or []]
        return self._request("GET", "/orders", params=params)

    def update_status(self, order_id: int, status: str, notes: Optional[str] = None) -> Dict[str, Any]:
        return self._request("PUT", f"/orders/{order_id}/status", json={"status": status, "notes": notes})

    def pay(self, order_id: int, payment: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", f"/orders/{order_id}/payment", json=payment)

    def get_receipt(self, order_id: int) -> Dict[str, Any]:
        return self._request("GET", f"/receipts/{order_id}")

    # ==================== Shifts ====================

    def start_shift(self, starting_cash: str, notes: Optional[str] = None) -> Dict[str, Any]:
        return self._request("POST", "/shifts/start", json={"starting_cash": starting_cash, "notes": notes})

    def end_shift(self, ending_cash: str, notes: Optional[str] = None) -> Dict[str, Any]:
        return self._request("POST", "/shifts/end", json={"ending_cash": ending_cash, "notes": notes})

    def current_shift(self) -> Optional[Dict[str, Any]]:
        return self._request("GET", "/shifts/current")
