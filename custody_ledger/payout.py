"""
Payout Client Module

Outbound value transfer used by withdrawals. A payout is any callable
``(principal, amount) -> None`` that returns on success and raises on
failure; this module provides a REST client for an external payout
service and an in-process implementation for development and tests.
"""

import httpx
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Callable, List, Optional

logger = logging.getLogger("custody_ledger.payout")


class PayoutError(Exception):
    """Raised when an outbound transfer could not be completed"""
    pass


@dataclass
class PayoutRecord:
    """A transfer delivered by a payout"""
    to: str
    amount: int
    reference: Optional[str] = None
    latency_ms: float = 0.0


class HttpPayoutClient:
    """REST client for an external payout service"""

    def __init__(
        self,
        base_url: str = "http://localhost:8081",
        timeout: float = 5.0,
        api_key: Optional[str] = None,
        client: Optional[httpx.Client] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.api_key = api_key
        self._client = client or httpx.Client(timeout=timeout)

    def __call__(self, to: str, amount: int) -> PayoutRecord:
        return self.send(to, amount)

    def send(self, to: str, amount: int, idempotency_key: Optional[str] = None) -> PayoutRecord:
        """
        Deliver amount to principal `to`

        Any 2xx response counts as delivered. The idempotency key is sent with
        the request so the service can discard a duplicate of the same payout.

        Returns:
            PayoutRecord with the service's reference

        Raises:
            PayoutError: On transport failure or a non-2xx response
        """
        headers = {"Idempotency-Key": idempotency_key or str(uuid.uuid4())}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        start = time.time()
        try:
            response = self._client.post(
                f"{self.base_url}/payouts",
                json={"to": to, "amount": amount},
                headers=headers
            )
        except httpx.HTTPError as e:
            logger.error(f"Payout service unreachable: {e}")
            raise PayoutError(f"Payout service unreachable: {e}") from e

        latency_ms = (time.time() - start) * 1000

        if not 200 <= response.status_code < 300:
            logger.warning(f"Payout service returned {response.status_code}: {response.text}")
            raise PayoutError(f"Payout service returned {response.status_code}")

        reference = None
        if response.content:
            try:
                data = response.json()
            except ValueError:
                data = None
            if isinstance(data, dict):
                reference = data.get("reference")
            else:
                logger.warning(
                    f"Payout to {to} delivered but response carried no reference: {response.text[:200]}"
                )

        return PayoutRecord(to=to, amount=amount, reference=reference, latency_ms=latency_ms)

    def health_check(self) -> bool:
        """Check if the payout service is healthy"""
        try:
            r = self._client.get(f"{self.base_url}/health")
            return r.status_code == 200
        except httpx.HTTPError:
            return False

    def close(self):
        """Close the HTTP client"""
        self._client.close()


class RecordingPayout:
    """
    In-process payout that records every delivered transfer

    Set ``fail_with`` to make the next transfers raise, or ``on_transfer``
    to run a callback (for example one that calls back into the ledger)
    before the transfer is recorded.
    """

    def __init__(self, on_transfer: Optional[Callable[[str, int], None]] = None):
        self.transfers: List[PayoutRecord] = []
        self.fail_with: Optional[Exception] = None
        self.on_transfer = on_transfer

    def __call__(self, to: str, amount: int) -> PayoutRecord:
        if self.on_transfer:
            self.on_transfer(to, amount)
        if self.fail_with is not None:
            raise self.fail_with
        record = PayoutRecord(to=to, amount=amount)
        self.transfers.append(record)
        return record

    def total_paid(self) -> int:
        return sum(record.amount for record in self.transfers)
