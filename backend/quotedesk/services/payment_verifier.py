"""Payment verifier adapters — confirm a payment with the gateway before it is recorded."""

import logging
from decimal import Decimal

import httpx

from quotedesk.errors import PaymentVerificationFailed
from quotedesk.interfaces import PaymentVerifier

logger = logging.getLogger(__name__)


class HttpPaymentVerifier(PaymentVerifier):
    """Asks a payment gateway whether `payment_id` settled for the expected amount.

    POST {base_url}/verify with {"payment_id", "amount", "currency"}; the
    gateway answers {"verified": true|false}. Transport failures are not
    retried here; the caller retries the whole operation.
    """

    def __init__(self, base_url: str, timeout: float = 15.0, transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def verify(self, payment_id: str, expected_amount: Decimal, currency: str) -> bool:
        client = await self._get_client()
        try:
            resp = await client.post(
                "/verify",
                json={"payment_id": payment_id, "amount": str(expected_amount), "currency": currency},
            )
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            logger.warning(f"Payment gateway returned {e.response.status_code} for {payment_id}")
            raise PaymentVerificationFailed(
                f"Payment gateway rejected verification of {payment_id}",
                payment_id=payment_id,
                status_code=e.response.status_code,
            )
        except httpx.RequestError as e:
            logger.warning(f"Payment gateway unreachable for {payment_id}: {e}")
            raise PaymentVerificationFailed(
                f"Payment gateway unreachable while verifying {payment_id}",
                payment_id=payment_id,
            )
        return bool(data.get("verified", False))

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class OfflinePaymentVerifier(PaymentVerifier):
    """Accepts every payment. For local runs where staff key in payments they have already reconciled."""

    def __init__(self):
        logger.warning("No payment gateway configured; payments are accepted without verification")

    async def verify(self, payment_id: str, expected_amount: Decimal, currency: str) -> bool:
        return True
