"""
Paystack transaction verification.

Only verification is done here; payment capture happens in the browser and the
client posts the resulting reference back to us.
"""

import logging
from decimal import Decimal
from typing import Optional
from urllib.parse import quote

import httpx
from pydantic import BaseModel

from app.core.config import settings
from app.core.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)

UNKNOWN_REFERENCE_STATUSES = (400, 404)


class GatewayVerification(BaseModel):
    reference: str
    status: str
    amount_minor_units: int = 0
    currency: Optional[str] = None

    @property
    def is_successful(self) -> bool:
        return self.status == "success"

    @property
    def amount(self) -> Decimal:
        # Paystack reports amounts in the currency's minor unit (pesewas, kobo)
        return (Decimal(self.amount_minor_units) / Decimal("100")).quantize(Decimal("0.01"))


class PaystackVerifier:
    def __init__(
        self,
        secret_key: Optional[str],
        base_url: str = "https://api.paystack.co",
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def verify_transaction(self, reference: str) -> GatewayVerification:
        """Ask Paystack for the final state of a transaction.

        Raises ExternalServiceError when the gateway cannot be reached or answers
        with any non-2xx status other than 400/404. Those two are how Paystack
        reports a reference it does not know, which comes back as a
        non-successful verification, not an exception.
        """
        if not self.secret_key:
            raise ExternalServiceError("Payment gateway is not configured")

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self.transport,
            ) as client:
                response = await client.get(
                    f"/transaction/verify/{quote(reference, safe='')}",
                    headers={"Authorization": f"Bearer {self.secret_key}"},
                )
        except httpx.HTTPError as e:
            logger.error("Paystack verification request failed for %s: %s", reference, e)
            raise ExternalServiceError("Could not reach payment gateway") from e

        if not response.is_success and response.status_code not in UNKNOWN_REFERENCE_STATUSES:
            logger.error("Paystack returned %s for %s", response.status_code, reference)
            raise ExternalServiceError("Payment gateway error")

        try:
            body = response.json()
        except ValueError as e:
            raise ExternalServiceError("Invalid response from payment gateway") from e

        if not isinstance(body, dict):
            raise ExternalServiceError("Invalid response from payment gateway")
        data = body.get("data")
        if not body.get("status") or not isinstance(data, dict):
            logger.info("Paystack could not verify %s: %s", reference, body.get("message"))
            return GatewayVerification(reference=reference, status="failed")

        return GatewayVerification(
            reference=str(data.get("reference") or reference),
            status=str(data.get("status") or "failed"),
            amount_minor_units=int(data.get("amount") or 0),
            currency=data.get("currency"),
        )


def get_payment_verifier() -> PaystackVerifier:
    return PaystackVerifier(
        secret_key=settings.paystack_secret_key,
        base_url=settings.paystack_base_url,
        timeout=settings.http_timeout_seconds,
    )
