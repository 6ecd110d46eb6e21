"""
SMS notifications through the Hubtel SMS API.

Sending is best-effort: send() never raises for delivery problems, it returns
an unsuccessful SmsResult and logs the reason.
"""

import logging
import re
from decimal import Decimal
from typing import Iterable, List, Optional

import httpx
from pydantic import BaseModel

from app.core.config import settings

logger = logging.getLogger(__name__)


class SmsResult(BaseModel):
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


def format_sender_name(school_name: str) -> str:
    """Sender IDs must be alphanumeric and at most 11 characters."""
    return re.sub(r"[^a-zA-Z0-9]", "", school_name or "")[:11] or "School"


def normalize_phone(phone: str) -> str:
    return re.sub(r"\D", "", phone or "")


def collect_phone_numbers(student_phone: Optional[str], guardian_phones: Iterable[Optional[str]]) -> List[str]:
    """Student's own number first, then guardians; blanks dropped, duplicates removed."""
    numbers: List[str] = []
    for phone in [student_phone, *guardian_phones]:
        if phone and phone.strip() and phone.strip() not in numbers:
            numbers.append(phone.strip())
    return numbers


def _money(currency: str, amount: Decimal) -> str:
    return f"{currency} {Decimal(amount):.2f}"


def payment_confirmation_message(
    student_name: str,
    paid_amount: Decimal,
    fee_name: str,
    school_name: str,
    remaining: Decimal,
    total: Decimal,
    currency: str = "GHS",
) -> str:
    head = f"Payment confirmed for {student_name} at {school_name}. Amount: {_money(currency, paid_amount)} for {fee_name}."
    if remaining <= 0:
        return f"{head} Fee fully paid ({_money(currency, total)}). Thank you!"
    return f"{head} Remaining balance: {_money(currency, remaining)} of {_money(currency, total)}. Thank you!"


def upcoming_fee_message(
    student_name: str, fee_name: str, school_name: str, remaining: Decimal, due_date, currency: str = "GHS"
) -> str:
    return (
        f"{school_name}: Reminder - {fee_name} for {student_name} is due on {due_date:%d/%m/%Y}. "
        f"Outstanding: {_money(currency, remaining)}."
    )


def overdue_fee_message(
    student_name: str, fee_name: str, school_name: str, remaining: Decimal, due_date, currency: str = "GHS"
) -> str:
    return (
        f"{school_name}: {fee_name} for {student_name} was due on {due_date:%d/%m/%Y} and is overdue. "
        f"Outstanding: {_money(currency, remaining)}. Please pay as soon as possible."
    )


class HubtelSmsSender:
    def __init__(
        self,
        client_id: Optional[str],
        client_secret: Optional[str],
        default_sender: str = "School",
        base_url: str = "https://smsc.hubtel.com/v1/messages/send",
        timeout: float = 15.0,
        enabled: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.default_sender = default_sender
        self.base_url = base_url
        self.timeout = timeout
        self.enabled = enabled
        self.transport = transport

    @property
    def is_configured(self) -> bool:
        return self.enabled and bool(self.client_id and self.client_secret)

    async def send(self, phone: str, message: str, sender: Optional[str] = None) -> SmsResult:
        to = normalize_phone(phone)
        if not to:
            return SmsResult(success=False, error="Invalid phone number")
        if not self.is_configured:
            logger.info("SMS disabled or not configured; dropping message to %s", to)
            return SmsResult(success=False, error="SMS is not configured")

        params = {
            "clientid": self.client_id,
            "clientsecret": self.client_secret,
            "from": sender or self.default_sender,
            "to": to,
            "content": message,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(self.base_url, params=params)
        except httpx.HTTPError as e:
            logger.warning("SMS to %s failed: %s", to, e)
            return SmsResult(success=False, error="Network error occurred while sending SMS")

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if response.is_success:
            message_id = body.get("messageId") or body.get("MessageId")
            return SmsResult(success=True, message_id=str(message_id) if message_id else None)

        error = body.get("message") or body.get("Message") or f"HTTP {response.status_code}"
        logger.warning("SMS to %s rejected: %s", to, error)
        return SmsResult(success=False, error=str(error))


def get_sms_sender() -> HubtelSmsSender:
    return HubtelSmsSender(
        client_id=settings.hubtel_client_id,
        client_secret=settings.hubtel_client_secret,
        default_sender=settings.hubtel_sms_from,
        base_url=settings.hubtel_base_url,
        timeout=settings.http_timeout_seconds,
        enabled=settings.sms_enabled,
    )
