import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

from afritok.core.config import Settings
from afritok.core.metrics import increment_counter
from afritok.core.phone import mask_phone

logger = logging.getLogger(__name__)

SMS_TIMEOUT_SECONDS = 5.0
MESSAGE_TEMPLATE = "Your Afritok code is {code}. It expires in {minutes} minutes."


class SmsDeliveryError(RuntimeError):
    pass


class SmsSender(Protocol):
    def send(self, phone: str, message: str) -> None: ...


@dataclass
class LogSmsSender:
    """Development sender: writes a masked line to the log instead of sending."""

    def send(self, phone: str, message: str) -> None:
        logger.info("SMS log backend to=%s chars=%s", mask_phone(phone), len(message))


@dataclass
class HttpSmsSender:
    url: str
    auth_token: str | None = None
    sender_name: str | None = None
    timeout: float = SMS_TIMEOUT_SECONDS

    def send(self, phone: str, message: str) -> None:
        payload = {"to": phone, "message": message}
        if self.sender_name:
            payload["sender"] = self.sender_name
        headers = {"Content-Type": "application/json"}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        try:
            response = httpx.post(self.url, json=payload, headers=headers, timeout=self.timeout)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise SmsDeliveryError(f"SMS gateway request failed: {exc.__class__.__name__}") from exc


def build_sms_sender(settings: Settings) -> SmsSender:
    if settings.sms_backend == "http":
        return HttpSmsSender(
            url=settings.sms_http_url or "",
            auth_token=settings.sms_http_token,
            sender_name=settings.sms_sender_name,
        )
    return LogSmsSender()


def build_otp_message(code: str, ttl_minutes: int) -> str:
    return MESSAGE_TEMPLATE.format(code=code, minutes=ttl_minutes)


def deliver_otp_code(sender: SmsSender, phone: str, message: str) -> bool:
    """Send the code; failures are logged and never undo the stored challenge."""
    try:
        sender.send(phone, message)
    except SmsDeliveryError as exc:
        increment_counter("otp_sms_delivery_total", result="failed")
        logger.warning("OTP delivery failed to=%s error=%s", mask_phone(phone), exc)
        return False
    increment_counter("otp_sms_delivery_total", result="sent")
    return True
