import httpx
import pytest

from afritok.core.config import Settings
from afritok.core.metrics import registry
from afritok.otp.sms import (
    HttpSmsSender,
    LogSmsSender,
    SmsDeliveryError,
    build_otp_message,
    build_sms_sender,
    deliver_otp_code,
)


def _settings(**overrides) -> Settings:
    values = {"app_env": "test", "secret_key": "s", "database_url": "sqlite://"}
    values.update(overrides)
    return Settings(**values)


def test_build_sms_sender_selects_backend():
    assert isinstance(build_sms_sender(_settings()), LogSmsSender)
    sender = build_sms_sender(_settings(sms_backend="http", sms_http_url="https://sms.example/send", sms_http_token="t"))
    assert isinstance(sender, HttpSmsSender)
    assert sender.url == "https://sms.example/send"


def test_http_sender_posts_payload(monkeypatch):
    captured = {}

    def _post(url, json, headers, timeout):
        captured.update(url=url, json=json, headers=headers, timeout=timeout)
        return httpx.Response(200, request=httpx.Request("POST", url))

    monkeypatch.setattr(httpx, "post", _post)
    HttpSmsSender(url="https://sms.example/send", auth_token="tok", sender_name="Afritok").send("+15551234567", "hi")

    assert captured["json"] == {"to": "+15551234567", "message": "hi", "sender": "Afritok"}
    assert captured["headers"]["Authorization"] == "Bearer tok"
    assert captured["timeout"] == 5.0


def test_http_sender_wraps_gateway_errors(monkeypatch):
    def _post(url, json, headers, timeout):
        return httpx.Response(502, request=httpx.Request("POST", url))

    monkeypatch.setattr(httpx, "post", _post)
    with pytest.raises(SmsDeliveryError):
        HttpSmsSender(url="https://sms.example/send").send("+15551234567", "hi")


def test_deliver_otp_code_logs_failure_without_raising(caplog):
    class _Broken:
        def send(self, phone, message):
            raise SmsDeliveryError("timeout")

    before = registry.value("otp_sms_delivery_total", result="failed")
    assert deliver_otp_code(_Broken(), "+15551234567", build_otp_message("123456", 10)) is False
    assert registry.value("otp_sms_delivery_total", result="failed") == before + 1
    assert "+15551234567" not in caplog.text


def test_otp_message_mentions_code_and_ttl():
    message = build_otp_message("123456", 10)
    assert "123456" in message
    assert "10 minutes" in message
