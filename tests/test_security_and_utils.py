import asyncio
from datetime import datetime, timedelta

import httpx
import pytest

from washdesk import mailer as mailer_module
from washdesk.mailer import Mailer, MailerError
from washdesk.security import hash_password, new_token, token_expiry, verify_password
from washdesk.utils import format_amount, format_datetime, parse_price


def test_password_hash_round_trip():
    hashed = hash_password("secret123")
    assert hashed.startswith("$argon2")
    assert verify_password("secret123", hashed)
    assert not verify_password("wrong", hashed)
    assert not verify_password("secret123", None)
    assert not verify_password("secret123", "plain-text")


def test_tokens_are_unique_and_expire_in_an_hour():
    assert new_token() != new_token()
    now = datetime(2024, 1, 1, 12, 0)
    assert token_expiry(now) == now + timedelta(hours=1)


@pytest.mark.parametrize(
    "value, expected",
    [("180", 180), ("99.50", 99.5), ("", 0), (None, 0), ("abc", 0), ("nan", 0), ("inf", 0), (" 12 ", 12)],
)
def test_parse_price(value, expected):
    assert parse_price(value) == expected


def test_formatting_helpers():
    assert format_amount(1234.5) == "1,234.50"
    assert format_amount("x") == "0.00"
    assert format_datetime(datetime(2024, 5, 1, 9, 5)) == "2024-05-01 09:05"
    assert format_datetime("2024-05-01T09:05:00") == "2024-05-01 09:05"
    assert format_datetime(None) == "-"


def test_mailer_requires_configuration():
    with pytest.raises(MailerError):
        asyncio.run(Mailer(api_key="", sender="").send("a@example.com", "Hi", "<p>x</p>"))


def _patch_transport(monkeypatch, handler):
    real_client = httpx.AsyncClient

    def client_factory(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(handler)
        return real_client(*args, **kwargs)

    monkeypatch.setattr(mailer_module.httpx, "AsyncClient", client_factory)


def test_mailer_posts_to_resend(monkeypatch):
    seen = {}

    def handler(request):
        seen["auth"] = request.headers["authorization"]
        seen["body"] = request.content.decode()
        return httpx.Response(200, json={"id": "email_1"})

    _patch_transport(monkeypatch, handler)
    mailer = Mailer(api_key="re_test", sender="Washdesk <no-reply@example.com>", api_url="https://mail.test/emails")
    asyncio.run(mailer.send_verification("ana@example.com", "<Ana>", "https://example.com/users/verify/abc"))

    assert seen["auth"] == "Bearer re_test"
    assert "ana@example.com" in seen["body"]
    assert "&lt;Ana&gt;" in seen["body"]


def test_mailer_raises_on_rejection(monkeypatch):
    _patch_transport(monkeypatch, lambda request: httpx.Response(422, text="invalid from"))
    mailer = Mailer(api_key="re_test", sender="no-reply@example.com", api_url="https://mail.test/emails")
    with pytest.raises(MailerError, match="422"):
        asyncio.run(mailer.send_password_reset("ana@example.com", "https://example.com/password/reset/x"))
