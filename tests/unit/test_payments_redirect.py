import pytest
from starlette.requests import Request

import backend.config as config
from backend.payments.models import ReconcileResult, SessionStatus
from backend.payments.redirect import handoff_plan, is_mobile_browser, is_native_shell, native_handoff_url

IPHONE_SAFARI = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 Version/17.0 Mobile Safari/604.1"
ANDROID_CHROME = "Mozilla/5.0 (Linux; Android 14; Pixel 8) AppleWebKit/537.36 Chrome/120.0 Mobile Safari/537.36"
DESKTOP = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 Chrome/120.0 Safari/537.36"
APP_WEBVIEW = ANDROID_CHROME + " SamanApp/2.3"


def _request(user_agent="", query=""):
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/payment/success",
        "query_string": query.encode(),
        "headers": [(b"user-agent", user_agent.encode())],
    }
    return Request(scope)

def _success():
    return ReconcileResult(success=True, message="ok", status=SessionStatus.SUCCEEDED,
                           spare_parts_credits=12, automotive_credits=0)

@pytest.mark.parametrize("ua,expected", [
    (IPHONE_SAFARI, True),
    (ANDROID_CHROME, True),
    ("Mozilla/5.0 (iPad; CPU OS 17_0)", True),
    (DESKTOP, False),
    ("", False),
    (None, False),
])
def test_is_mobile_browser(ua, expected):
    assert is_mobile_browser(ua) is expected

def test_is_native_shell_by_marker_or_query():
    assert is_native_shell(_request(APP_WEBVIEW)) is True
    assert is_native_shell(_request(IPHONE_SAFARI, "cart=abc&source=app")) is True
    assert is_native_shell(_request(IPHONE_SAFARI, "cart=abc")) is False

def test_native_handoff_url(monkeypatch):
    monkeypatch.setattr(config, "NATIVE_APP_SCHEME", "saman")
    assert native_handoff_url("succeeded", verified=True, cart="abc") == "saman://payment/succeeded?verified=true&cart=abc"
    assert native_handoff_url("declined", verified=False) == "saman://payment/declined?verified=false"

def test_handoff_from_mobile_browser_uses_confirmed_outcome():
    plan = handoff_plan(_request(IPHONE_SAFARI), "cancelled", "abc", _success())
    assert plan["enabled"] is True
    assert plan["url"] == "saman://payment/succeeded?verified=true&cart=abc"
    assert plan["delay_ms"] == 1500

def test_handoff_when_verification_pending_is_unverified():
    plan = handoff_plan(_request(ANDROID_CHROME), "succeeded", "abc", None, pending=True)
    assert plan["url"] == "saman://payment/succeeded?verified=false&cart=abc"

@pytest.mark.parametrize("ua,query", [(DESKTOP, ""), (APP_WEBVIEW, ""), (IPHONE_SAFARI, "source=app")])
def test_no_handoff_on_desktop_or_inside_app(ua, query):
    plan = handoff_plan(_request(ua, query), "succeeded", "abc", _success())
    assert plan == {"enabled": False, "url": None, "delay_ms": 0}

def test_no_handoff_when_reconciliation_failed():
    # Session inconnue ou erreur: aucune issue à transmettre à l'app
    plan = handoff_plan(_request(IPHONE_SAFARI), "succeeded", "forged", None)
    assert plan == {"enabled": False, "url": None, "delay_ms": 0}
