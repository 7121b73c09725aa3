import pytest

from backend.payments import service
from backend.payments.models import BuyerDetails
from tests.fakes import declined, outcome

IPHONE_SAFARI = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 Version/17.0 Mobile Safari/604.1"
DESKTOP = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 Chrome/120.0 Safari/537.36"
APP_WEBVIEW = "Mozilla/5.0 (Linux; Android 14) AppleWebKit/537.36 Chrome/120.0 Mobile Safari/537.36 SamanApp/2.3"


@pytest.fixture
def session_id(store, buyer_payload):
    session, _ = service.start_checkout(user_id="user-1", package_id="pkg-spare", buyer=BuyerDetails(**buyer_payload))
    return session.session_id


def test_success_page_shows_credits_and_is_not_cached(client, session_id, store):
    res = client.get("/payment/success", params={"cart": session_id}, headers={"User-Agent": DESKTOP})
    assert res.status_code == 200
    assert "Payment successful" in res.text
    assert ">12<" in res.text
    assert "saman://" not in res.text
    assert res.headers["cache-control"].startswith("no-store")
    assert len(store.entries_for(session_id)) == 1

def test_success_page_reload_does_not_credit_twice(client, session_id, store):
    client.get("/payment/success", params={"cart": session_id})
    client.get("/payment/success", params={"cart": session_id})
    assert store.get_balance("user-1")["spare_parts_credits"] == 12

def test_mobile_browser_gets_native_handoff(client, session_id):
    res = client.get("/payment/success", params={"cart": session_id}, headers={"User-Agent": IPHONE_SAFARI})
    assert "saman://payment/succeeded?verified=true" in res.text
    assert "1500" in res.text

def test_native_shell_gets_no_handoff(client, session_id):
    res = client.get("/payment/success", params={"cart": session_id}, headers={"User-Agent": APP_WEBVIEW})
    assert res.status_code == 200
    assert "saman://" not in res.text

def test_declined_page_shows_reason(client, session_id, gateway):
    gateway.script(session_id, declined("insufficient funds"))
    res = client.get("/payment/declined", params={"cart": session_id}, headers={"User-Agent": DESKTOP})
    assert res.status_code == 200
    assert "Payment not completed" in res.text
    assert "insufficient funds" in res.text

def test_success_url_without_gateway_confirmation(client, session_id, gateway, store):
    # Paiement abandonné puis URL de succès saisie à la main
    gateway.script(session_id, outcome("cancelled"))
    res = client.get("/payment/success", params={"cart": session_id}, headers={"User-Agent": IPHONE_SAFARI})
    assert "Payment not completed" in res.text
    assert "saman://payment/cancelled?verified=true" in res.text
    assert store.ledger == {}

def test_pending_verification_page(client, session_id, gateway):
    gateway.script(session_id, outcome("pending"))
    res = client.get("/payment/success", params={"cart": session_id}, headers={"User-Agent": IPHONE_SAFARI})
    assert res.status_code == 200
    assert "Verifying your payment" in res.text
    assert "verified=false" in res.text

def test_cancelled_page_with_unknown_cart(client, store):
    res = client.get("/payment/cancelled", params={"cart": "forged"})
    assert res.status_code == 404
    assert "Invalid payment session" in res.text

def test_page_without_cart(client, store):
    res = client.get("/payment/success")
    assert res.status_code == 400

def test_unknown_cart_on_mobile_gets_no_handoff(client, store):
    res = client.get("/payment/success", params={"cart": "forged"}, headers={"User-Agent": IPHONE_SAFARI})
    assert res.status_code == 404
    assert "saman://" not in res.text
