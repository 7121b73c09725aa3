import os

# Pas de Redis en tests: le lifespan désactive le rate limiting
os.environ.setdefault("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "1")

import pytest
from typing import Generator, Dict, Any
from fastapi.testclient import TestClient
from unittest.mock import MagicMock

import backend.config as config
from backend.app import app as fastapi_app
from backend.utils.security import require_user
from backend.utils.security import require_admin
from tests.fakes import InMemoryStore, FakeGateway

# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "tests/unit/" in nodeid:
            item.add_marker(pytest.mark.unit)
        elif "tests/integration/" in nodeid:
            item.add_marker(pytest.mark.integration)
        elif "tests/functional/" in nodeid:
            item.add_marker(pytest.mark.functional)

@pytest.fixture(scope="session")
def app():
    return fastapi_app

@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c

@pytest.fixture
def authenticated_admin_client(app, client):
    def _override_require_admin():
        return {"id": "admin-user-id", "role": "admin", "email": "admin@example.com"}
    app.dependency_overrides[require_admin] = _override_require_admin
    yield client
    app.dependency_overrides.pop(require_admin, None)

# Simuler un utilisateur authentifié pour les endpoints protégés
@pytest.fixture(autouse=True)
def _override_require_user(app):
    fake_user: Dict[str, Any] = {
        "id": "test-user",
        "email": "test@example.com",
        "role": "user",
        "user_metadata": {"full_name": "Test User"},
    }
    app.dependency_overrides[require_user] = lambda: fake_user
    try:
        yield
    finally:
        app.dependency_overrides.pop(require_user, None)

# Aucun test ne doit joindre Supabase
@pytest.fixture(scope="function", autouse=True)
def mock_db_dependency(monkeypatch):
    monkeypatch.setattr("backend.infra.supabase_client.get_supabase", lambda: MagicMock())
    monkeypatch.setattr("backend.infra.supabase_client.get_service_supabase", lambda: MagicMock())

# Rejeux et attentes instantanés
@pytest.fixture(autouse=True)
def _fast_timings(monkeypatch):
    monkeypatch.setattr(config, "GATEWAY_BACKOFF_SECONDS", 0.0)
    monkeypatch.setattr(config, "GATEWAY_MAX_ATTEMPTS", 3)
    monkeypatch.setattr(config, "LEDGER_SETTLE_WAIT_SECONDS", 0.2)
    monkeypatch.setattr(config, "LEDGER_SETTLE_POLL_SECONDS", 0.01)
    monkeypatch.setattr(config, "BASE_URL", "http://testserver")

@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()

@pytest.fixture
def store(monkeypatch, gateway) -> InMemoryStore:
    """
    Remplace les repositories (catalogue, sessions, crédits) par un stockage en mémoire
    et la passerelle active par FakeGateway. Deux packs sont disponibles:
    - 'pkg-spare': 10 + 2 crédits pièces détachées, 50.00 AED
    - 'pkg-auto': 20 crédits automobile, 80.00 AED
    """
    s = InMemoryStore()
    s.add_package("pkg-spare", category="spare_parts", credits=10, bonus_credits=2, price="50.00")
    s.add_package("pkg-auto", category="automotive", credits=20, price="80.00")

    for name in ("get_package", "list_packages"):
        monkeypatch.setattr(f"backend.catalog.repository.{name}", getattr(s, name))
    for name in (
        "insert_session",
        "get_session",
        "attach_gateway_order",
        "transition_terminal",
        "set_checkout_token",
        "consume_checkout_token",
        "list_stale_pending",
        "mark_checked",
        "list_uncredited_succeeded",
    ):
        monkeypatch.setattr(f"backend.payments.repository.{name}", getattr(s, name))
    for name in ("grant", "get_entry_by_session", "get_balance", "list_entries", "list_invoices"):
        monkeypatch.setattr(f"backend.credits.repository.{name}", getattr(s, name))
    monkeypatch.setattr("backend.payments.gateways.get_gateway", lambda name=None: gateway)
    return s

@pytest.fixture
def buyer_payload() -> Dict[str, Any]:
    return {
        "email": "buyer@example.com",
        "first_name": "Sara",
        "last_name": "Haddad",
        "phone": "+971500000000",
        "city": "Dubai",
        "country": "AE",
    }
