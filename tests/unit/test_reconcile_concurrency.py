import threading

import pytest

from backend.payments import service
from backend.payments.models import BuyerDetails
from tests.fakes import FakeGateway

THREADS = 8


@pytest.fixture
def gateway():
    # Réponse lente: toutes les réconciliations voient la session 'pending'
    return FakeGateway(delay=0.05)

def _run_concurrently(fn, n):
    barrier = threading.Barrier(n)
    results, errors = [], []
    lock = threading.Lock()

    def worker():
        barrier.wait()
        try:
            res = fn()
            with lock:
                results.append(res)
        except Exception as exc:  # collecté pour l'assertion
            with lock:
                errors.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)
    return results, errors

def test_concurrent_reconciles_credit_exactly_once(store, gateway, buyer_payload):
    session, _ = service.start_checkout(
        user_id="user-1", package_id="pkg-spare", buyer=BuyerDetails(**buyer_payload)
    )

    results, errors = _run_concurrently(
        lambda: service.reconcile(session.session_id, claimed_outcome="succeeded"), THREADS
    )

    assert errors == []
    assert len(results) == THREADS
    payloads = [r.to_payload() for r in results]
    assert all(p == payloads[0] for p in payloads)
    assert payloads[0]["sparePartsCredits"] == 12
    assert len(store.entries_for(session.session_id)) == 1
    assert store.get_balance("user-1")["spare_parts_credits"] == 12

def test_webhook_and_return_page_race_on_many_sessions(store, gateway, buyer_payload):
    buyer = BuyerDetails(**buyer_payload)
    sessions = [
        service.start_checkout(user_id="user-1", package_id="pkg-auto", buyer=buyer)[0]
        for _ in range(3)
    ]

    def reconcile_all():
        return [service.reconcile(s.session_id) for s in sessions]

    results, errors = _run_concurrently(reconcile_all, 4)

    assert errors == []
    assert len(store.ledger) == 3
    assert store.get_balance("user-1")["automotive_credits"] == 60
