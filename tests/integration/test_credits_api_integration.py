def test_packages_listing(client, store):
    res = client.get("/api/v1/packages")
    assert res.status_code == 200
    ids = {p["id"] for p in res.json()["packages"]}
    assert ids == {"pkg-spare", "pkg-auto"}
    spare = next(p for p in res.json()["packages"] if p["id"] == "pkg-spare")
    assert spare["bonusCredits"] == 2
    assert spare["price"] == "50.00"

def test_packages_listing_skips_invalid_rows(client, store):
    store.packages["broken"] = {"id": "broken", "category": "boats", "credits": 1, "price": "1", "active": True}
    ids = {p["id"] for p in client.get("/api/v1/packages").json()["packages"]}
    assert "broken" not in ids

def test_credits_balance_after_purchase(client, store, buyer_payload):
    session_id = client.post(
        "/api/v1/payments/checkout", json={"packageId": "pkg-spare", "buyer": buyer_payload}
    ).json()["sessionId"]
    client.get("/api/v1/payments/verify", params={"cart": session_id})

    res = client.get("/api/v1/credits")
    assert res.status_code == 200
    body = res.json()
    assert body["sparePartsCredits"] == 12
    assert body["automotiveCredits"] == 0
    assert "subscriptionEnabled" in body

    history = client.get("/api/v1/credits/transactions").json()["transactions"]
    assert len(history) == 1
    assert history[0]["sessionId"] == session_id
    assert history[0]["credits"] == 12
    assert history[0]["amount"] == "50.00"

def test_credits_zero_for_new_user(client, store):
    body = client.get("/api/v1/credits").json()
    assert body["sparePartsCredits"] == 0 and body["automotiveCredits"] == 0

def test_invoices_after_purchases(client, store, buyer_payload):
    for package_id in ("pkg-spare", "pkg-auto"):
        session_id = client.post(
            "/api/v1/payments/checkout", json={"packageId": package_id, "buyer": buyer_payload}
        ).json()["sessionId"]
        client.get("/api/v1/payments/verify", params={"cart": session_id})

    res = client.get("/api/v1/credits/invoices")
    assert res.status_code == 200
    latest, first = res.json()["invoices"]

    assert first["packageName"] == "Pack pkg-spare"
    assert first["credits"] == 12
    assert first["category"] == "spare_parts"
    assert first["paymentMethod"] == "credit_card"
    assert first["invoiceNumber"].startswith("INV-")
    assert first["invoiceNumber"].endswith("-000001")
    assert latest["invoiceNumber"].endswith("-000002")
    # Prix TTC, TVA 5% incluse
    assert first["totalAmount"] == 50.0
    assert first["baseAmount"] == 47.62
    assert first["vatAmount"] == 2.38
    assert latest["totalAmount"] == 80.0
    assert latest["baseAmount"] == 76.19
    assert latest["vatAmount"] == 3.81

def test_invoices_empty_for_new_user(client, store):
    assert client.get("/api/v1/credits/invoices").json() == {"invoices": []}
