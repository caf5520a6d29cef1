from datetime import date

import pytest


ALL = ("payroll.*", "loans.*", "remittance.*", "settings.write")


@pytest.fixture
def staffed(session, seed_rates, make_employee, make_component, give):
    seed_rates()
    basic = make_component("BASIC")
    emps = [make_employee() for _ in range(3)]
    for e in emps:
        give(e, basic, 50000)
    return emps


def _create(client, headers, **kw):
    body = {"name": "January 2025", "start_date": "2025-01-01", "end_date": "2025-01-31",
            "pay_date": "2025-01-31"}
    body.update(kw)
    return client.post("/api/v1/payroll-periods", json=body, headers=headers)


def test_requires_token(client):
    assert client.get("/api/v1/payroll-periods").status_code == 401


def test_requires_permission(client, auth_headers):
    r = client.get("/api/v1/payroll-periods", headers=auth_headers("loans.read"))
    assert r.status_code == 403
    r = client.get("/api/v1/payroll-periods", headers=auth_headers("payroll.read", tenant_id=None))
    assert r.status_code == 403


def test_admin_role_still_needs_tenant(client, auth_headers):
    r = _create(client, auth_headers(roles=("admin",), tenant_id=None))
    assert r.status_code == 403
    r = _create(client, auth_headers(roles=("admin",)))
    assert r.status_code == 201
    assert r.get_json()["data"]["tenant_id"] == 1


def test_create_and_list(client, auth_headers, staffed):
    h = auth_headers(*ALL)
    r = _create(client, h)
    assert r.status_code == 201
    body = r.get_json()
    assert body["success"] is True
    assert body["data"]["status"] == "draft"
    assert body["data"]["totals"]["employees"] == 3

    r = client.get("/api/v1/payroll-periods?status=draft", headers=h)
    assert r.status_code == 200
    assert r.get_json()["meta"]["total"] == 1


def test_create_validation_and_overlap(client, auth_headers):
    h = auth_headers("payroll.write")
    r = _create(client, h, end_date="not-a-date")
    assert r.status_code == 422
    assert r.get_json()["error"]["code"] == "VALIDATION_ERROR"

    assert _create(client, h).status_code == 201
    r = _create(client, h, name="Dup", start_date="2025-01-20", end_date="2025-02-19", pay_date="2025-02-19")
    assert r.status_code == 409
    assert r.get_json()["error"]["code"] == "OVERLAPPING_PERIOD"


def test_process_approve_lock_flow(client, auth_headers, staffed):
    h = auth_headers(*ALL)
    pid = _create(client, h).get_json()["data"]["id"]

    r = client.post(f"/api/v1/payroll-periods/{pid}/process", headers=h)
    assert r.status_code == 200
    data = r.get_json()["data"]
    assert data["summary"]["processed_count"] == 3
    assert data["summary"]["skipped_count"] == 0
    assert data["period"]["status"] == "pending_approval"
    assert data["period"]["processed_by"] == 7

    r = client.get(f"/api/v1/payroll-periods/{pid}/summary", headers=h)
    assert r.get_json()["data"]["counts"] == {"total": 3, "calculated": 3, "error": 0}

    assert client.post(f"/api/v1/payroll-periods/{pid}/lock", headers=h).status_code == 409
    r = client.post(f"/api/v1/payroll-periods/{pid}/approve", headers=h)
    assert r.get_json()["data"]["status"] == "approved"
    r = client.post(f"/api/v1/payroll-periods/{pid}/lock", headers=h)
    assert r.get_json()["data"]["status"] == "locked"

    r = client.put(f"/api/v1/payroll-periods/{pid}", json={"name": "x"}, headers=h)
    assert r.status_code == 409
    assert r.get_json()["error"]["code"] == "PERIOD_LOCKED"
    assert client.delete(f"/api/v1/payroll-periods/{pid}", headers=h).status_code == 409

    r = client.post(f"/api/v1/payroll-periods/{pid}/process", headers=h)
    assert r.status_code == 409
    assert r.get_json()["error"]["code"] == "INVALID_STATE"


def test_payroll_rows_and_payment_details(client, auth_headers, staffed):
    h = auth_headers(*ALL)
    pid = _create(client, h).get_json()["data"]["id"]
    client.post(f"/api/v1/payroll-periods/{pid}/process", headers=h)

    r = client.get(f"/api/v1/payrolls?period_id={pid}", headers=h)
    rows = r.get_json()["data"]
    assert len(rows) == 3
    row_id = rows[0]["id"]

    r = client.get(f"/api/v1/payrolls/{row_id}", headers=h)
    item_names = [i["name"] for i in r.get_json()["data"]["items"]]
    assert {"Basic", "PAYE", "NSSF", "NHIF"} <= set(item_names)

    r = client.put(f"/api/v1/payrolls/{row_id}", json={"payment_method": "mpesa", "mpesa_phone": "0712345678"},
                   headers=h)
    assert r.status_code == 200
    assert r.get_json()["data"]["payment_method"] == "mpesa"

    r = client.put(f"/api/v1/payrolls/{row_id}", json={"payment_method": "gold"}, headers=h)
    assert r.status_code == 422


def test_preview_endpoint(client, auth_headers, staffed):
    h = auth_headers(*ALL)
    pid = _create(client, h).get_json()["data"]["id"]
    r = client.get(f"/api/v1/payrolls/preview?employee_id={staffed[0].id}&period_id={pid}", headers=h)
    assert r.status_code == 200
    data = r.get_json()["data"]
    assert data["statutory"]["paye"] == 6500.0
    assert data["net_pay"] == 50000 - 6500 - 2160 - 1200


def test_remittance_endpoints(client, auth_headers, staffed):
    h = auth_headers(*ALL)
    pid = _create(client, h).get_json()["data"]["id"]
    client.post(f"/api/v1/payroll-periods/{pid}/process", headers=h)

    r = client.post(f"/api/v1/tax-remittances/generate/{pid}", headers=h)
    assert r.status_code == 201
    assert r.get_json()["meta"]["created"] == 3
    rem = next(x for x in r.get_json()["data"] if x["tax_type"] == "PAYE")
    assert rem["due_date"] == date(2025, 2, 9).isoformat()

    r = client.post(f"/api/v1/tax-remittances/{rem['id']}/remit", json={"reference": "KRA-9"}, headers=h)
    assert r.get_json()["data"]["status"] == "remitted"
    r = client.post(f"/api/v1/tax-remittances/{rem['id']}/remit", json={}, headers=h)
    assert r.status_code == 409
    assert r.get_json()["error"]["code"] == "ALREADY_REMITTED"

    assert len(client.get("/api/v1/tax-remittances/pending", headers=h).get_json()["data"]) == 2
    totals = client.get("/api/v1/tax-remittances/totals", headers=h).get_json()["data"]
    assert totals["PAYE"]["remitted"] == 19500.0
    hist = client.get("/api/v1/tax-remittances?tax_type=paye", headers=h).get_json()
    assert hist["meta"]["total"] == 1


def test_loan_repayment_endpoints(client, auth_headers, staffed, make_loan):
    h = auth_headers("loans.read", "loans.write")
    loan = make_loan(staffed[0], monthly=1000, balance=3000)
    r = client.post(f"/api/v1/loans/{loan.id}/repayments", json={"amount": 500, "notes": "cash"}, headers=h)
    assert r.status_code == 201
    assert r.get_json()["data"]["loan"]["remaining_balance"] == 2500.0

    r = client.post(f"/api/v1/loans/{loan.id}/repayments", json={"amount": 9999}, headers=h)
    assert r.status_code == 422

    r = client.get(f"/api/v1/loans/{loan.id}/repayments", headers=h)
    assert [x["amount"] for x in r.get_json()["data"]] == [500.0]
    assert client.get("/api/v1/loans/9999/repayments", headers=h).status_code == 404


def test_statutory_rate_admin(client, auth_headers):
    h = auth_headers("settings.write", "payroll.read")
    body = {"country": "Kenya", "rate_type": "nssf", "effective_from": "2025-01-01",
            "config": {"kind": "flat", "rate": 6, "cap": 2160}}
    r = client.post("/api/v1/statutory-rates", json=body, headers=h)
    assert r.status_code == 201
    rid = r.get_json()["data"]["id"]

    bad = dict(body, effective_from="2025-03-01", config={"kind": "flat"})
    assert client.post("/api/v1/statutory-rates", json=bad, headers=h).status_code == 422
    clash = dict(body, effective_from="2025-03-01")
    assert client.post("/api/v1/statutory-rates", json=clash, headers=h).status_code == 422

    r = client.put(f"/api/v1/statutory-rates/{rid}", json={"effective_to": "2025-02-28"}, headers=h)
    assert r.get_json()["data"]["effective_to"] == "2025-02-28"
    assert client.post("/api/v1/statutory-rates", json=clash, headers=h).status_code == 201

    r = client.delete(f"/api/v1/statutory-rates/{rid}", headers=h)
    assert r.get_json()["data"]["is_active"] is False
    r = client.get("/api/v1/statutory-rates?active=true", headers=h)
    assert r.get_json()["meta"]["total"] == 1
