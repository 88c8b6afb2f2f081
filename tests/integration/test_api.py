"""Integration tests for API endpoints"""

from fastapi.testclient import TestClient
from conftest import auth_header
from matching_income.api.dependencies import get_income_rules
from matching_income.domain.models import IncomeRules, MatchingMode
from matching_income.infrastructure.database.repositories import SaleRepository


def _post_sale(client: TestClient, headers, sale_id: str, buyer_id: str, amount_paise: int, seller_id: str = "ROOT"):
    return client.post(
        "/v1/sales",
        headers=headers,
        json={
            "sale_id": sale_id,
            "buyer_id": buyer_id,
            "seller_id": seller_id,
            "plot_id": f"PLOT-{sale_id}",
            "sale_amount_paise": amount_paise,
        },
    )


def _personal_incomes(client: TestClient, headers, count: int):
    ids = []
    for i in range(count):
        response = _post_sale(client, headers, f"P{i}", "ROOT", 1_000_000)
        ids.append(response.json()["data"]["incomes"][0]["record_id"])
    return ids


def test_health_endpoint(client: TestClient):
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_metrics_endpoint(client: TestClient, tree, admin_headers):
    """Test Prometheus metrics endpoint"""
    _post_sale(client, admin_headers, "S1", "ROOT", 1_000_000)

    response = client.get("/metrics")
    assert response.status_code == 200
    assert "matching_income_records_created" in response.text


def test_request_id_header(client: TestClient):
    response = client.get("/health", headers={"X-Request-ID": "trace-123"})
    assert response.headers["X-Request-ID"] == "trace-123"


def test_missing_token_is_unauthorized(client: TestClient, tree):
    response = client.get("/v1/leg-balance/ROOT")
    assert response.status_code == 401
    assert response.json()["success"] is False


def test_invalid_token_is_unauthorized(client: TestClient, tree):
    response = client.get("/v1/leg-balance/ROOT", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json()["error"] == "AuthError"


def test_member_cannot_use_admin_endpoints(client: TestClient, tree):
    headers = auth_header("ROOT")
    assert client.get("/v1/matching-income/admin/stats", headers=headers).status_code == 403
    assert _post_sale(client, headers, "S1", "ROOT", 1_000).status_code == 403


def test_member_reads_only_own_data(client: TestClient, tree):
    headers = auth_header("L1")
    assert client.get("/v1/leg-balance/L1", headers=headers).status_code == 200
    assert client.get("/v1/leg-balance/ROOT", headers=headers).status_code == 403
    assert client.get("/v1/matching-income/user/ROOT", headers=headers).status_code == 403


def test_register_member_with_spill_over(client: TestClient, tree, admin_headers):
    response = client.post(
        "/v1/members",
        headers=admin_headers,
        json={"member_id": "NEW", "name": "Esha Pillai", "parent_id": "ROOT", "position": "left"},
    )

    assert response.status_code == 201
    assert response.json()["data"]["parent_id"] == "L2"

    duplicate = client.post("/v1/members", headers=admin_headers, json={"member_id": "NEW", "name": "Again"})
    assert duplicate.status_code == 409


def test_downline_endpoint(client: TestClient, tree, admin_headers):
    response = client.get("/v1/members/ROOT/downline", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["total"] == 3
    assert client.get("/v1/members/NOBODY", headers=admin_headers).status_code == 404


def test_personal_purchase_creates_pending_income(client: TestClient, tree, admin_headers):
    """₹5,00,000 self-purchase → ₹25,000 personal_sale income locked for 3 months"""
    response = _post_sale(client, admin_headers, "S1", "ROOT", 50_000_000)

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["sale"]["leg_type"] == "personal"
    income = data["incomes"][0]
    assert income["income_type"] == "personal_sale"
    assert income["income_amount_paise"] == 2_500_000
    assert income["status"] == "pending"
    assert income["eligible_for_approval_date"].startswith("2025-04-15")
    assert income["days_until_eligible"] == 90


def test_duplicate_sale_conflict(client: TestClient, tree, admin_headers):
    _post_sale(client, admin_headers, "S1", "L1", 1_000_000)
    response = _post_sale(client, admin_headers, "S1", "L1", 1_000_000)

    assert response.status_code == 409
    assert response.json()["error"] == "DuplicateSaleError"


def test_duplicate_sale_conflict_when_insert_races(client: TestClient, tree, admin_headers, monkeypatch):
    monkeypatch.setattr(SaleRepository, "exists", lambda self, sale_id: False)
    _post_sale(client, admin_headers, "S1", "L1", 1_000_000)
    response = _post_sale(client, admin_headers, "S1", "L1", 1_000_000)

    assert response.status_code == 409
    assert response.json()["error"] == "DuplicateSaleError"

    balance = client.get("/v1/leg-balance/ROOT/summary", headers=admin_headers).json()["data"]
    assert balance["left_leg"]["sale_count"] == 1


def test_buyer_outside_downline_rejected(client: TestClient, tree, admin_headers):
    response = _post_sale(client, admin_headers, "S1", "R1", 1_000_000, seller_id="L1")
    assert response.status_code == 422
    assert response.json()["error"] == "NotInDownlineError"


def test_matching_and_carry_forward(client: TestClient, tree, admin_headers):
    """Left ₹2,00,000 / right ₹1,50,000, then a ₹60,000 right sale"""
    _post_sale(client, admin_headers, "S1", "L1", 20_000_000)
    first = _post_sale(client, admin_headers, "S2", "R1", 15_000_000).json()["data"]

    bonus = first["incomes"][0]
    assert bonus["income_type"] == "matching_bonus"
    assert bonus["balanced_amount_paise"] == 15_000_000
    assert bonus["income_amount_paise"] == 750_000
    assert bonus["paired_with"]["sale_id"] == "S1"
    assert first["leg_balance"]["carry_forward"] == {"leg": "left", "amount_paise": 5_000_000}

    second = _post_sale(client, admin_headers, "S3", "R1", 6_000_000).json()["data"]
    assert second["incomes"][0]["balanced_amount_paise"] == 5_000_000
    assert second["incomes"][0]["income_amount_paise"] == 250_000
    assert second["leg_balance"]["carry_forward"] == {"leg": "right", "amount_paise": 1_000_000}

    summary = client.get("/v1/leg-balance/ROOT/summary", headers=admin_headers).json()["data"]
    assert summary["left_leg"]["total_sales_paise"] == 20_000_000
    assert summary["right_leg"]["total_sales_paise"] == 21_000_000
    assert summary["total_matched_paise"] == 20_000_000
    assert summary["matching_count"] == 2

    unmatched = client.get("/v1/leg-balance/ROOT/unmatched?leg=both", headers=admin_headers).json()["data"]
    assert [s["sale_id"] for s in unmatched["unmatched_sales"]] == ["S3"]
    assert unmatched["summary"]["right_amount_paise"] == 1_000_000
    assert unmatched["summary"]["left_count"] == 0
    assert unmatched["summary"]["total_unmatched_paise"] == 1_000_000


def test_leg_balance_of_member_without_sales(client: TestClient, tree):
    response = client.get("/v1/leg-balance/R1", headers=auth_header("R1"))

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["left_leg"]["available_balance_paise"] == 0
    assert data["carry_forward"]["leg"] == "none"
    assert data["unmatched_sales"] == []


def test_leg_balance_admin_list(client: TestClient, tree, admin_headers):
    _post_sale(client, admin_headers, "S1", "L1", 3_000_000)
    _post_sale(client, admin_headers, "S2", "L2", 1_000_000, seller_id="L1")

    response = client.get("/v1/leg-balance/admin/all?sort_by=left_total_sales&sort_order=desc", headers=admin_headers)

    assert response.status_code == 200
    body = response.json()
    assert [b["member_id"] for b in body["data"]] == ["ROOT", "L1"]
    assert body["pagination"]["total"] == 2


def test_approve_waits_for_lock(client: TestClient, tree, admin_headers, clock):
    record_id = _personal_incomes(client, admin_headers, 1)[0]
    url = f"/v1/matching-income/admin/approve/{record_id}"

    early = client.patch(url, headers=admin_headers, json={"notes": "too soon"})
    assert early.status_code == 422
    assert early.json()["error"] == "NotEligibleError"

    clock.advance(days=91)
    approved = client.patch(url, headers=admin_headers, json={"admin_id": "admin_1", "notes": "verified"})
    assert approved.status_code == 200
    data = approved.json()["data"]
    assert data["status"] == "approved"
    assert data["approved_by"] == "admin_1"
    assert data["admin_notes"] == "verified"

    again = client.patch(url, headers=admin_headers, json={})
    assert again.status_code == 409
    assert again.json()["error"] == "AlreadyDecidedError"


def test_decision_cannot_be_stamped_with_another_admin(client: TestClient, tree, admin_headers, clock):
    ids = _personal_incomes(client, admin_headers, 2)
    clock.advance(days=91)

    approve = client.patch(
        f"/v1/matching-income/admin/approve/{ids[0]}", headers=admin_headers, json={"admin_id": "admin_9"}
    )
    assert approve.status_code == 403
    assert approve.json()["error"] == "AuthError"

    reject = client.patch(
        f"/v1/matching-income/admin/reject/{ids[0]}",
        headers=admin_headers,
        json={"admin_id": "admin_9", "reason": "Booking cancelled"},
    )
    assert reject.status_code == 403

    bulk = client.post(
        "/v1/matching-income/admin/bulk-approve",
        headers=admin_headers,
        json={"admin_id": "admin_9", "record_ids": ids},
    )
    assert bulk.status_code == 403

    listing = client.get("/v1/matching-income/user/ROOT", headers=admin_headers).json()
    assert {r["status"] for r in listing["data"]} == {"eligible"}

    client.patch(f"/v1/matching-income/admin/approve/{ids[0]}", headers=admin_headers, json={})
    audit = client.get(f"/v1/matching-income/admin/audit/{ids[0]}", headers=admin_headers).json()["data"]
    assert audit[-1]["actor_id"] == "admin_1"


def test_reject_requires_reason(client: TestClient, tree, admin_headers, clock):
    record_id = _personal_incomes(client, admin_headers, 1)[0]
    clock.advance(days=91)
    url = f"/v1/matching-income/admin/reject/{record_id}"

    response = client.patch(url, headers=admin_headers, json={"reason": ""})
    assert response.status_code == 422
    assert response.json()["error"] == "MissingReasonError"

    listing = client.get("/v1/matching-income/user/ROOT", headers=admin_headers).json()
    assert listing["data"][0]["status"] == "eligible"

    rejected = client.patch(url, headers=admin_headers, json={"reason": "Booking cancelled"})
    assert rejected.status_code == 200
    assert rejected.json()["data"]["rejection_reason"] == "Booking cancelled"


def test_credit_and_pay(client: TestClient, tree, admin_headers, clock):
    record_id = _personal_incomes(client, admin_headers, 1)[0]
    clock.advance(days=91)
    status_url = f"/v1/matching-income/admin/status/{record_id}"

    premature = client.patch(status_url, headers=admin_headers, json={"status": "credited"})
    assert premature.status_code == 409

    client.patch(f"/v1/matching-income/admin/approve/{record_id}", headers=admin_headers, json={})
    credited = client.patch(status_url, headers=admin_headers, json={"status": "credited"})
    assert credited.json()["data"]["status"] == "credited"

    zero = client.patch(
        status_url,
        headers=admin_headers,
        json={"status": "paid", "payment_details": {"paid_amount_paise": 0}},
    )
    assert zero.status_code == 422
    assert zero.json()["error"] == "InvalidPaymentError"

    paid = client.patch(
        status_url,
        headers=admin_headers,
        json={
            "status": "paid",
            "payment_details": {"paid_amount_paise": 50_000, "transaction_id": "UTR42", "payment_mode": "neft"},
        },
    )
    assert paid.status_code == 200
    data = paid.json()["data"]
    assert data["status"] == "paid"
    assert data["payment_details"]["transaction_id"] == "UTR42"

    audit = client.get(f"/v1/matching-income/admin/audit/{record_id}", headers=admin_headers).json()["data"]
    assert [a["to_status"] for a in audit] == ["pending", "approved", "credited", "paid"]


def test_bulk_approve_partial_success(client: TestClient, tree, admin_headers, clock):
    """Five ids with one already approved → 4 approved, 1 AlreadyDecidedError"""
    ids = _personal_incomes(client, admin_headers, 5)
    clock.advance(days=91)
    client.patch(f"/v1/matching-income/admin/approve/{ids[2]}", headers=admin_headers, json={})

    response = client.post(
        "/v1/matching-income/admin/bulk-approve",
        headers=admin_headers,
        json={"admin_id": "admin_1", "record_ids": ids},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["approved"] == 4
    assert body["failed"] == 1
    failed = [r for r in body["results"] if not r["success"]]
    assert failed[0]["record_id"] == ids[2]
    assert failed[0]["error"] == "AlreadyDecidedError"


def test_unknown_record_not_found(client: TestClient, admin_headers):
    response = client.patch(
        "/v1/matching-income/admin/approve/00000000-0000-0000-0000-000000000000",
        headers=admin_headers,
        json={},
    )
    assert response.status_code == 404
    assert response.json()["success"] is False


def test_user_income_listing_and_summary(client: TestClient, tree, admin_headers):
    _post_sale(client, admin_headers, "S1", "ROOT", 50_000_000)
    _post_sale(client, admin_headers, "S2", "L1", 4_000_000)
    _post_sale(client, admin_headers, "S3", "R1", 4_000_000)

    response = client.get("/v1/matching-income/user/ROOT", headers=auth_header("ROOT"))

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["pagination"]["total"] == 2
    summary = body["summary"]
    assert summary["total_income_paise"] == 2_500_000 + 200_000
    assert summary["income_by_type"] == {"personal_sale": 2_500_000, "matching_bonus": 200_000}
    assert summary["pending_income_paise"] == 2_700_000
    assert summary["left_leg_total_sales_paise"] == 4_000_000

    filtered = client.get(
        "/v1/matching-income/user/ROOT?income_type=matching_bonus", headers=auth_header("ROOT")
    ).json()
    assert [r["sale_id"] for r in filtered["data"]] == ["S3"]


def test_listing_with_last_representable_end_date(client: TestClient, tree, admin_headers):
    _post_sale(client, admin_headers, "S1", "ROOT", 1_000_000)

    for url in (
        "/v1/matching-income/user/ROOT?end_date=9999-12-31",
        "/v1/matching-income/team/ROOT?end_date=9999-12-31",
        "/v1/matching-income/admin/all?start_date=2025-01-01&end_date=9999-12-31",
    ):
        response = client.get(url, headers=admin_headers)
        assert response.status_code == 200

    listing = client.get("/v1/matching-income/user/ROOT?end_date=9999-12-31", headers=admin_headers).json()
    assert [r["sale_id"] for r in listing["data"]] == ["S1"]

    closed = client.get("/v1/matching-income/user/ROOT?end_date=2025-01-14", headers=admin_headers).json()
    assert closed["data"] == []


def test_team_income(client: TestClient, tree, admin_headers):
    _post_sale(client, admin_headers, "S1", "L1", 2_000_000, seller_id="L1")
    _post_sale(client, admin_headers, "S2", "R1", 1_000_000, seller_id="R1")

    response = client.get("/v1/matching-income/team/ROOT", headers=auth_header("ROOT"))

    summary = response.json()["summary"]
    assert summary["total_team_members"] == 3
    assert summary["active_members"] == 2
    assert summary["total_team_income_paise"] == 150_000

    one = client.get("/v1/matching-income/team/ROOT?member_id=R1", headers=auth_header("ROOT")).json()
    assert [r["user_id"] for r in one["data"]] == ["R1"]

    outsider = client.get("/v1/matching-income/team/L1?member_id=R1", headers=auth_header("L1"))
    assert outsider.status_code == 422


def test_admin_listing_and_stats(client: TestClient, tree, admin_headers, clock):
    _personal_incomes(client, admin_headers, 2)
    clock.advance(days=91)
    _post_sale(client, admin_headers, "NEW", "ROOT", 2_000_000)

    eligible = client.get("/v1/matching-income/admin/all?eligible_only=true", headers=admin_headers).json()
    assert eligible["pagination"]["total"] == 2

    searched = client.get("/v1/matching-income/admin/all?search=asha", headers=admin_headers).json()
    assert searched["pagination"]["total"] == 3

    stats = client.get("/v1/matching-income/admin/stats", headers=admin_headers).json()["data"]
    assert stats["eligible_for_approval"] == {"count": 2, "amount_paise": 100_000}
    assert stats["current_month"]["count"] == 1
    assert stats["overall"]["count"] == 3
    assert stats["overall"]["by_status"] == {"eligible": 2, "pending": 1}
    assert stats["unique_users"] == 1


def test_cycle_listing_covers_inclusive_date_range(client: TestClient, tree, admin_headers, clock):
    _post_sale(client, admin_headers, "JAN", "ROOT", 1_000_000)
    clock.advance(days=30)
    _post_sale(client, admin_headers, "FEB", "ROOT", 2_000_000)

    january = client.get(
        "/v1/matching-income/cycle?cycle_start_date=2025-01-01&cycle_end_date=2025-01-15",
        headers=admin_headers,
    )
    assert january.status_code == 200
    body = january.json()
    assert [r["sale_id"] for r in body["data"]] == ["JAN"]
    assert body["summary"]["total_income_paise"] == 50_000

    both = client.get(
        "/v1/matching-income/cycle?cycle_start_date=2025-01-01&cycle_end_date=2025-02-28",
        headers=admin_headers,
    ).json()
    assert both["pagination"]["total"] == 2

    missing = client.get("/v1/matching-income/cycle?cycle_start_date=2025-01-01", headers=admin_headers)
    assert missing.status_code == 422

    member = client.get(
        "/v1/matching-income/cycle?cycle_start_date=2025-01-01&cycle_end_date=2025-01-31",
        headers=auth_header("ROOT"),
    )
    assert member.status_code == 403


def test_batch_sweep_endpoint(client: TestClient, tree, admin_headers):
    client.app.dependency_overrides[get_income_rules] = lambda: IncomeRules(matching_mode=MatchingMode.BATCH)

    _post_sale(client, admin_headers, "S1", "L1", 5_000_000)
    deferred = _post_sale(client, admin_headers, "S2", "R1", 2_000_000).json()["data"]
    assert deferred["incomes"] == []

    response = client.post("/v1/matching-income/admin/calculate", headers=admin_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["matches"] == 1
    assert body["total_matched_paise"] == 2_000_000
    assert body["data"][0]["income_amount_paise"] == 100_000

    again = client.post("/v1/matching-income/admin/calculate", headers=admin_headers).json()
    assert again["matches"] == 0
