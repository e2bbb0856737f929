"""HTTP surface tests — identity headers, problem details, roles, rate limit."""

from __future__ import annotations

import uuid
from decimal import Decimal

from leave_engine.common.constants import UserRole
from tests.conftest import identity_headers, submit_ok

BASE = "/api/v1/leave"

ADMIN_HEADERS = identity_headers(uuid.uuid4(), UserRole.hr_admin)


def _body(**overrides) -> dict:
    data = {
        "leave_type": "vacation",
        "start_date": "2026-03-02",
        "end_date": "2026-03-04",
        "reason": "Family event",
    }
    data.update(overrides)
    return data


# ═════════════════════════════════════════════════════════════════════
# Health / identity
# ═════════════════════════════════════════════════════════════════════


class TestHealthAndIdentity:

    async def test_health(self, client):
        resp = await client.get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"

    async def test_missing_identity_is_401(self, client):
        resp = await client.post(f"{BASE}/requests", json=_body())
        assert resp.status_code == 401

    async def test_malformed_identity_is_401(self, client):
        resp = await client.get(
            f"{BASE}/policies", headers={"X-Employee-Id": "not-a-uuid"},
        )
        assert resp.status_code == 401


# ═════════════════════════════════════════════════════════════════════
# Submission
# ═════════════════════════════════════════════════════════════════════


class TestSubmitEndpoint:

    async def test_submit_created(self, client):
        emp = uuid.uuid4()
        resp = await client.post(
            f"{BASE}/requests", json=_body(), headers=identity_headers(emp),
        )
        assert resp.status_code == 201
        data = resp.json()
        assert data["status"] == "pending"
        assert data["employee_id"] == str(emp)
        assert Decimal(data["total_days"]) == Decimal("3")

    async def test_rejected_submission_is_problem_detail(self, client):
        resp = await client.post(
            f"{BASE}/requests",
            json=_body(leave_type="sick", end_date="2026-03-02"),
            headers=identity_headers(uuid.uuid4()),
        )
        assert resp.status_code == 422
        assert resp.headers["content-type"].startswith("application/problem+json")
        problem = resp.json()
        assert problem["type"].endswith("/leave-rules-violated")
        assert set(problem["errors"]) == {"document_required"}

    async def test_every_violation_in_one_response(self, client):
        resp = await client.post(
            f"{BASE}/requests",
            json=_body(leave_type="sick", start_date="2026-03-09", end_date="2026-03-22"),
            headers=identity_headers(uuid.uuid4()),
        )
        assert resp.status_code == 422
        assert {"max_consecutive_span", "document_required"} <= set(resp.json()["errors"])

    async def test_malformed_payload(self, client):
        resp = await client.post(
            f"{BASE}/requests",
            json=_body(reason=""),
            headers=identity_headers(uuid.uuid4()),
        )
        assert resp.status_code == 422
        assert "reason" in resp.json()["errors"]

    async def test_preview(self, client):
        resp = await client.post(
            f"{BASE}/requests/preview",
            json=_body(end_date="2026-03-05"),
            headers=identity_headers(uuid.uuid4()),
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["accepted"] is True
        assert data["request"] is None
        assert data["leave_category"] == "extended"
        assert data["requires_admin_approval"] is True
        assert data["is_weekend_leave"] is True

    async def test_submit_rate_limited(self, client):
        headers = identity_headers(uuid.uuid4())
        # Fri–Sat: rejected by the rules, but still counted by the limiter
        body = _body(start_date="2026-03-06", end_date="2026-03-07")
        for i in range(20):
            resp = await client.post(f"{BASE}/requests", json=body, headers=headers)
            assert resp.status_code == 422, f"Request {i+1} should reach the handler"

        resp = await client.post(f"{BASE}/requests", json=body, headers=headers)
        assert resp.status_code == 429

        # The budget is per employee
        resp = await client.post(
            f"{BASE}/requests", json=body, headers=identity_headers(uuid.uuid4()),
        )
        assert resp.status_code == 422


# ═════════════════════════════════════════════════════════════════════
# Reads
# ═════════════════════════════════════════════════════════════════════


class TestReadEndpoints:

    async def test_employees_only_see_their_own(self, client, lifecycle):
        emp, other = uuid.uuid4(), uuid.uuid4()
        await submit_ok(lifecycle, emp)
        await submit_ok(lifecycle, other)

        resp = await client.get(
            f"{BASE}/requests",
            params={"employee_id": str(other)},
            headers=identity_headers(emp),
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["meta"]["total"] == 1
        assert body["data"][0]["employee_id"] == str(emp)

    async def test_admin_lists_everyone(self, client, lifecycle):
        await submit_ok(lifecycle, uuid.uuid4())
        await submit_ok(lifecycle, uuid.uuid4())
        resp = await client.get(f"{BASE}/requests", headers=ADMIN_HEADERS)
        assert resp.json()["meta"]["total"] == 2

    async def test_pending_queue_is_admin_only(self, client, lifecycle):
        await submit_ok(lifecycle, uuid.uuid4())

        resp = await client.get(
            f"{BASE}/requests/pending", headers=identity_headers(uuid.uuid4()),
        )
        assert resp.status_code == 403

        resp = await client.get(f"{BASE}/requests/pending", headers=ADMIN_HEADERS)
        assert resp.status_code == 200
        assert resp.json()["meta"]["total"] == 1

    async def test_get_request_visibility(self, client, lifecycle):
        emp = uuid.uuid4()
        request = await submit_ok(lifecycle, emp)
        url = f"{BASE}/requests/{request.id}"

        assert (await client.get(url, headers=identity_headers(emp))).status_code == 200
        assert (await client.get(url, headers=ADMIN_HEADERS)).status_code == 200
        resp = await client.get(url, headers=identity_headers(uuid.uuid4()))
        assert resp.status_code == 403

    async def test_unknown_request_is_404(self, client):
        resp = await client.get(
            f"{BASE}/requests/{uuid.uuid4()}", headers=ADMIN_HEADERS,
        )
        assert resp.status_code == 404

    async def test_balances(self, client, lifecycle):
        emp = uuid.uuid4()
        await submit_ok(lifecycle, emp)

        resp = await client.get(f"{BASE}/balances", headers=identity_headers(emp))
        assert resp.status_code == 200
        data = resp.json()
        assert data["year"] == 2026
        assert len(data["balances"]) == 8
        vacation = next(b for b in data["balances"] if b["leave_type"] == "vacation")
        assert Decimal(vacation["used"]) == Decimal("3")
        assert Decimal(vacation["remaining"]) == Decimal("21")
        assert Decimal(vacation["periods"]["1"]["remaining"]) == Decimal("9")
        assert [w["period"] for w in data["weekend_leave"]] == [1, 2]

    async def test_policies(self, client):
        resp = await client.get(
            f"{BASE}/policies", headers=identity_headers(uuid.uuid4()),
        )
        assert resp.status_code == 200
        policies = {p["leave_type"]: p for p in resp.json()}
        assert len(policies) == 8
        assert policies["sick"]["requires_document"] is True


# ═════════════════════════════════════════════════════════════════════
# Transitions
# ═════════════════════════════════════════════════════════════════════


class TestTransitionEndpoints:

    async def test_approve_then_conflict(self, client, lifecycle):
        request = await submit_ok(lifecycle, uuid.uuid4())
        url = f"{BASE}/requests/{request.id}/approve"

        resp = await client.put(url, json={"notes": "OK"}, headers=ADMIN_HEADERS)
        assert resp.status_code == 200
        assert resp.json()["status"] == "approved"

        resp = await client.put(url, json={}, headers=ADMIN_HEADERS)
        assert resp.status_code == 409
        assert resp.json()["errors"]["status"] == ["approved"]

    async def test_employee_cannot_approve(self, client, lifecycle):
        emp = uuid.uuid4()
        request = await submit_ok(lifecycle, emp)
        resp = await client.put(
            f"{BASE}/requests/{request.id}/approve", json={},
            headers=identity_headers(emp),
        )
        assert resp.status_code == 403

    async def test_reject_requires_notes(self, client, lifecycle):
        request = await submit_ok(lifecycle, uuid.uuid4())
        url = f"{BASE}/requests/{request.id}/reject"

        resp = await client.put(url, json={}, headers=ADMIN_HEADERS)
        assert resp.status_code == 422
        assert "notes" in resp.json()["errors"]

        resp = await client.put(
            url, json={"notes": "Release freeze"}, headers=ADMIN_HEADERS,
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "rejected"

    async def test_cancel_own_request_only(self, client, lifecycle):
        emp = uuid.uuid4()
        request = await submit_ok(lifecycle, emp)
        url = f"{BASE}/requests/{request.id}/cancel"

        resp = await client.put(url, headers=identity_headers(uuid.uuid4()))
        assert resp.status_code == 403

        resp = await client.put(url, headers=identity_headers(emp))
        assert resp.status_code == 200
        assert resp.json()["status"] == "cancelled"


# ═════════════════════════════════════════════════════════════════════
# Ledger administration
# ═════════════════════════════════════════════════════════════════════


class TestAdminEndpoints:

    async def test_open_period(self, client):
        employees = [str(uuid.uuid4()), str(uuid.uuid4())]
        resp = await client.post(
            f"{BASE}/admin/periods/open",
            json={"year": 2026, "period": 2, "employee_ids": employees},
            headers=ADMIN_HEADERS,
        )
        assert resp.status_code == 200
        assert resp.json() == {"year": 2026, "period": 2, "created": 4, "existing": 0}

    async def test_open_period_defaults_to_current_half(self, client):
        resp = await client.post(
            f"{BASE}/admin/periods/open",
            json={"employee_ids": [str(uuid.uuid4())]},
            headers=ADMIN_HEADERS,
        )
        assert resp.status_code == 200
        body = resp.json()
        assert (body["year"], body["period"]) == (2026, 1)
        assert body["created"] == 2

    async def test_open_period_is_admin_only(self, client):
        resp = await client.post(
            f"{BASE}/admin/periods/open",
            json={"year": 2026, "period": 2, "employee_ids": [str(uuid.uuid4())]},
            headers=identity_headers(uuid.uuid4(), UserRole.manager),
        )
        assert resp.status_code == 403

    async def test_adjust_balance(self, client):
        emp = uuid.uuid4()
        resp = await client.post(
            f"{BASE}/admin/balances/adjust",
            json={
                "employee_id": str(emp),
                "leave_type": "personal",
                "year": 2026,
                "adjustment": "2",
                "reason": "Long-service bonus",
            },
            headers=ADMIN_HEADERS,
        )
        assert resp.status_code == 200
        assert Decimal(resp.json()["allocated"]) == Decimal("5")

    async def test_adjust_semi_annual_type_needs_period(self, client):
        resp = await client.post(
            f"{BASE}/admin/balances/adjust",
            json={
                "employee_id": str(uuid.uuid4()),
                "leave_type": "vacation",
                "year": 2026,
                "adjustment": "1",
                "reason": "Carry-over credit",
            },
            headers=ADMIN_HEADERS,
        )
        assert resp.status_code == 422
        assert "period" in resp.json()["errors"]
