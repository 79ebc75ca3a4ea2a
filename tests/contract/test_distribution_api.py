"""Contract tests for the distribution HTTP API."""

import pytest
from httpx import ASGITransport, AsyncClient

from src.api.app import create_app
from src.api.distribution import get_distribution_service
from src.models import PayrollEntry
from src.services.distribution_service import DistributionService

ACTOR_HEADERS = {"X-Actor-Id": "5"}


@pytest.fixture
async def client(session, locks):
    app = create_app()
    app.dependency_overrides[get_distribution_service] = lambda: DistributionService(
        session, locks=locks
    )
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http


def _distribution_body(ledger, company="40", **extra):
    return {
        "log_ids": ledger.log_ids,
        "participants": [{"employee_id": ledger.employee_id, "percentage": "60"}],
        "company": {"percentage": company},
        **extra,
    }


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_list_logs(client, ledger):
    response = await client.get(f"/api/projects/{ledger.project_id}/percentage-logs")

    assert response.status_code == 200
    body = response.json()
    assert [log["id"] for log in body] == ledger.log_ids
    assert body[0]["amount"] == "300.00"
    assert body[0]["distributed"] is False


@pytest.mark.asyncio
async def test_selection(client, ledger):
    response = await client.post(
        f"/api/projects/{ledger.project_id}/distributions/selection",
        json={"log_ids": ledger.log_ids},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["selected_total"] == "500.00"
    assert body["selected_cash"] == "300.00"
    assert body["selected_bank"] == "200.00"
    assert body["total_pool"] == "1000.00"


@pytest.mark.asyncio
async def test_selection_of_unknown_log_is_conflict(client, ledger):
    response = await client.post(
        f"/api/projects/{ledger.project_id}/distributions/selection",
        json={"log_ids": [*ledger.log_ids, 404]},
    )

    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["code"] == "selection_stale"
    assert detail["details"]["missing_ids"] == [404]


@pytest.mark.asyncio
async def test_preview_does_not_write(client, ledger):
    response = await client.post(
        f"/api/projects/{ledger.project_id}/distributions/preview",
        json=_distribution_body(ledger),
    )

    assert response.status_code == 200
    body = response.json()
    employee = body["employees"][0]
    assert employee["cash_amount"] == "180.00"
    assert employee["bank_amount"] == "120.00"
    assert employee["total"] == "300.00"
    assert employee["is_negative"] is False
    assert body["company"]["employee_id"] is None

    logs = await client.get(f"/api/projects/{ledger.project_id}/percentage-logs")
    assert len(logs.json()) == 2


@pytest.mark.asyncio
async def test_preview_partition_error(client, ledger):
    response = await client.post(
        f"/api/projects/{ledger.project_id}/distributions/preview",
        json=_distribution_body(ledger, company="40.01"),
    )

    assert response.status_code == 422
    assert response.json()["detail"]["code"] == "partition_incomplete"
    assert response.json()["detail"]["details"]["deviation"] == "0.01"


@pytest.mark.asyncio
async def test_commit_requires_actor(client, ledger):
    response = await client.post(
        f"/api/projects/{ledger.project_id}/distributions", json=_distribution_body(ledger)
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_commit_then_replay(client, ledger):
    url = f"/api/projects/{ledger.project_id}/distributions"

    first = await client.post(url, json=_distribution_body(ledger), headers=ACTOR_HEADERS)
    assert first.status_code == 200
    assert first.json()["success"] is True
    assert first.json()["data"]["already_applied"] is False

    second = await client.post(url, json=_distribution_body(ledger), headers=ACTOR_HEADERS)
    assert second.status_code == 409
    assert second.json()["detail"]["code"] == "selection_stale"


@pytest.mark.asyncio
async def test_maps_commit(client, ledger):
    response = await client.post(
        f"/api/projects/{ledger.project_id}/maps-distributions",
        json={
            "payment_method": "cash",
            "items": [
                {
                    "map_type_id": ledger.map_type_ids[1],
                    "price": "120",
                    "quantity": "1",
                    "employees": [{"employee_id": ledger.employee_id, "percentage": "25"}],
                    "company_percentage": "75",
                }
            ],
        },
        headers=ACTOR_HEADERS,
    )

    assert response.status_code == 200
    assert response.json()["data"]["total_amount"] == "120.00"
    assert response.json()["data"]["company_amount"] == "90.00"


@pytest.mark.asyncio
async def test_payment_fee(client, ledger):
    response = await client.post(
        f"/api/projects/{ledger.project_id}/payment-fees",
        json={"amount": "250", "payment_method": "bank"},
        headers=ACTOR_HEADERS,
    )

    assert response.status_code == 201
    assert response.json()["amount"] == "25.00"


@pytest.mark.asyncio
async def test_payroll_accept_and_reject(client, store, ledger):
    await client.post(
        f"/api/projects/{ledger.project_id}/distributions",
        json=_distribution_body(ledger),
        headers=ACTOR_HEADERS,
    )
    entries = await store.get(PayrollEntry, employee_id=ledger.employee_id)
    bank_entry, cash_entry = entries

    accepted = await client.post(f"/api/payroll/{cash_entry.id}/accept", headers=ACTOR_HEADERS)
    assert accepted.status_code == 200
    assert accepted.json()["status"] == "accepted"
    assert accepted.json()["approved_by"] == 5

    rejected = await client.post(f"/api/payroll/{bank_entry.id}/reject", headers=ACTOR_HEADERS)
    assert rejected.json()["status"] == "rejected"

    again = await client.post(f"/api/payroll/{bank_entry.id}/accept", headers=ACTOR_HEADERS)
    assert again.status_code == 409
    assert again.json()["detail"]["code"] == "payroll_not_pending"

    missing = await client.post("/api/payroll/9999/accept", headers=ACTOR_HEADERS)
    assert missing.status_code == 404
