from types import SimpleNamespace
from typing import Dict

import pytest
from httpx import AsyncClient


def _config_payload(seed: SimpleNamespace, **overrides) -> dict:
    payload = {
        "school_cycle_id": str(seed.cycle_id),
        "scope": "all_students",
        "billing_type": "tuition",
        "recurrence_type": "monthly",
        "amount": "2500",
        "status": "required",
        "start_date": "2025-09-01",
        "end_date": "2025-09-30",
    }
    payload.update(overrides)
    return payload


@pytest.mark.asyncio
async def test_billing_flow_end_to_end(
    client: AsyncClient, seed: SimpleNamespace, auth_headers: Dict[str, str]
) -> None:
    response = await client.post("/api/v1/billing-configs", json=_config_payload(seed), headers=auth_headers)
    assert response.status_code == 201
    data = response.json()
    config_id = data["billing_config"]["id"]
    assert data["generation"]["message"] == "Generated 2 billing records"

    response = await client.get(f"/api/v1/billing/config/{config_id}", headers=auth_headers)
    assert response.status_code == 200
    records = {r["student_id"]: r for r in response.json()}
    ana_record = records[str(seed.ana_id)]
    assert ana_record["status"] == "pending"

    confirm = {
        "payment_intent_ref": "pi_http_1",
        "billing_record_id": ana_record["id"],
        "student_id": str(seed.ana_id),
        "amount": "1000",
        "method": "card",
    }
    response = await client.post("/api/v1/payments/confirm", json=confirm, headers=auth_headers)
    assert response.status_code == 201
    first = response.json()
    assert first["status"] == "partial"
    assert first["already_processed"] is False

    response = await client.post("/api/v1/payments/confirm", json=confirm, headers=auth_headers)
    assert response.status_code == 200
    replay = response.json()
    assert replay["already_processed"] is True
    assert replay["payment_id"] == first["payment_id"]

    response = await client.post(
        "/api/v1/billing/sweep/" + config_id, params={"as_of": "2025-10-01"}, headers=auth_headers
    )
    assert response.status_code == 200
    assert response.json()["updated_count"] == 1

    response = await client.get(f"/api/v1/billing/student/{seed.ana_id}", headers=auth_headers)
    assert [r["status"] for r in response.json()] == ["partial"]

    response = await client.get(
        f"/api/v1/reports/students/{seed.beto_id}/statement",
        params={"as_of": "2025-10-05"},
        headers=auth_headers,
    )
    assert response.status_code == 200
    assert response.json()["standing"] == "late"

    response = await client.get(f"/api/v1/reports/configs/{config_id}/collection", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["by_status"]["overdue"] == 1

    response = await client.get("/api/v1/payments/stats", headers=auth_headers)
    assert response.json()["total_payments"] == 1


@pytest.mark.asyncio
async def test_invalid_scope_is_unprocessable(
    client: AsyncClient, seed: SimpleNamespace, auth_headers: Dict[str, str]
) -> None:
    response = await client.post(
        "/api/v1/billing-configs",
        json=_config_payload(seed, scope="specific_groups"),
        headers=auth_headers,
    )
    assert response.status_code == 422
    assert "groups" in response.json()["detail"]


@pytest.mark.asyncio
async def test_negative_amount_is_rejected(
    client: AsyncClient, seed: SimpleNamespace, auth_headers: Dict[str, str]
) -> None:
    response = await client.post(
        "/api/v1/billing-configs", json=_config_payload(seed, amount="-1"), headers=auth_headers
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_missing_token_is_unauthorized(client: AsyncClient, seed: SimpleNamespace) -> None:
    response = await client.get("/api/v1/billing-configs")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_bad_token_is_unauthorized(client: AsyncClient, seed: SimpleNamespace) -> None:
    response = await client.get("/api/v1/billing-configs", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_missing_permission_is_forbidden(client: AsyncClient, seed: SimpleNamespace, make_token) -> None:
    token = make_token(seed.school_id, permissions={"billing": {"read": True}})
    headers = {"Authorization": f"Bearer {token}"}

    response = await client.get("/api/v1/billing-configs", headers=headers)
    assert response.status_code == 200

    response = await client.post("/api/v1/billing-configs", json=_config_payload(seed), headers=headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_super_admin_bypasses_permissions(client: AsyncClient, seed: SimpleNamespace, make_token) -> None:
    token = make_token(seed.school_id, role="SUPER_ADMIN", permissions={})
    response = await client.post(
        "/api/v1/billing-configs",
        json=_config_payload(seed),
        headers={"Authorization": f"Bearer {token}"},
    )
    assert response.status_code == 201


@pytest.mark.asyncio
async def test_other_school_cannot_see_config(client: AsyncClient, seed: SimpleNamespace, make_token) -> None:
    own = {"Authorization": f"Bearer {make_token(seed.school_id)}"}
    other = {"Authorization": f"Bearer {make_token(seed.other_school_id)}"}
    response = await client.post("/api/v1/billing-configs", json=_config_payload(seed), headers=own)
    config_id = response.json()["billing_config"]["id"]

    response = await client.get(f"/api/v1/billing-configs/{config_id}", headers=other)
    assert response.status_code == 404
    response = await client.post(f"/api/v1/billing/generate/{config_id}", headers=other)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_patch_and_delete_config(
    client: AsyncClient, seed: SimpleNamespace, auth_headers: Dict[str, str]
) -> None:
    response = await client.post(
        "/api/v1/billing-configs",
        json=_config_payload(seed, scope="specific_grades", target_grades=["1"]),
        headers=auth_headers,
    )
    config_id = response.json()["billing_config"]["id"]
    assert len(response.json()["generation"]["created"]) == 1

    response = await client.patch(
        f"/api/v1/billing-configs/{config_id}",
        json={"target_grades": ["1", "2"]},
        headers=auth_headers,
    )
    assert response.status_code == 200
    assert response.json()["billing_config"]["target_grades"] == ["1", "2"]
    assert len(response.json()["generation"]["created"]) == 1

    response = await client.delete(f"/api/v1/billing-configs/{config_id}", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "inactive"

    response = await client.post(f"/api/v1/billing/generate/{config_id}", headers=auth_headers)
    assert response.json()["message"] == "Billing config is inactive"


@pytest.mark.asyncio
async def test_manual_payment_and_invoice(
    client: AsyncClient, seed: SimpleNamespace, auth_headers: Dict[str, str]
) -> None:
    response = await client.post("/api/v1/billing-configs", json=_config_payload(seed), headers=auth_headers)
    created = response.json()["generation"]["created"]
    record_id = next(c["billing_record_id"] for c in created if c["student_id"] == str(seed.beto_id))

    response = await client.post(
        f"/api/v1/payments/manual/{record_id}", json={"amount": "3000"}, headers=auth_headers
    )
    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "completed"
    assert float(body["credit_added"]) == 500.0

    response = await client.get(f"/api/v1/payments/billing/{record_id}", headers=auth_headers)
    payment_id = response.json()[0]["id"]

    response = await client.patch(
        f"/api/v1/payments/{payment_id}/invoice",
        json={"invoice_id": "inv_1", "invoice_number": "F-10"},
        headers=auth_headers,
    )
    assert response.status_code == 200
    assert response.json()["invoice_status"] == "valid"

    response = await client.get("/api/v1/payments/history", headers=auth_headers)
    assert [h["method_label"] for h in response.json()] == ["Cash"]


@pytest.mark.asyncio
async def test_sub_cent_amounts_are_unprocessable(
    client: AsyncClient, seed: SimpleNamespace, auth_headers: Dict[str, str]
) -> None:
    response = await client.post(
        "/api/v1/billing-configs", json=_config_payload(seed, amount="10.005"), headers=auth_headers
    )
    assert response.status_code == 422

    response = await client.post("/api/v1/billing-configs", json=_config_payload(seed), headers=auth_headers)
    config_id = response.json()["billing_config"]["id"]
    response = await client.get(f"/api/v1/billing/config/{config_id}", headers=auth_headers)
    ana_record = next(r for r in response.json() if r["student_id"] == str(seed.ana_id))

    confirm = {
        "payment_intent_ref": "pi_fraction",
        "billing_record_id": ana_record["id"],
        "student_id": str(seed.ana_id),
        "amount": "2499.999",
    }
    response = await client.post("/api/v1/payments/confirm", json=confirm, headers=auth_headers)
    assert response.status_code == 422

    response = await client.get(f"/api/v1/billing/config/{config_id}", headers=auth_headers)
    ana_record = next(r for r in response.json() if r["student_id"] == str(seed.ana_id))
    assert ana_record["status"] == "pending"
