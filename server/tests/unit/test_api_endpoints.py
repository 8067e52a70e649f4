"""Integration tests for API endpoints."""

import pytest

from conftest import auth_headers, create_batch


@pytest.fixture
def trip_payload():
    return {
        "name": "Hampta Pass Trek",
        "slug": "hampta-pass-trek",
        "summary": "Five days across the Pir Panjal",
        "default_price": 12000,
        "origin_prices": {" Delhi ": 12000, "Manali": 9500},
        "advance_per_traveller": 3000,
        "default_capacity": 16,
    }


def booking_payload(trip, batch, **overrides):
    payload = {
        "trip_id": str(trip.id),
        "batch_id": str(batch.id),
        "traveller_count": 1,
        "total_amount": 10000,
        "contact": {"full_name": "Asha Verma", "email": "asha@example.com", "phone": "98765 43210"},
    }
    payload.update(overrides)
    return payload


@pytest.mark.asyncio
async def test_create_trip_endpoint(test_client, admin_headers, trip_payload):
    """Staff can create trips; origins are normalised."""
    response = await test_client.post("/v1/trip/create", json=trip_payload, headers=admin_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["slug"] == "hampta-pass-trek"
    assert data["origin_prices"] == {"delhi": 12000, "manali": 9500}
    assert "id" in data

    response = await test_client.post("/v1/trip/get", json={"trip_id": data["id"]})
    assert response.status_code == 200
    assert response.json()["name"] == "Hampta Pass Trek"


@pytest.mark.asyncio
async def test_create_trip_as_traveller_is_forbidden(test_client, traveller_headers, trip_payload):
    response = await test_client.post("/v1/trip/create", json=trip_payload, headers=traveller_headers)

    assert response.status_code == 403
    assert response.json()["status"] == 403


@pytest.mark.asyncio
async def test_create_trip_missing_auth(test_client, trip_payload):
    """Test trip creation without authentication."""
    response = await test_client.post("/v1/trip/create", json=trip_payload)

    assert response.status_code == 401
    assert response.json()["status"] == 401


@pytest.mark.asyncio
async def test_create_trip_invalid_token(test_client, trip_payload):
    response = await test_client.post(
        "/v1/trip/create",
        json=trip_payload,
        headers={"Authorization": "Bearer not-a-jwt"}
    )

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_create_trip_invalid_data(test_client, admin_headers):
    """Test trip creation with invalid data."""
    invalid_data = {
        "name": "",
        "slug": "Not A Slug",
        "default_price": -5,
    }

    response = await test_client.post("/v1/trip/create", json=invalid_data, headers=admin_headers)

    assert response.status_code == 422
    data = response.json()
    assert data["status"] == 422
    paths = {v["path"] for v in data["violations"]}
    assert {"name", "slug", "default_price"} <= paths


@pytest.mark.asyncio
async def test_list_batches_is_public(test_client, test_session, trip, batch):
    await create_batch(test_session, trip, days_out=-3)

    response = await test_client.post(
        "/v1/batch/list",
        json={"trip_id": str(trip.id), "pickup_location": "Chandigarh"}
    )

    assert response.status_code == 200
    items = response.json()["items"]
    assert len(items) == 1
    assert items[0]["id"] == str(batch.id)
    assert items[0]["available_seats"] == 10
    assert items[0]["pricing"]["base_price"] == 9000
    assert items[0]["pricing"]["effective_price"] == 8550


@pytest.mark.asyncio
async def test_batch_capacity_endpoints(test_client, batch, admin_headers):
    response = await test_client.post(
        "/v1/batch/adjust-capacity",
        json={"batch_id": str(batch.id), "delta": 4, "reason": "Second tempo traveller"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert response.json()["batch_size"] == 14
    assert response.json()["available_seats"] == 14

    response = await test_client.post(
        "/v1/batch/set-status",
        json={"batch_id": str(batch.id), "status": "closed", "reason": "Permit delays"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert response.json()["status"] == "closed"


@pytest.mark.asyncio
async def test_booking_lifecycle_over_http(test_client, trip, batch, traveller_headers, admin_headers):
    """Create, pay, cancel, refund and reconcile a booking through the API."""
    finance_headers = auth_headers("finance-1", ["finance_manager"])

    response = await test_client.post("/v1/booking/create", json=booking_payload(trip, batch), headers=traveller_headers)
    assert response.status_code == 200
    booking = response.json()
    booking_id = booking["id"]
    assert booking["state"] == "initiated"
    assert booking["booking_status"] == "initiated"
    assert booking["advance_amount"] == 2000
    assert booking["seats_held"] == 0

    response = await test_client.post(
        "/v1/payment/upload-proof",
        json={"booking_id": booking_id, "stage": "advance", "asset_reference": "proofs/a.png", "transaction_note": "UPI-1"},
        headers=traveller_headers,
    )
    assert response.status_code == 200
    assert response.json()["payment_status"] == "pending_advance"
    assert response.json()["advance_proof"]["status"] == "uploaded"

    response = await test_client.post(
        "/v1/payment/review",
        json={"booking_id": booking_id, "stage": "advance", "outcome": "approve"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["state"] == "advance_verified"
    assert data["seats_held"] == 1
    assert data["balance_due"] == 8000

    response = await test_client.post("/v1/booking/mine", json={}, headers=traveller_headers)
    assert [b["id"] for b in response.json()["items"]] == [booking_id]

    response = await test_client.post(
        "/v1/booking/cancel",
        json={"booking_id": booking_id, "reason": "Change of plans", "refund_amount": 2000},
        headers=traveller_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["booking"]["state"] == "cancelled"
    assert data["booking"]["seats_held"] == 0
    assert data["refund"]["status"] == "pending"
    refund_id = data["refund"]["id"]

    response = await test_client.post("/v1/refund/process", json={"refund_id": refund_id}, headers=traveller_headers)
    assert response.status_code == 403

    response = await test_client.post("/v1/refund/process", json={"refund_id": refund_id}, headers=finance_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "processed"

    response = await test_client.post("/v1/booking/get", json={"booking_id": booking_id}, headers=traveller_headers)
    assert response.json()["state"] == "refunded"

    response = await test_client.post("/v1/reconciliation/report", json={}, headers=finance_headers)
    assert response.status_code == 200
    report = response.json()
    assert report["bookings_examined"] == 1
    assert report["mismatches"] == []
    assert report["revenue"]["refunds_issued"] == 2000

    response = await test_client.post("/v1/audit/list", json={"entity_id": booking_id}, headers=admin_headers)
    assert response.status_code == 200
    actions = {entry["action"] for entry in response.json()["items"]}
    assert {"booking_created", "payment_proof_uploaded", "payment_verified", "booking_cancelled"} <= actions


@pytest.mark.asyncio
async def test_review_without_proof_returns_conflict(test_client, trip, batch, traveller_headers, admin_headers):
    response = await test_client.post("/v1/booking/create", json=booking_payload(trip, batch), headers=traveller_headers)
    booking_id = response.json()["id"]

    response = await test_client.post(
        "/v1/payment/review",
        json={"booking_id": booking_id, "stage": "advance", "outcome": "approve"},
        headers=admin_headers,
    )

    assert response.status_code == 409
    assert response.json()["code"] == "MISSING_PROOF"


@pytest.mark.asyncio
async def test_reject_requires_reason(test_client, trip, batch, traveller_headers, admin_headers):
    response = await test_client.post("/v1/booking/create", json=booking_payload(trip, batch), headers=traveller_headers)
    booking_id = response.json()["id"]

    response = await test_client.post(
        "/v1/payment/review",
        json={"booking_id": booking_id, "stage": "advance", "outcome": "reject"},
        headers=admin_headers,
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_full_batch_rejects_booking(test_client, test_session, trip, traveller_headers):
    full = await create_batch(test_session, trip, batch_size=4, seats_booked=4)

    response = await test_client.post(
        "/v1/booking/create",
        json=booking_payload(trip, full),
        headers=traveller_headers,
    )

    assert response.status_code == 409
    data = response.json()
    assert data["code"] == "SEATS_UNAVAILABLE"
    assert data["available_seats"] == 0


@pytest.mark.asyncio
async def test_late_cancellation_needs_confirmation(test_client, test_session, trip, traveller_headers, admin_headers):
    soon = await create_batch(test_session, trip, days_out=1)
    response = await test_client.post("/v1/booking/create", json=booking_payload(trip, soon), headers=traveller_headers)
    booking_id = response.json()["id"]

    response = await test_client.post(
        "/v1/booking/cancel",
        json={"booking_id": booking_id, "reason": "Flight cancelled"},
        headers=traveller_headers,
    )
    assert response.status_code == 428
    assert response.json()["code"] == "ELEVATED_CONFIRMATION_REQUIRED"

    response = await test_client.post(
        "/v1/booking/cancel",
        json={"booking_id": booking_id, "reason": "Flight cancelled", "elevated_confirmation": True},
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert response.json()["booking"]["state"] == "cancelled"


@pytest.mark.asyncio
async def test_delete_booking_endpoint(test_client, trip, batch, traveller_headers, admin_headers, super_admin_headers):
    response = await test_client.post("/v1/booking/create", json=booking_payload(trip, batch), headers=traveller_headers)
    booking_id = response.json()["id"]

    response = await test_client.post(
        "/v1/booking/delete",
        json={"booking_id": booking_id, "permanent": True},
        headers=admin_headers,
    )
    assert response.status_code == 403

    response = await test_client.post("/v1/booking/delete", json={"booking_id": booking_id}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["deleted"] == "soft"

    response = await test_client.post(
        "/v1/booking/delete",
        json={"booking_id": booking_id, "permanent": True},
        headers=super_admin_headers,
    )
    assert response.status_code == 200
    assert response.json() == {"booking_id": booking_id, "deleted": "permanent", "seats_released": 0}


@pytest.mark.asyncio
async def test_unknown_booking_is_not_found(test_client, traveller_headers):
    response = await test_client.post(
        "/v1/booking/get",
        json={"booking_id": "7b0c6a52-0000-4000-8000-000000000000"},
        headers=traveller_headers,
    )

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_metrics_endpoint(test_client):
    """Test the Prometheus metrics endpoint."""
    response = await test_client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert "# HELP" in response.text
