import httpx
import pytest

from quotedesk.main import create_app

from conftest import make_itinerary


def headers(actor) -> dict[str, str]:
    return {"X-Actor-Id": actor.id, "X-Actor-Name": actor.name, "X-Actor-Role": actor.role.value}


@pytest.fixture
def app(settings, verifier):
    return create_app(settings, verifier=verifier)


@pytest.fixture
async def api(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http


@pytest.fixture
async def quote_id(api, agent):
    payload = {
        "destination": "Dubai",
        "pax_count": 2,
        "currency": "INR",
        "itinerary": [item.model_dump(mode="json") for item in make_itinerary()],
        "pricing_rules": {
            "company_markup_percent": "10",
            "agent_markup_mode": "PERCENTAGE",
            "agent_markup_value": "10",
            "gst_percent": "0",
            "round_off": "NEAREST_1",
        },
    }
    resp = await api.post("/api/quotes", json=payload, headers=headers(agent))
    assert resp.status_code == 201
    return resp.json()["id"]


async def test_health(api):
    resp = await api.get("/api/health")
    assert resp.json() == {"status": "ok", "service": "quotedesk"}


async def test_agent_view_has_no_cost(api, agent, quote_id):
    resp = await api.get(f"/api/quotes/{quote_id}", headers=headers(agent))
    body = resp.json()
    assert resp.status_code == 200
    assert body["status"] == "DRAFT"
    assert "cost" not in body
    assert float(body["display_price"]) == 1200


async def test_unknown_role_is_forbidden(api, quote_id):
    resp = await api.get(
        f"/api/quotes/{quote_id}",
        headers={"X-Actor-Id": "u1", "X-Actor-Role": "SUPERUSER"},
    )
    assert resp.status_code == 403
    assert resp.json()["error"] == "Unauthorized"


async def test_public_viewer_cannot_open_draft(api, quote_id):
    resp = await api.get(f"/api/quotes/{quote_id}")
    assert resp.status_code == 403


async def test_quote_to_booking_flow(api, agent, staff, quote_id):
    resp = await api.post(f"/api/quotes/{quote_id}/submit", json={"row_version": 1}, headers=headers(agent))
    assert resp.json()["status"] == "SUBMITTED"
    version = resp.json()["row_version"]

    resp = await api.post(f"/api/quotes/{quote_id}/submit", json={"row_version": version}, headers=headers(agent))
    assert resp.status_code == 409
    assert resp.json()["error"] == "InvalidStateTransition"

    resp = await api.post(f"/api/quotes/{quote_id}/approve", json={"row_version": version}, headers=headers(staff))
    assert resp.json()["is_locked"] is True
    version = resp.json()["row_version"]

    resp = await api.patch(
        f"/api/quotes/{quote_id}", json={"destination": "Oman", "row_version": version}, headers=headers(agent)
    )
    assert resp.status_code == 409
    assert resp.json()["error"] == "LockedQuoteMutation"

    share_token = (await api.get(f"/api/quotes/{quote_id}", headers=headers(agent))).json()["share_token"]
    assert (await api.get(f"/api/quotes/{quote_id}")).status_code == 403
    public = await api.get(f"/api/quotes/{quote_id}", headers={"X-Share-Token": share_token})
    assert public.status_code == 200
    assert "agent_id" not in public.json()
    assert "share_token" not in public.json()

    travelers = [{"first_name": "Ravi", "last_name": "Kumar"}, {"first_name": "Meera", "last_name": "Kumar"}]
    resp = await api.post(
        f"/api/quotes/{quote_id}/booking",
        json={"travelers": travelers, "row_version": version},
        headers=headers(agent),
    )
    assert resp.status_code == 201
    booking = resp.json()
    assert booking["status"] == "REQUESTED"
    assert float(booking["advance_amount"]) == 360

    resp = await api.post(
        f"/api/bookings/{booking['id']}/payments",
        json={"payment_id": "pay_1", "amount": "360", "mode": "UPI", "row_version": booking["row_version"]},
        headers=headers(staff),
    )
    assert resp.status_code == 200
    assert resp.json()["payment_type"] == "ADVANCE"
    assert resp.json()["booking"]["payment_status"] == "ADVANCE_PAID"


async def test_anonymous_listings_are_empty(api, agent, staff, quote_id):
    await api.post(f"/api/quotes/{quote_id}/submit", json={"row_version": 1}, headers=headers(agent))
    await api.post(f"/api/quotes/{quote_id}/approve", json={"row_version": 2}, headers=headers(staff))
    travelers = [{"first_name": "Ravi", "last_name": "Kumar", "passport_no": "Z1234567"}]
    resp = await api.post(
        f"/api/quotes/{quote_id}/booking", json={"travelers": travelers, "row_version": 3}, headers=headers(agent)
    )
    assert resp.status_code == 201
    booking_id = resp.json()["id"]

    bookings = await api.get("/api/bookings")
    assert bookings.status_code == 200
    assert bookings.json() == []
    assert "Z1234567" not in bookings.text
    assert (await api.get("/api/quotes")).json() == []
    assert (await api.get(f"/api/bookings/{booking_id}")).status_code == 403

    resp = await api.post(
        f"/api/bookings/{booking_id}/payments",
        json={"payment_id": "pay_anon", "amount": "100", "mode": "UPI", "row_version": 1},
    )
    assert resp.status_code == 403


async def test_writes_without_row_version_are_rejected(api, agent, quote_id):
    resp = await api.patch(f"/api/quotes/{quote_id}", json={"destination": "Oman"}, headers=headers(agent))
    assert resp.status_code == 422
    resp = await api.post(f"/api/quotes/{quote_id}/submit", json={}, headers=headers(agent))
    assert resp.status_code == 422
    resp = await api.post(f"/api/quotes/{quote_id}/duplicate", json={}, headers=headers(agent))
    assert resp.status_code == 422

    current = await api.get(f"/api/quotes/{quote_id}", headers=headers(agent))
    assert current.json()["destination"] == "Dubai"
    assert current.json()["row_version"] == 1


async def test_stale_row_version_conflicts(api, agent, quote_id):
    first = await api.patch(
        f"/api/quotes/{quote_id}", json={"destination": "Abu Dhabi", "row_version": 1}, headers=headers(agent)
    )
    assert first.status_code == 200
    second = await api.patch(
        f"/api/quotes/{quote_id}", json={"destination": "Sharjah", "row_version": 1}, headers=headers(agent)
    )
    assert second.status_code == 409
    assert second.json()["error"] == "ConcurrentModification"


async def test_operator_assignment_endpoints(api, agent, staff, operator, quote_id):
    await api.post(f"/api/quotes/{quote_id}/submit", json={"row_version": 1}, headers=headers(agent))
    await api.post(f"/api/quotes/{quote_id}/approve", json={"row_version": 2}, headers=headers(staff))

    resp = await api.post(
        f"/api/quotes/{quote_id}/operator/assign",
        json={"operator_id": operator.id, "operator_name": operator.name,
              "price_mode": "FIXED_PRICE", "price": "700", "row_version": 3},
        headers=headers(staff),
    )
    assert resp.json()["operator"]["status"] == "ASSIGNED"
    version = resp.json()["row_version"]

    resp = await api.post(
        f"/api/quotes/{quote_id}/operator/decline", json={"reason": "", "row_version": version},
        headers=headers(operator),
    )
    assert resp.status_code == 422

    resp = await api.post(
        f"/api/quotes/{quote_id}/operator/accept", json={"row_version": version}, headers=headers(operator)
    )
    body = resp.json()
    assert body["operator"]["status"] == "ACCEPTED"
    assert float(body["display_price"]) == 700
    assert "Priya Travels" not in resp.text


async def test_missing_quote_is_404(api, staff):
    resp = await api.get("/api/quotes/q_nope_v1", headers=headers(staff))
    assert resp.status_code == 404
    assert resp.json()["error"] == "NotFound"


async def test_wallet_visible_to_owner_only(api, agent, other_agent, staff):
    resp = await api.post(
        f"/api/wallets/{agent.id}/top-up", json={"amount": "500", "reference": "NEFT 1"}, headers=headers(staff)
    )
    assert float(resp.json()["wallet_balance"]) == 500

    assert (await api.get(f"/api/wallets/{agent.id}", headers=headers(agent))).status_code == 200
    assert (await api.get(f"/api/wallets/{agent.id}", headers=headers(other_agent))).status_code == 403
