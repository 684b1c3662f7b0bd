"""Integration tests for the fraud API routes."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from src.api.dependencies import get_risk_engine
from src.main import app

pytestmark = pytest.mark.integration

ADMIN = {"X-User-Id": "3", "X-User-Role": "ADMIN"}


@pytest_asyncio.fixture
async def client(engine):
    app.dependency_overrides[get_risk_engine] = lambda: engine
    try:
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
    finally:
        app.dependency_overrides.clear()


class TestEvaluateRoute:
    @pytest.mark.asyncio
    async def test_evaluate_clean(self, client):
        response = await client.post(
            "/api/v1/fraud/evaluate", json={"user_id": 1, "activity_type": "LOGIN"}
        )
        assert response.status_code == 200
        data = response.json()
        assert data == {
            "is_risky": False,
            "risk_score": 0,
            "risk_level": "none",
            "should_block": False,
            "alerts": [],
        }

    @pytest.mark.asyncio
    async def test_evaluate_blacklisted(self, client):
        await client.post(
            "/api/v1/fraud/blacklist",
            json={"entity_type": "IP", "entity_value": "6.6.6.6", "reason": "abuse"},
            headers=ADMIN,
        )
        response = await client.post(
            "/api/v1/fraud/evaluate",
            json={
                "user_id": 1,
                "activity_type": "PAYMENT",
                "ip_address": "6.6.6.6",
                "device_fingerprint": "fp-1",
            },
        )
        data = response.json()
        assert data["risk_score"] == 65
        assert data["is_risky"] is True
        assert data["alerts"] == ["IP address is blacklisted", "New device detected"]

    @pytest.mark.asyncio
    async def test_evaluate_rejects_unknown_activity(self, client):
        response = await client.post(
            "/api/v1/fraud/evaluate", json={"user_id": 1, "activity_type": "TELEPORT"}
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_evaluation_failure_is_503(self, client, activity_log):
        async def broken(*args, **kwargs):
            raise ConnectionError("db down")

        activity_log.count_flagged_since = broken
        response = await client.post(
            "/api/v1/fraud/evaluate", json={"user_id": 1, "activity_type": "LOGIN"}
        )
        assert response.status_code == 503
        data = response.json()
        assert data["error"] == "EvaluationError"
        assert "db down" not in data["message"]


class TestBlacklistRoutes:
    @pytest.mark.asyncio
    async def test_add_list_deactivate(self, client):
        response = await client.post(
            "/api/v1/fraud/blacklist",
            json={
                "entity_type": "DEVICE",
                "entity_value": "fp-bad",
                "reason": "chargebacks",
            },
            headers=ADMIN,
        )
        assert response.status_code == 201
        entry_id = response.json()["id"]
        assert response.json()["added_by"] == 3

        listed = (await client.get("/api/v1/fraud/blacklist", headers=ADMIN)).json()
        assert [e["entity_value"] for e in listed["items"]] == ["fp-bad"]

        response = await client.post(
            f"/api/v1/fraud/blacklist/{entry_id}/deactivate", headers=ADMIN
        )
        assert response.status_code == 200
        assert response.json()["is_active"] is False

        listed = (await client.get("/api/v1/fraud/blacklist", headers=ADMIN)).json()
        assert listed["items"] == []

    @pytest.mark.asyncio
    async def test_deactivate_missing(self, client):
        response = await client.post("/api/v1/fraud/blacklist/999/deactivate", headers=ADMIN)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_added_by_comes_from_caller(self, client):
        response = await client.post(
            "/api/v1/fraud/blacklist",
            json={"entity_type": "IP", "entity_value": "1.1.1.1", "reason": "spam", "added_by": 99},
            headers=ADMIN,
        )
        assert response.status_code == 201
        assert response.json()["added_by"] == 3

    @pytest.mark.asyncio
    async def test_anonymous_caller_rejected(self, client, blacklist):
        response = await client.post(
            "/api/v1/fraud/blacklist",
            json={"entity_type": "IP", "entity_value": "1.1.1.1", "reason": "spam"},
        )
        assert response.status_code == 401
        assert blacklist.entries == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "method,path",
        [
            ("get", "/api/v1/fraud/blacklist"),
            ("post", "/api/v1/fraud/blacklist/1/deactivate"),
            ("get", "/api/v1/fraud/alerts"),
        ],
    )
    async def test_admin_routes_reject_anonymous(self, client, method, path):
        response = await client.request(method.upper(), path)
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_non_admin_caller_forbidden(self, client, blacklist):
        response = await client.post(
            "/api/v1/fraud/blacklist",
            json={"entity_type": "IP", "entity_value": "1.1.1.1", "reason": "spam"},
            headers={"X-User-Id": "5", "X-User-Role": "user"},
        )
        assert response.status_code == 403
        assert response.json()["error"] == "forbidden"
        assert blacklist.entries == []

    @pytest.mark.asyncio
    async def test_add_requires_reason(self, client):
        response = await client.post(
            "/api/v1/fraud/blacklist",
            json={"entity_type": "IP", "entity_value": "1.1.1.1", "reason": ""},
            headers=ADMIN,
        )
        assert response.status_code == 422


class TestAlertRoutes:
    @pytest.mark.asyncio
    async def test_payment_mismatch_and_resolve(self, client):
        response = await client.post(
            "/api/v1/fraud/payment-mismatch",
            json={
                "user_id": 4,
                "expected_amount": 100.0,
                "actual_amount": 100.02,
                "payment_method": "CARD",
            },
        )
        data = response.json()
        assert data["mismatch"] is True
        alert_id = data["alert"]["id"]
        assert data["alert"]["severity"] == "HIGH"

        alerts = (
            await client.get("/api/v1/fraud/alerts", params={"resolved": False}, headers=ADMIN)
        ).json()
        assert alerts["total"] == 1

        body = {"resolution": "customer refunded"}
        path = f"/api/v1/fraud/alerts/{alert_id}/resolve"
        response = await client.post(path, json=body, headers=ADMIN)
        assert response.status_code == 200
        assert response.json()["resolved"] is True
        assert response.json()["resolved_by"] == 3

        response = await client.post(path, json=body, headers=ADMIN)
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_resolve_requires_admin_role(self, client, alert_store):
        alert = (
            await client.post(
                "/api/v1/fraud/payment-mismatch",
                json={
                    "user_id": 4,
                    "expected_amount": 10.0,
                    "actual_amount": 20.0,
                    "payment_method": "CARD",
                },
            )
        ).json()["alert"]

        response = await client.post(
            f"/api/v1/fraud/alerts/{alert['id']}/resolve",
            json={"resolved_by": 4, "resolution": "self-approved"},
            headers={"X-User-Id": "4", "X-User-Role": "user"},
        )
        assert response.status_code == 403
        assert alert_store.alerts[0].resolved is False

    @pytest.mark.asyncio
    async def test_payment_match(self, client):
        response = await client.post(
            "/api/v1/fraud/payment-mismatch",
            json={
                "user_id": 4,
                "expected_amount": 100.0,
                "actual_amount": 100.0,
                "payment_method": "CARD",
            },
        )
        assert response.json() == {"mismatch": False, "alert": None}

    @pytest.mark.asyncio
    async def test_resolve_unknown_alert(self, client):
        response = await client.post(
            "/api/v1/fraud/alerts/missing/resolve",
            json={"resolution": "n/a"},
            headers=ADMIN,
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_list_limit_bounds(self, client):
        response = await client.get("/api/v1/fraud/alerts", params={"limit": 0}, headers=ADMIN)
        assert response.status_code == 422


class TestPolicyRoute:
    @pytest.mark.asyncio
    async def test_policy(self, client):
        data = (await client.get("/api/v1/fraud/policy")).json()
        assert data["thresholds"]["critical"] == 95
        assert data["velocity"]["limits"]["WITHDRAWAL"] == {
            "max_count": 3,
            "window_minutes": 120,
        }
        assert data["detector_failure_policy"] == "propagate"
