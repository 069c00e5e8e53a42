"""
Integration tests: the plan preview API over the in-process ASGI app.
"""


class TestGetPlan:
    async def test_tiered_plan_for_qa(self, client):
        resp = await client.get("/api/v1/plans/qa")
        assert resp.status_code == 200
        body = resp.json()
        assert body["environment"] == "qa"
        assert body["warnings"] == []
        names = [r["name"] for r in body["resources"]]
        assert names[0] == "VpcLookUp"
        assert names[-1] == "CapacityProviderBinding"

    async def test_open_model_requires_opt_in(self, client):
        resp = await client.get("/api/v1/plans/prod", params={"model": "open"})
        assert resp.status_code == 422
        assert resp.json()["error"] == "PolicyValidationError"

    async def test_open_model_with_opt_in_returns_warnings(self, client):
        resp = await client.get(
            "/api/v1/plans/prod", params={"model": "open", "allow_legacy_open": "true"}
        )
        assert resp.status_code == 200
        assert len(resp.json()["warnings"]) == 2

    async def test_unknown_environment_returns_404(self, client):
        resp = await client.get("/api/v1/plans/staging")
        assert resp.status_code == 404

    async def test_invalid_model_returns_422(self, client):
        resp = await client.get("/api/v1/plans/qa", params={"model": "wide-open"})
        assert resp.status_code == 422

    async def test_plans_are_stable_across_requests(self, client):
        first = await client.get("/api/v1/plans/dev")
        second = await client.get("/api/v1/plans/dev")
        assert first.json() == second.json()

    async def test_correlation_id_is_echoed(self, client):
        resp = await client.get("/api/v1/plans/qa", headers={"X-Correlation-ID": "abc-123"})
        assert resp.headers["X-Correlation-ID"] == "abc-123"


class TestEnvironments:
    async def test_lists_registered_environments(self, client):
        resp = await client.get("/api/v1/environments")
        assert resp.status_code == 200
        body = resp.json()
        assert [e["name"] for e in body] == ["dev", "qa", "prod"]
        assert body[1]["network_id"] == "ohme-assessment-qa-vpc"
        assert body[1]["policy"]["inbound_port"] == "single-port"


class TestHealth:
    async def test_health_ok(self, client):
        resp = await client.get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"
        assert resp.json()["failed"] == {}
