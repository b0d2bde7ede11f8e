"""HTTP-level tests for the client, ingest and analysis routes."""

from conftest import CLIENT_ID, build_insight, build_rolling, build_snapshot


def _create_client(api, **fields):
    payload = {"name": "Acme", "target_cpa": 50.0, "target_roas": 2.0, **fields}
    return api.put(f"/clients/{CLIENT_ID}", json=payload)


def _ingest(api, path, items):
    return api.put(
        f"/clients/{CLIENT_ID}/{path}",
        json=[item.model_dump(mode="json") for item in items],
    )


class TestSystem:
    def test_health(self, api):
        response = api.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["service"] == "adlens"
        assert "keys" not in body["engine_config_cache"]


class TestClients:
    def test_create_and_read(self, api):
        assert _create_client(api).status_code == 200
        response = api.get(f"/clients/{CLIENT_ID}")
        assert response.status_code == 200
        assert response.json()["target_cpa"] == 50.0

    def test_update_replaces_fields(self, api):
        _create_client(api)
        _create_client(api, target_cpa=30.0)
        assert api.get(f"/clients/{CLIENT_ID}").json()["target_cpa"] == 30.0

    def test_unknown_client(self, api):
        assert api.get("/clients/nobody").status_code == 404
        assert api.get("/clients/nobody/classifications").status_code == 404
        assert api.get("/clients/nobody/alerts").status_code == 404
        assert api.post("/clients/nobody/classify").status_code == 404


class TestEngineConfig:
    def test_defaults(self, api):
        _create_client(api)
        body = api.get(f"/clients/{CLIENT_ID}/engine-config").json()
        assert body["learning"]["unstable_days"] == 3
        assert body["client_id"] == CLIENT_ID

    def test_partial_update(self, api):
        _create_client(api)
        response = api.put(
            f"/clients/{CLIENT_ID}/engine-config",
            json={"fatigue": {"frequency_threshold": 3}},
        )
        assert response.status_code == 200
        body = api.get(f"/clients/{CLIENT_ID}/engine-config").json()
        assert body["fatigue"]["frequency_threshold"] == 3
        assert body["fatigue"]["cpa_multiplier_threshold"] == 1.25

    def test_invalid_update(self, api):
        _create_client(api)
        response = api.put(
            f"/clients/{CLIENT_ID}/engine-config", json={"learning": {"bogus": 1}}
        )
        assert response.status_code == 422
        assert response.json()["detail"][0]["loc"] == ["learning", "bogus"]

    def test_unknown_client(self, api):
        assert api.get("/clients/nobody/engine-config").status_code == 404


class TestIngest:
    def test_requires_client(self, api):
        assert _ingest(api, "snapshots", [build_snapshot()]).status_code == 404

    def test_counts(self, api):
        _create_client(api)
        response = _ingest(api, "snapshots", [build_snapshot("ad_1"), build_snapshot("ad_2")])
        assert response.status_code == 200
        assert response.json() == {"status": "success", "stored": 2}
        assert _ingest(api, "rolling-metrics", [build_rolling()]).json()["stored"] == 1
        assert _ingest(api, "insights", [build_insight("2026-02-01")]).json()["stored"] == 1

    def test_rejects_malformed_rows(self, api):
        _create_client(api)
        response = api.put(f"/clients/{CLIENT_ID}/snapshots", json=[{"entity_id": "x"}])
        assert response.status_code == 422


class TestAnalysis:
    def test_classify_and_list(self, api):
        _create_client(api)
        _ingest(api, "snapshots", [build_snapshot("ad_1"), build_snapshot("ad_2")])
        _ingest(api, "rolling-metrics", [build_rolling("ad_1"), build_rolling("ad_2")])

        response = api.post(f"/clients/{CLIENT_ID}/classify", json={"date": "2026-02-18"})
        assert response.status_code == 200
        assert response.json()["classified"] == 2

        listing = api.get(f"/clients/{CLIENT_ID}/classifications", params={"level": "ad"})
        assert listing.json()["count"] == 2
        empty = api.get(f"/clients/{CLIENT_ID}/classifications", params={"level": "campaign"})
        assert empty.json()["count"] == 0

    def test_classify_without_body_uses_latest_date(self, api):
        _create_client(api)
        _ingest(api, "snapshots", [build_snapshot("ad_1", date="2026-02-17"), build_snapshot("ad_1")])
        _ingest(api, "rolling-metrics", [build_rolling("ad_1")])
        response = api.post(f"/clients/{CLIENT_ID}/classify")
        assert response.json()["date"] == "2026-02-18"

    def test_classify_without_data(self, api):
        _create_client(api)
        assert api.post(f"/clients/{CLIENT_ID}/classify").status_code == 422

    def test_findings(self, api):
        _create_client(api)
        _ingest(
            api,
            "insights",
            [
                build_insight("2026-02-01", spend=100, purchases=1),
                build_insight("2026-02-02", spend=130, purchases=1),
            ],
        )
        created = api.post(f"/clients/{CLIENT_ID}/findings")
        assert created.status_code == 200
        assert [f["type"] for f in created.json()["findings"]] == ["CPA_SPIKE"]
        listed = api.get(f"/clients/{CLIENT_ID}/findings")
        assert listed.json()["count"] == 1

    def test_findings_without_insights(self, api):
        _create_client(api)
        assert api.post(f"/clients/{CLIENT_ID}/findings").status_code == 422

    def test_creatives(self, api):
        _create_client(api)
        _ingest(api, "rolling-metrics", [build_rolling("ad_1", days_active=2, impressions_7d=500)])
        body = api.post(f"/clients/{CLIENT_ID}/creatives/classify").json()
        assert body["categories"][0]["category"] == "NEW_INSUFFICIENT_DATA"
        assert body["winning_patterns"]["total_winners"] == 0

    def test_alerts(self, api):
        _create_client(api)
        _ingest(
            api,
            "rolling-metrics",
            [build_rolling("ad_1", spend_7d=150.0, purchases_7d=0, conversion_velocity_7d=0)],
        )
        body = api.get(f"/clients/{CLIENT_ID}/alerts").json()
        assert body["count"] == 1
        assert body["alerts"][0]["type"] == "BUDGET_BLEED"
