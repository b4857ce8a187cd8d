"""
HTTP layer: FastAPI TestClient against the in-memory database.
"""
import itertools
import json
import uuid

import pytest
from fastapi.testclient import TestClient

from factora.api import deps
from factora.core.config import get_settings
from factora.core.deadline import Deadline
from factora.main import app
from factora.services import scoring_service

ACTOR_HEADERS = {"X-Actor-Id": "alice@factora"}


@pytest.fixture
def client(session_factory, settings, simple_model):
    active = settings.model_copy(update={"active_model_id": simple_model})
    app.dependency_overrides[deps.session_factory] = lambda: session_factory
    app.dependency_overrides[deps.snapshot_session_factory] = lambda: session_factory
    app.dependency_overrides[get_settings] = lambda: active
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


class TestScoring:

    def test_evaluate_defaults_to_active_model(self, client):
        resp = client.post("/v1/scores/evaluate", json={
            "factor_values": {"tx_6m_count": 12000, "days_since_last_tx": 5},
        })
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert body["score"] == pytest.approx(599.5)
        assert body["band"]["band"] == "C"
        assert body["unclassified_factors"] == []

    def test_empty_mapping(self, client):
        body = client.post("/v1/scores/evaluate", json={"factor_values": {}}).json()
        assert body["score"] == 0
        assert body["band"]["band"] == "D"
        assert body["unused_factors"] == ["days_since_last_tx", "tx_6m_count"]

    def test_unknown_model_is_discriminated_error(self, client):
        resp = client.post("/v1/scores/evaluate", json={"model_id": str(uuid.uuid4()), "factor_values": {}})
        assert resp.status_code == 404
        body = resp.json()
        assert body["status"] == "error"
        assert body["error"] == "UnknownModel"
        assert "score" not in body

    def test_timeout_is_discriminated_error(self, client, monkeypatch):
        def _expired(timeout_ms, settings):
            ticks = itertools.chain([0.0], itertools.repeat(5.0))
            return Deadline(1, "evaluation", clock=lambda: next(ticks))

        monkeypatch.setattr(scoring_service, "_deadline", _expired)

        resp = client.post("/v1/scores/evaluate", json={"factor_values": {"tx_6m_count": 1}, "timeout_ms": 5})
        assert resp.status_code == 504
        assert resp.json()["error"] == "Timeout"
        assert resp.json()["retryable"] is True

    def test_boolean_and_numeric_values_accepted(self, client):
        resp = client.post("/v1/scores/evaluate", json={"factor_values": {"tx_6m_count": True}})
        assert resp.status_code == 200
        assert resp.json()["score"] == pytest.approx(0.05)

    def test_simulate(self, client):
        resp = client.post("/v1/scores/simulate", json={
            "base_values": {"tx_6m_count": 12000},
            "overrides": {"tx_6m_count": 16000},
        })
        assert resp.status_code == 200
        body = resp.json()
        assert body["band_changed"] is True
        assert body["score_delta"] == pytest.approx(200.0)

    def test_batch_simulation(self, client, simple_model):
        resp = client.post("/v1/scores/simulate/batch", json={
            "base_values": {"tx_6m_count": 12000},
            "scenarios": {"growth": {"tx_6m_count": 16000}, "flat": {}},
        })
        assert resp.status_code == 200
        body = resp.json()
        assert body["model_id"] == str(simple_model)
        assert body["scenarios_processed"] == 2
        assert body["results"]["growth"]["simulation"]["band_changed"] is True
        assert body["results"]["flat"]["simulation"]["score_delta"] == 0

    def test_batch_needs_at_least_one_scenario(self, client):
        resp = client.post("/v1/scores/simulate/batch", json={"base_values": {}, "scenarios": {}})
        assert resp.status_code == 422

    def test_batch_against_unknown_model(self, client):
        resp = client.post("/v1/scores/simulate/batch", json={
            "model_id": str(uuid.uuid4()), "scenarios": {"a": {}},
        })
        assert resp.status_code == 404
        assert resp.json()["error"] == "UnknownModel"


class TestRegistry:

    def test_list_and_detail(self, client, simple_model):
        models = client.get("/v1/models").json()
        assert [m["id"] for m in models] == [str(simple_model)]
        detail = client.get(f"/v1/models/{simple_model}").json()
        assert [b["band"] for b in detail["bands"]] == ["D", "C", "B", "A"]
        assert len(detail["factors"]) == 2

    def test_detail_reflects_latest_committed_registry(self, client, simple_model):
        client.put(f"/v1/models/{simple_model}/factors/micro_active", json={"weight": 0.09}, headers=ACTOR_HEADERS)
        detail = client.get(f"/v1/models/{simple_model}").json()
        assert {f["factor_key"] for f in detail["factors"]} == {"tx_6m_count", "days_since_last_tx", "micro_active"}
        assert detail["model"]["id"] == str(simple_model)

    def test_detail_of_unknown_model_is_404(self, client):
        resp = client.get(f"/v1/models/{uuid.uuid4()}")
        assert resp.status_code == 404
        assert resp.json()["error"] == "UnknownModel"

    def test_writes_require_actor(self, client, simple_model):
        resp = client.put(f"/v1/models/{simple_model}/factors/micro_active", json={"weight": 0.09})
        assert resp.status_code == 400

    def test_factor_upsert_records_actor_and_client(self, client, simple_model):
        resp = client.put(
            f"/v1/models/{simple_model}/factors/micro_active", json={"weight": 0.09}, headers=ACTOR_HEADERS,
        )
        assert resp.status_code == 200
        assert resp.json()["weight"] == 0.09

        page = client.get("/v1/audit", params={"table_name": "score_factors", "changed_by": "alice@factora"}).json()
        assert len(page["entries"]) == 1
        assert page["entries"][0]["operation"] == "INSERT"
        assert "testclient" in page["entries"][0]["client_info"]

    def test_inverted_band_is_422(self, client, simple_model):
        resp = client.put(
            f"/v1/models/{simple_model}/bands/X",
            json={"min_score": 900, "max_score": 100, "recommendation": "Broken"},
            headers=ACTOR_HEADERS,
        )
        assert resp.status_code == 422
        assert resp.json()["error"] == "InvalidRange"

    def test_unknown_model_write_is_404(self, client):
        resp = client.put(f"/v1/models/{uuid.uuid4()}/factors/x", json={"weight": 1}, headers=ACTOR_HEADERS)
        assert resp.status_code == 404
        assert resp.json()["error"] == "UnknownModel"

    def test_create_model_and_remove_factor(self, client):
        created = client.post("/v1/models", json={"name": "Pilot", "version": "0.1"}, headers=ACTOR_HEADERS)
        assert created.status_code == 201
        model_id = created.json()["id"]

        client.put(f"/v1/models/{model_id}/factors/tx_6m_sum", json={"weight": 0.2}, headers=ACTOR_HEADERS)
        assert client.delete(f"/v1/models/{model_id}/factors/tx_6m_sum", headers=ACTOR_HEADERS).status_code == 204
        assert client.delete(f"/v1/models/{model_id}/factors/tx_6m_sum", headers=ACTOR_HEADERS).status_code == 404


class TestAudit:

    def test_paging_with_cursor(self, client):
        total = client.get("/v1/audit/summary").json()["total_entries"]
        seen, cursor = 0, None
        while True:
            params = {"limit": 3}
            if cursor:
                params["cursor"] = cursor
            page = client.get("/v1/audit", params=params).json()
            seen += len(page["entries"])
            cursor = page["next_cursor"]
            if cursor is None:
                break
        assert seen == total

    def test_malformed_cursor_is_400(self, client):
        assert client.get("/v1/audit", params={"cursor": "###"}).status_code == 400

    def test_invalid_operation_filter_is_rejected(self, client):
        assert client.get("/v1/audit", params={"operation": "UPSERT"}).status_code == 422

    def test_stream_is_ndjson(self, client):
        total = client.get("/v1/audit/summary").json()["total_entries"]
        resp = client.get("/v1/audit/stream", params={"table_name": "risk_bands"})
        assert resp.headers["content-type"].startswith("application/x-ndjson")
        lines = [json.loads(line) for line in resp.text.splitlines() if line]
        assert len(lines) == 4
        assert all(line["table_name"] == "risk_bands" for line in lines)
        assert total > len(lines)

    def test_single_entry(self, client):
        first = client.get("/v1/audit", params={"limit": 1}).json()["entries"][0]
        assert client.get(f"/v1/audit/{first['id']}").json() == first
        assert client.get("/v1/audit/999999").status_code == 404


class TestPersonas:

    def test_persona_score_flow(self, client, simple_model):
        persona = client.post("/v1/personas", json={"display_name": "Ana"}, headers=ACTOR_HEADERS)
        assert persona.status_code == 201
        pid = persona.json()["id"]

        tx = client.post(
            f"/v1/personas/{pid}/transactions",
            json={"amount": 120.5, "category": "remittance", "occurred_at": "2026-09-01T10:00:00Z"},
            headers=ACTOR_HEADERS,
        )
        assert tx.status_code == 201
        assert len(client.get(f"/v1/personas/{pid}/transactions").json()) == 1

        scored = client.post(
            f"/v1/personas/{pid}/scores",
            json={"factor_values": {"tx_6m_count": 12000, "days_since_last_tx": 5}},
            headers=ACTOR_HEADERS,
        )
        assert scored.status_code == 201
        assert scored.json()["record"]["band"] == "C"
        assert scored.json()["result"]["model_id"] == str(simple_model)

        history = client.get(f"/v1/personas/{pid}/scores").json()
        assert len(history) == 1
        trend = client.get(f"/v1/personas/{pid}/scores/trend", params={"months": 1}).json()
        assert trend["points"][0]["count"] == 1

    def test_unknown_persona_is_404(self, client):
        resp = client.get(f"/v1/personas/{uuid.uuid4()}")
        assert resp.status_code == 404
        assert resp.json()["error"] == "UnknownPersona"

    def test_duplicate_external_ref_is_409(self, client):
        body = {"display_name": "Dup", "external_ref": "EXT-9"}
        assert client.post("/v1/personas", json=body, headers=ACTOR_HEADERS).status_code == 201
        assert client.post("/v1/personas", json=body, headers=ACTOR_HEADERS).status_code == 409


class TestOperational:

    def test_verification_endpoint(self, client):
        resp = client.get("/v1/verification")
        assert resp.status_code == 200
        assert resp.json()["status"] == "pass"

    def test_health(self, client):
        assert client.get("/v1/health").json()["status"] == "ok"

    def test_metrics_exposed(self, client):
        client.post("/v1/scores/evaluate", json={"factor_values": {}})
        resp = client.get("/metrics/")
        assert resp.status_code == 200
        assert "factora_score_evaluations_total" in resp.text
