"""
Integration tests for the AuditWatch HTTP API.

Tests:
- Health check
- Framework catalog listing
- Local scan submission, listing, status and cancellation
- Agent registration, heartbeats and distributed audits
- Scheduled audits and schedule management
- Error responses carry only {"message"}
- Dashboard overview
"""

import time

import pytest
from fastapi.testclient import TestClient

from auditwatch.config import Settings
from auditwatch.main import create_app
from auditwatch.services.engine import AgentEnvelope, ProbeRegistry

from ..conftest import FakeTransport, GatedProbe, RecordingAlertSink, make_probes

HIPAA_FAILING = {
    "hipaa:164.308(a)(1)": "fail",
    "hipaa:164.312(a)(1)": "fail",
    "hipaa:164.312(e)(1)": "fail",
}


def _app(probes=None, transport=None, sink=None):
    settings = Settings(scheduler_enabled=False, alert_threshold=70)
    return create_app(
        settings,
        probes=probes if probes is not None else make_probes(HIPAA_FAILING),
        transport=transport if transport is not None else FakeTransport({"agent-002": "fail"}),
        alert_sink=sink or RecordingAlertSink(),
    )


@pytest.fixture
def alert_sink() -> RecordingAlertSink:
    return RecordingAlertSink()


@pytest.fixture
def client(alert_sink):
    """Provide FastAPI test client"""
    with TestClient(_app(sink=alert_sink)) as test_client:
        yield test_client


def _register(client, agent_id: str, status: str = "online") -> None:
    resp = client.post("/api/agents", json={"agentId": agent_id, "name": agent_id, "endpoint": f"http://{agent_id}"})
    assert resp.status_code == 201
    if status != "online":
        client.post("/api/agents/heartbeat", json={"agentId": agent_id, "status": status})


def _poll(client, scan_id: str, timeout: float = 5.0) -> dict:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        data = client.get(f"/api/scans/{scan_id}").json()
        if data["status"] != "running":
            return data
        time.sleep(0.02)
    raise AssertionError(f"scan {scan_id} did not settle")


# --- System ---


@pytest.mark.integration
class TestSystem:
    def test_health(self, client) -> None:
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"
        assert resp.json()["version"] == "1.0.0"

    def test_frameworks_listed_in_catalog_order(self, client) -> None:
        resp = client.get("/api/frameworks")
        assert resp.status_code == 200
        frameworks = resp.json()
        assert [f["id"] for f in frameworks][:2] == ["hipaa", "iso27001"]
        hipaa = frameworks[0]
        assert hipaa["controls"] == 18
        assert hipaa["severity"] == "critical"


# --- Local scans ---


@pytest.mark.integration
class TestLocalScanApi:
    def test_hipaa_scan(self, client) -> None:
        resp = client.post(
            "/api/scan",
            json={"target": "https://example.com", "frameworks": ["hipaa"], "depth": "standard"},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "completed"
        assert body["score"] == 83
        assert len(body["findings"]) == 18
        assert body["agentData"] is None
        assert body["summary"]["failed"] == 3
        assert {"controlId", "framework", "status", "severity"} <= set(body["findings"][0])

    def test_low_score_alerts(self, client, alert_sink) -> None:
        body = client.post("/api/scan", json={"target": "https://example.com", "frameworks": ["hipaa"]}).json()
        assert [e.scan_id for e in alert_sink.events] == []
        assert body["score"] >= 70

        body = client.post(
            "/api/scan",
            json={"target": "https://example.com", "frameworks": ["hipaa"], "options": {"alertThreshold": 90}},
        ).json()
        assert [e.scan_id for e in alert_sink.events] == [body["id"]]

    def test_vulnerability_and_penetration_checks(self, client) -> None:
        body = client.post(
            "/api/scan",
            json={
                "target": "https://example.com",
                "frameworks": ["pci"],
                "includeVulnScan": True,
                "includePenetrationTest": True,
            },
        ).json()
        assert len(body["findings"]) == 12 + 3
        assert body["vulnerabilities"] == []

    def test_get_and_list_scans(self, client) -> None:
        scan = client.post("/api/scan", json={"target": "https://example.com", "frameworks": ["pci"]}).json()

        assert client.get(f"/api/scans/{scan['id']}").json() == scan

        listing = client.get("/api/scans", params={"status": "completed"}).json()
        assert listing["total"] == 1
        assert listing["scans"][0]["id"] == scan["id"]
        assert listing["scans"][0]["findings"] == 12

    def test_accept_without_waiting(self, client) -> None:
        resp = client.post("/api/scan", params={"wait": "false"}, json={"target": "https://example.com", "frameworks": ["pci"]})
        assert resp.status_code == 202
        scan_id = resp.json()["id"]

        settled = _poll(client, scan_id)
        assert settled["status"] == "completed"
        status = client.get(f"/api/scans/{scan_id}/status").json()
        assert status["state"] == "completed"
        assert status["unitsCompleted"] == status["unitsTotal"] == 12


# --- Cancellation ---


@pytest.mark.integration
class TestCancellationApi:
    def test_cancel_running_scan(self) -> None:
        probe = GatedProbe(immediate=["pci:PCI-1", "pci:PCI-2"])
        with TestClient(_app(probes=ProbeRegistry(default=probe))) as client:
            scan_id = client.post(
                "/api/scan", params={"wait": "false"}, json={"target": "https://example.com", "frameworks": ["pci"]}
            ).json()["id"]

            cancel = client.post(f"/api/scans/{scan_id}/cancel")
            assert cancel.status_code == 200
            assert cancel.json()["cancelRequested"] is True

            result = _poll(client, scan_id)
            assert result["status"] == "failed"
            assert len(result["findings"]) == 12
            assert "SCAN_CANCELLED" in [e["code"] for e in result["errors"]]

    def test_cancel_unknown_scan(self, client) -> None:
        resp = client.post("/api/scans/missing/cancel")
        assert resp.status_code == 404
        assert resp.json() == {"message": "Scan not found: missing"}


# --- Agents and distributed audits ---


@pytest.mark.integration
class TestAgentsApi:
    def test_register_and_list(self, client) -> None:
        _register(client, "agent-002")
        _register(client, "agent-001")
        agents = client.get("/api/agents").json()
        assert [a["id"] for a in agents] == ["agent-001", "agent-002"]
        assert agents[0]["status"] == "online"
        assert "lastSeen" in agents[0]

    def test_heartbeat_updates_agent(self, client) -> None:
        _register(client, "agent-001")
        resp = client.post("/api/agents/heartbeat", json={"agentId": "agent-001", "status": "scanning", "cpuUsage": 55})
        assert resp.status_code == 200
        assert resp.json()["status"] == "scanning"
        assert client.get("/api/agents/agent-001").json()["cpuUsage"] == 55

    def test_unknown_agent_404(self, client) -> None:
        resp = client.get("/api/agents/agent-404")
        assert resp.status_code == 404
        assert set(resp.json()) == {"message"}

    def test_distributed_audit(self, client) -> None:
        _register(client, "agent-001")
        _register(client, "agent-002")

        resp = client.post(
            "/api/remote-audit",
            json={"agentIds": ["agent-001", "agent-002"], "frameworks": ["pci"], "customScript": "uname -a"},
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "completed"
        assert body["score"] == 50
        assert [a["agentId"] for a in body["agentData"]] == ["agent-001", "agent-002"]
        assert body["agentData"][0]["data"]["script"] == {"stdout": "ran on agent-001"}
        assert body["agentData"][1]["data"]["failed"] == 12

    def test_malformed_agent_payload_completes(self) -> None:
        async def malformed(agent, check, target, custom_script):
            return AgentEnvelope(status="success", data={"result": {"nested": True}}, execution_time=0.1)

        with TestClient(_app(transport=FakeTransport(default=malformed))) as client:
            _register(client, "agent-001")
            resp = client.post("/api/remote-audit", json={"agentIds": ["agent-001"], "frameworks": ["pci"]})

            assert resp.status_code == 200
            body = resp.json()
            assert body["status"] == "completed"
            assert body["score"] == 0
            assert client.get(f"/api/scans/{body['id']}/status").json()["state"] == "completed"

    def test_offline_agent_audit_fails(self, client) -> None:
        _register(client, "agent-004", status="offline")

        body = client.post("/api/remote-audit", json={"agentIds": ["agent-004"], "frameworks": ["hipaa"]}).json()

        assert body["status"] == "failed"
        assert body["agentData"] == []
        assert body["errors"][0]["code"] == "AGENT_UNAVAILABLE"


# --- Schedules ---


@pytest.mark.integration
class TestSchedulesApi:
    def test_scheduled_audit_creates_schedule(self, client) -> None:
        _register(client, "agent-001")

        body = client.post(
            "/api/remote-audit",
            json={"agentIds": ["agent-001"], "frameworks": ["pci"], "scheduled": True, "interval": "weekly"},
        ).json()

        assert body["status"] == "completed"
        schedule_id = body["scheduleId"]
        schedule = client.get(f"/api/schedules/{schedule_id}").json()
        assert schedule["interval"] == "weekly"
        assert schedule["history"] == [body["id"]]
        assert [s["id"] for s in client.get("/api/schedules").json()] == [schedule_id]

    def test_scheduled_without_interval_rejected(self, client) -> None:
        _register(client, "agent-001")
        resp = client.post("/api/remote-audit", json={"agentIds": ["agent-001"], "frameworks": ["pci"], "scheduled": True})
        assert resp.status_code == 400
        assert resp.json() == {"message": "Scheduled scans require an interval"}

    def test_delete_schedule(self, client) -> None:
        _register(client, "agent-001")
        body = client.post(
            "/api/remote-audit",
            json={"agentIds": ["agent-001"], "frameworks": ["pci"], "scheduled": True, "interval": "daily"},
        ).json()

        assert client.delete(f"/api/schedules/{body['scheduleId']}").status_code == 204
        assert client.get(f"/api/schedules/{body['scheduleId']}").status_code == 404


# --- Errors ---


@pytest.mark.integration
class TestErrorResponses:
    def test_unknown_framework_400(self, client) -> None:
        resp = client.post("/api/scan", json={"target": "https://example.com", "frameworks": ["fedramp"]})
        assert resp.status_code == 400
        assert resp.json() == {"message": "Unknown framework: fedramp"}

    def test_missing_frameworks_400(self, client) -> None:
        resp = client.post("/api/scan", json={"target": "https://example.com", "frameworks": []})
        assert resp.status_code == 400
        assert set(resp.json()) == {"message"}

    def test_schema_violation_422(self, client) -> None:
        resp = client.post("/api/scan", json={"target": "https://example.com", "frameworks": ["pci"], "depth": "extreme"})
        assert resp.status_code == 422
        body = resp.json()
        assert set(body) == {"message"}
        assert body["message"].startswith("depth:")

    def test_unknown_scan_404(self, client) -> None:
        resp = client.get("/api/scans/does-not-exist")
        assert resp.status_code == 404
        assert resp.json() == {"message": "Scan not found: does-not-exist"}


# --- Dashboard ---


@pytest.mark.integration
class TestDashboardApi:
    def test_dashboard_counts(self, client) -> None:
        _register(client, "agent-001")
        _register(client, "agent-004", status="offline")
        client.post("/api/scan", json={"target": "https://example.com", "frameworks": ["hipaa"]})
        client.post("/api/remote-audit", json={"agentIds": ["agent-004"], "frameworks": ["hipaa"]})

        stats = client.get("/api/dashboard").json()

        assert stats["agentsOnline"] == 1
        assert stats["agentsTotal"] == 2
        assert stats["scansCompleted"] == 1
        assert stats["scansFailed"] == 1
        assert stats["averageScore"] == 83.0
        assert stats["criticalFindings"] + stats["highFindings"] >= 1
        assert stats["activeSchedules"] == 0
