"""End-to-end tests through the HTTP API over an in-memory SQL event store."""

import csv
import io

import pytest

import lockwarden.dependencies as dep_mod
from lockwarden.config import LockwardenConfig


async def _fail(client, identity, source, times):
    for _ in range(times):
        resp = await client.post("/api/v1/auth/failure", json={"identity": identity, "source": source})
        assert resp.status_code == 200, resp.text
    return resp.json()


class TestAuthenticationFlow:
    @pytest.mark.asyncio
    async def test_clean_check_is_allowed(self, client):
        resp = await client.post("/api/v1/auth/check", json={"identity": "alice", "source": "10.0.0.1"})
        assert resp.status_code == 200
        assert resp.json()["allowed"] is True

    @pytest.mark.asyncio
    async def test_five_failures_lock_the_account(self, client):
        body = await _fail(client, "alice", "10.0.0.1", 5)
        assert body["identity_attempts"] == 5
        assert body["identity_lock"]["lockout_count"] == 1
        assert body["source_lock"] is None

        resp = await client.post("/api/v1/auth/check", json={"identity": "alice", "source": "10.0.0.2"})
        assert resp.status_code == 423
        assert resp.headers["Retry-After"] == "1800"
        data = resp.json()
        assert data["reason"] == "account_lockout"
        assert data["is_permanent"] is False

    @pytest.mark.asyncio
    async def test_twenty_failures_block_the_source(self, client):
        body = await _fail(client, None, "10.0.0.9", 20)
        assert body["source_lock"] is not None

        resp = await client.post("/api/v1/auth/check", json={"identity": "carol", "source": "10.0.0.9"})
        assert resp.status_code == 429
        assert resp.json()["reason"] == "ip_lockout"
        assert resp.headers["Retry-After"] == "3600"

    @pytest.mark.asyncio
    async def test_success_clears_failures(self, client, admin_headers):
        await _fail(client, "dave", "10.0.0.4", 3)
        resp = await client.post("/api/v1/auth/success", json={"identity": "dave", "source": "10.0.0.4"})
        assert resp.json() == {"status": "ok"}

        resp = await client.get("/api/v1/lockouts/user/dave", headers=admin_headers)
        assert resp.json()["failed_attempts"] == 0

    @pytest.mark.asyncio
    async def test_malformed_source_is_422(self, client):
        resp = await client.post("/api/v1/auth/failure", json={"identity": "alice", "source": "nope"})
        assert resp.status_code == 422
        assert resp.json()["field"] == "source"


class TestAdminAccess:
    @pytest.mark.asyncio
    async def test_missing_key_is_401(self, client):
        resp = await client.get("/api/v1/events")
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Not authenticated"

    @pytest.mark.asyncio
    async def test_wrong_key_is_401(self, client):
        resp = await client.get("/api/v1/events", headers={"X-API-Key": "wrong"})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Invalid API key"

    @pytest.mark.asyncio
    async def test_disabled_without_configured_key(self, client, admin_headers):
        dep_mod._config_instance = LockwardenConfig(_env_file=None, log_dir=None, admin_api_key=None)
        resp = await client.get("/api/v1/dashboard", headers=admin_headers)
        assert resp.status_code == 403


class TestLockoutAdministration:
    @pytest.mark.asyncio
    async def test_unlock_restores_access(self, client, admin_headers, protection_engine):
        await _fail(client, "alice", "10.0.0.1", 5)

        resp = await client.get("/api/v1/lockouts/user/alice", headers=admin_headers)
        data = resp.json()
        assert data["locked"] is True
        assert data["lockout"]["attempt_count"] == 5

        resp = await client.post("/api/v1/lockouts/user/alice/unlock", headers=admin_headers)
        assert resp.json()["unlocked"] is True

        resp = await client.post("/api/v1/auth/check", json={"identity": "alice", "source": "10.0.0.1"})
        assert resp.status_code == 200

        resp = await client.get("/api/v1/lockouts/user/alice", headers=admin_headers)
        data = resp.json()
        assert data["locked"] is False
        assert data["lockout_count"] == 1
        assert data["failed_attempts"] == 0

        resp = await client.get(
            "/api/v1/events", params={"type": "lockout_cleared"}, headers=admin_headers
        )
        events = resp.json()["events"]
        assert len(events) == 1
        assert events[0]["source_address"] == "127.0.0.1"

    @pytest.mark.asyncio
    async def test_reset_history(self, client, admin_headers):
        await _fail(client, "erin", "10.0.0.5", 5)
        resp = await client.post("/api/v1/lockouts/user/erin/reset-history", headers=admin_headers)
        assert resp.json()["history_reset"] is True

        resp = await client.get("/api/v1/lockouts/user/erin", headers=admin_headers)
        assert resp.json()["lockout_count"] == 0
        assert resp.json()["locked"] is True

    @pytest.mark.asyncio
    async def test_unknown_kind_is_422(self, client, admin_headers):
        resp = await client.post("/api/v1/lockouts/device/x/unlock", headers=admin_headers)
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_deactivated_accounts_empty(self, client, admin_headers):
        resp = await client.get("/api/v1/accounts/deactivated", headers=admin_headers)
        assert resp.json() == {"count": 0, "accounts": []}


class TestEvents:
    @pytest.mark.asyncio
    async def test_record_and_query(self, client, admin_headers):
        resp = await client.post(
            "/api/v1/events",
            json={
                "type": "file_integrity_violation",
                "severity": "high",
                "description": "Checksum mismatch on /etc/passwd",
                "source": "10.0.0.7",
                "metadata": {"path": "/etc/passwd"},
            },
        )
        assert resp.status_code == 202
        assert resp.json()["recorded"] is True

        resp = await client.get(
            "/api/v1/events", params={"type": "file_integrity_violation"}, headers=admin_headers
        )
        data = resp.json()
        assert data["count"] == 1
        assert data["events"][0]["metadata"] == {"path": "/etc/passwd"}
        assert data["events"][0]["severity"] == "high"

    @pytest.mark.asyncio
    async def test_invalid_event_rejected(self, client):
        resp = await client.post(
            "/api/v1/events",
            json={"type": "Bad Type", "severity": "high", "description": "x", "source": "10.0.0.7"},
        )
        assert resp.status_code == 422
        assert resp.json()["field"] == "type"

    @pytest.mark.asyncio
    async def test_burst_raises_potential_attack(self, client, admin_headers):
        for _ in range(10):
            await client.post(
                "/api/v1/events",
                json={"type": "port_scan", "severity": "low", "description": "scan", "source": "10.0.0.66"},
            )
        resp = await client.get(
            "/api/v1/events", params={"type": "potential_attack"}, headers=admin_headers
        )
        events = resp.json()["events"]
        assert len(events) == 1
        assert events[0]["description"] == "Potential attack detected from IP: 10.0.0.66"

    @pytest.mark.asyncio
    async def test_csv_export(self, client, admin_headers):
        await _fail(client, "alice", "10.0.0.1", 2)
        resp = await client.get("/api/v1/events/export", params={"format": "csv"}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/csv")
        assert "security_events_20260101_120000.csv" in resp.headers["content-disposition"]
        rows = list(csv.DictReader(io.StringIO(resp.text)))
        assert len(rows) == 2
        assert {row["type"] for row in rows} == {"failed_login"}

    @pytest.mark.asyncio
    async def test_unknown_export_format(self, client, admin_headers):
        resp = await client.get("/api/v1/events/export", params={"format": "xml"}, headers=admin_headers)
        assert resp.status_code == 422


class TestDashboard:
    @pytest.mark.asyncio
    async def test_dashboard_snapshot(self, client, admin_headers):
        await _fail(client, "alice", "10.0.0.1", 5)
        resp = await client.get("/api/v1/dashboard", headers=admin_headers)
        assert resp.status_code == 200
        data = resp.json()
        assert data["health_status"] == "healthy"
        assert data["event_counts"]["failed_login"] == {"medium": 4, "high": 1}
        assert data["event_counts"]["account_lockout"] == {"high": 1}
        assert data["top_sources"][0] == {"source_address": "10.0.0.1", "count": 6}

    @pytest.mark.asyncio
    async def test_statistics(self, client, admin_headers):
        await _fail(client, "alice", "10.0.0.1", 1)
        resp = await client.get("/api/v1/dashboard/statistics", params={"period": "7d"}, headers=admin_headers)
        assert resp.json()["total_events"] == 1

        resp = await client.get("/api/v1/dashboard/statistics", params={"period": "1y"}, headers=admin_headers)
        assert resp.status_code == 422


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["name"] == "LOCKWARDEN"
        assert data["status"] == "operational"
        assert data["engine"]["degraded"] is False
