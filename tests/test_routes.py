# ============================================================================
# API ROUTE TESTS
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Tests - HTTP surface over mocked services
# PURPOSE: Verify request validation, status codes and error mapping
# LAST_REVIEWED: 18 OCT 2026
# ============================================================================
"""
API Route Tests

Covers:
1. Scheduler config read / partial update / 400 on validation errors
2. Manual run with and without body, 404 / 409 / 503 mapping
3. Stop, progress and dashboard query validation
4. Channel sync / key validation error mapping
5. Cleanup and engine status
6. 500 when services are not initialized

Run with:
    pytest tests/test_routes.py -v
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from api.routes import router, set_services
from core.errors import (
    ChannelDisabledError,
    ConfigValidationError,
    NotFoundError,
    ProbeFailure,
    QueueFailure,
)


# ============================================================================
# FIXTURES
# ============================================================================

CONFIG_BODY = {
    "id": "default",
    "enabled": True,
    "cron_schedule": "0 0,8,12,16,20 * * *",
    "timezone": "Asia/Shanghai",
    "channel_concurrency": 5,
    "max_global_concurrency": 30,
    "min_delay_ms": 3000,
    "max_delay_ms": 5000,
    "detect_all_channels": True,
    "selected_channel_ids": [],
    "selected_model_ids": [],
    "updated_at": None,
    "version": 1,
    "next_run": None,
}

RUN_RESULT = {
    "run_id": "abc",
    "run_key": "manual:xyz",
    "trigger": "manual",
    "channel_count": 1,
    "model_count": 2,
    "job_count": 3,
    "coalesced": 0,
}


class Services:
    """Mocked service graph handed to set_services."""

    def __init__(self):
        self.config = MagicMock()
        self.config.to_response = MagicMock(return_value=CONFIG_BODY)
        self.config.update = AsyncMock()
        self.config.version = 1

        self.detection = MagicMock()
        self.detection.run_manual = AsyncMock(return_value=RUN_RESULT)
        self.detection.stop = AsyncMock(return_value={"cancelled": 2, "models": ["m1"]})
        self.detection.progress = MagicMock(return_value={
            "seq": 4, "in_flight": ["m1"], "is_running": True,
            "queue": {"pending": 1, "running": 1}, "next_run": None, "last_run": None,
        })

        self.dashboard = MagicMock()
        self.dashboard.summary = AsyncMock(return_value={"summary": {}, "pagination": {}, "channels": []})

        self.sync = MagicMock()
        self.sync.sync_channel = AsyncMock(return_value={"added": 1, "removed": 0, "total": 5})
        self.sync.validate_keys = AsyncMock(return_value={
            "results": [{"key_id": None, "masked_key": "sk-abcde...wxyz", "valid": True,
                         "model_count": 1, "models": ["gpt-4o"], "error": None}],
            "existing_models": ["gpt-4o"],
        })

        self.retention = MagicMock()
        self.retention.cleanup = AsyncMock(return_value={
            "cutoff": "2026-10-11T02:00:00+00:00", "deleted_logs": 4, "deleted_runs": 1,
        })

        self.scheduler = MagicMock()
        self.scheduler.next_run = None
        self.scheduler.get_stats = MagicMock(return_value={"running": True})

        self.broadcaster = MagicMock()
        self.broadcaster.stats = {"seq": 4}

        self.worker_pool = MagicMock()
        self.worker_pool.get_stats = MagicMock(return_value={"running": True})

    def install(self):
        set_services(
            config_service=self.config,
            detection_service=self.detection,
            dashboard_service=self.dashboard,
            sync_service=self.sync,
            retention_service=self.retention,
            scheduler=self.scheduler,
            broadcaster=self.broadcaster,
            worker_pool=self.worker_pool,
        )


@pytest.fixture
def services():
    mocks = Services()
    mocks.install()
    yield mocks
    set_services(None, None, None, None, None, None, None, None)


@pytest.fixture
def client():
    app = FastAPI()
    app.include_router(router, prefix="/api/v1")
    return TestClient(app)


# ============================================================================
# SCHEDULER CONFIG
# ============================================================================

class TestSchedulerConfig:

    def test_get(self, services, client):
        response = client.get("/api/v1/scheduler/config")

        assert response.status_code == 200
        assert response.json()["cron_schedule"] == "0 0,8,12,16,20 * * *"

    def test_partial_update_sends_only_set_fields(self, services, client):
        response = client.put("/api/v1/scheduler/config", json={"channel_concurrency": 3})

        assert response.status_code == 200
        services.config.update.assert_awaited_once_with({"channel_concurrency": 3})

    def test_validation_error_is_400(self, services, client):
        services.config.update.side_effect = ConfigValidationError(
            "Minimum delay cannot be greater than maximum delay", field="min_delay_ms", value=9000
        )

        response = client.put("/api/v1/scheduler/config", json={"min_delay_ms": 9000})

        assert response.status_code == 400
        assert response.json()["detail"]["field"] == "min_delay_ms"


# ============================================================================
# DETECTION
# ============================================================================

class TestDetection:

    def test_run_without_body(self, services, client):
        response = client.post("/api/v1/detection/run")

        assert response.status_code == 202
        assert response.json()["job_count"] == 3
        services.detection.run_manual.assert_awaited_once_with(channel_id=None, model_ids=None)

    def test_run_single_channel(self, services, client):
        response = client.post("/api/v1/detection/run", json={"channel_id": "c1"})

        assert response.status_code == 202
        services.detection.run_manual.assert_awaited_once_with(channel_id="c1", model_ids=None)

    @pytest.mark.parametrize("error,status", [
        (NotFoundError("Channel", "c9"), 404),
        (ChannelDisabledError("c3"), 409),
        (QueueFailure("Failed to persist probe jobs: db down"), 503),
    ])
    def test_run_error_mapping(self, services, client, error, status):
        services.detection.run_manual.side_effect = error

        response = client.post("/api/v1/detection/run", json={"model_ids": ["m1"]})

        assert response.status_code == status

    def test_stop(self, services, client):
        response = client.post("/api/v1/detection/stop", json={"model_ids": ["m1"]})

        assert response.status_code == 200
        assert response.json() == {"cancelled": 2, "models": ["m1"]}

    def test_stop_requires_models(self, services, client):
        response = client.post("/api/v1/detection/stop", json={"model_ids": []})
        assert response.status_code == 422

    def test_stop_queue_failure(self, services, client):
        services.detection.stop.side_effect = QueueFailure("Failed to cancel probe jobs")
        response = client.post("/api/v1/detection/stop", json={"model_ids": ["m1"]})
        assert response.status_code == 503

    def test_progress(self, services, client):
        response = client.get("/api/v1/detection/progress")

        assert response.status_code == 200
        assert response.json()["in_flight"] == ["m1"]
        assert response.json()["seq"] == 4


# ============================================================================
# DASHBOARD
# ============================================================================

class TestDashboard:

    def test_forwards_query(self, services, client):
        response = client.get(
            "/api/v1/dashboard/summary",
            params={"page": 2, "page_size": 5, "search": "gpt", "status_filter": "unhealthy"},
        )

        assert response.status_code == 200
        services.dashboard.summary.assert_awaited_once_with(
            page=2, page_size=5, search="gpt", endpoint_filter="all", status_filter="unhealthy"
        )

    @pytest.mark.parametrize("params", [
        {"status_filter": "broken"},
        {"endpoint_filter": "chat"},
        {"page": 0},
        {"page_size": 101},
    ])
    def test_invalid_query(self, services, client, params):
        response = client.get("/api/v1/dashboard/summary", params=params)
        assert response.status_code == 422


# ============================================================================
# CHANNELS / MAINTENANCE
# ============================================================================

class TestChannels:

    def test_sync(self, services, client):
        response = client.post("/api/v1/channels/c1/sync")

        assert response.status_code == 200
        assert response.json() == {"added": 1, "removed": 0, "total": 5}

    @pytest.mark.parametrize("error,status", [
        (NotFoundError("Channel", "c9"), 404),
        (ProbeFailure("HTTP 401: bad key", status_code=401), 502),
    ])
    def test_sync_error_mapping(self, services, client, error, status):
        services.sync.sync_channel.side_effect = error
        assert client.post("/api/v1/channels/c9/sync").status_code == status

    def test_validate_keys(self, services, client):
        response = client.post("/api/v1/channels/c1/validate-keys")

        assert response.status_code == 200
        assert response.json()["results"][0]["masked_key"] == "sk-abcde...wxyz"


class TestMaintenance:

    def test_cleanup(self, services, client):
        response = client.post("/api/v1/maintenance/cleanup")

        assert response.status_code == 200
        assert response.json()["deleted_logs"] == 4

    def test_engine_status(self, services, client):
        body = client.get("/api/v1/engine/status").json()

        assert body == {
            "worker_pool": {"running": True},
            "scheduler": {"running": True},
            "broadcaster": {"seq": 4},
            "config_version": 1,
        }

    def test_uninitialized_services(self, client):
        set_services(None, None, None, None, None, None, None, None)

        assert client.get("/api/v1/scheduler/config").status_code == 500
        assert client.post("/api/v1/detection/run").status_code == 500
