"""
Tests for the HTTP API: seeds, previews and the export job lifecycle.
"""

import io
from datetime import datetime, timedelta
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from war_scene.api.jobs import (
    CANCELLED, COMPLETED, FAILED, PENDING, ExportJobStore, ExportLimitReached, run_export,
)
from war_scene.api.main import app, jobs
from war_scene.core.errors import SurfaceUnavailable


class TestBasicEndpoints:
    """Test root, health and seed endpoints."""

    def setup_method(self):
        self.client = TestClient(app)

    def test_root(self):
        response = self.client.get("/")

        assert response.status_code == 200
        assert response.json()["status"] == "running"

    def test_health(self):
        response = self.client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_new_seed(self):
        response = self.client.post("/seeds")

        assert response.status_code == 200
        assert 0 <= response.json()["seed"] <= 0xFFFFFFFF

    def test_new_seed_differs_from_previous(self):
        with patch("war_scene.utils.seeds.time.time", return_value=1.0), \
                patch("war_scene.utils.seeds.random.randint", side_effect=[0, 5]):
            response = self.client.post("/seeds", json={"previous": 1000})

        assert response.json()["seed"] == 1000 ^ 5


class TestPreviewEndpoint:
    """Test preview rendering over HTTP."""

    def setup_method(self):
        self.client = TestClient(app)

    def test_png_preview(self):
        response = self.client.get("/scenes/42/preview", params={"width": 64, "height": 36})

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/png"
        image = Image.open(io.BytesIO(response.content))
        assert image.size == (64, 36)
        assert image.mode == "RGBA"

    def test_pixel_ratio(self):
        response = self.client.get(
            "/scenes/42/preview", params={"width": 40, "height": 20, "pixel_ratio": 2}
        )

        assert response.status_code == 200
        assert Image.open(io.BytesIO(response.content)).size == (80, 40)

    def test_same_seed_same_image(self):
        params = {"width": 32, "height": 18}
        first = self.client.get("/scenes/7/preview", params=params)
        second = self.client.get("/scenes/7/preview", params=params)

        assert first.content == second.content

    @pytest.mark.parametrize("params", [
        {"width": 0, "height": 600},
        {"width": 800, "height": -1},
        {"width": 20000, "height": 20000},
        {"width": 64, "height": 36, "pixel_ratio": 0},
    ])
    def test_rejected(self, params):
        response = self.client.get("/scenes/1/preview", params=params)

        assert response.status_code == 422

    def test_surface_unavailable(self):
        with patch("war_scene.api.main.render_preview", side_effect=SurfaceUnavailable("no memory")):
            response = self.client.get("/scenes/1/preview", params={"width": 64, "height": 36})

        assert response.status_code == 503
        assert response.json()["detail"] == "no memory"


class TestExportEndpoints:
    """Test the export job lifecycle."""

    def setup_method(self):
        self.client = TestClient(app)
        jobs.clear()

    def test_export_lifecycle(self):
        response = self.client.post("/exports", json={"seed": 42, "width": 64, "height": 36})

        assert response.status_code == 202
        job = response.json()
        assert job["seed"] == 42
        assert (job["width"], job["height"]) == (64, 36)

        # TestClient runs background tasks before returning
        status = self.client.get(f"/exports/{job['job_id']}").json()
        assert status["status"] == COMPLETED
        assert status["progress_percent"] == 100
        assert status["current_layer"] == "atmospheric_dust"
        assert status["filename"] == "war-background-42.jpg"

        download = self.client.get(f"/exports/{job['job_id']}/download")
        assert download.status_code == 200
        assert download.headers["content-type"] == "image/jpeg"
        assert download.headers["content-disposition"] == 'attachment; filename="war-background-42.jpg"'
        assert Image.open(io.BytesIO(download.content)).size == (64, 36)

    def test_export_picks_seed(self):
        response = self.client.post("/exports", json={"width": 32, "height": 18})

        assert response.status_code == 202
        assert 0 <= response.json()["seed"] <= 0xFFFFFFFF

    def test_export_seed_wraps(self):
        response = self.client.post("/exports", json={"seed": -1, "width": 32, "height": 18})

        assert response.json()["seed"] == 0xFFFFFFFF

    @pytest.mark.parametrize("body", [
        {"width": 0, "height": 18},
        {"width": 32, "height": -4},
        {"width": 32, "height": 18, "quality": 0},
    ])
    def test_invalid_request(self, body):
        assert self.client.post("/exports", json=body).status_code == 422

    def test_unknown_job(self):
        assert self.client.get("/exports/missing").status_code == 404
        assert self.client.get("/exports/missing/download").status_code == 404
        assert self.client.delete("/exports/missing").status_code == 404

    def test_download_before_completion(self):
        job = jobs.create(seed=1, width=32, height=18, quality=90)

        response = self.client.get(f"/exports/{job.id}/download")

        assert response.status_code == 409

    def test_cancel(self):
        job = jobs.create(seed=1, width=32, height=18, quality=90)

        response = self.client.delete(f"/exports/{job.id}")

        assert response.status_code == 200
        assert response.json()["status"] == PENDING
        assert job.cancel_event.is_set()

        run_export(jobs, job.id)

        assert jobs.get(job.id).status == CANCELLED
        assert jobs.get(job.id).result is None
        assert self.client.get(f"/exports/{job.id}/download").status_code == 409

    def test_cancel_finished_job(self):
        job_id = self.client.post("/exports", json={"seed": 3, "width": 32, "height": 18}).json()["job_id"]

        assert self.client.delete(f"/exports/{job_id}").status_code == 409

    def test_failed_export(self):
        with patch("war_scene.api.jobs.export_scene", side_effect=RuntimeError("out of memory")):
            job_id = self.client.post("/exports", json={"seed": 3, "width": 32, "height": 18}).json()["job_id"]

        status = self.client.get(f"/exports/{job_id}").json()
        assert status["status"] == FAILED
        assert status["error_message"] == "out of memory"

    def test_export_too_large(self):
        response = self.client.post("/exports", json={"width": 16384, "height": 16384})

        assert response.status_code == 422
        assert len(jobs) == 0

    def test_concurrent_export_limit(self, monkeypatch):
        monkeypatch.setattr(jobs, "max_active", 1)
        jobs.create(seed=1, width=32, height=18, quality=90)

        response = self.client.post("/exports", json={"seed": 2, "width": 32, "height": 18})

        assert response.status_code == 429
        assert len(jobs) == 1

    def test_finished_jobs_expire(self, monkeypatch):
        monkeypatch.setattr(jobs, "ttl_seconds", 60)
        job_id = self.client.post("/exports", json={"seed": 3, "width": 32, "height": 18}).json()["job_id"]
        assert self.client.get(f"/exports/{job_id}").status_code == 200

        jobs.update(job_id, completed_at=datetime.utcnow() - timedelta(seconds=120))

        assert self.client.get(f"/exports/{job_id}").status_code == 404
        assert self.client.get(f"/exports/{job_id}/download").status_code == 404
        assert len(jobs) == 0


class TestExportJobStore:
    """Test job retention and the active job limit."""

    def finish(self, store, job, age_seconds):
        store.update(
            job.id, status=COMPLETED, completed_at=datetime.utcnow() - timedelta(seconds=age_seconds)
        )

    def test_prune_removes_only_expired_finished_jobs(self):
        store = ExportJobStore(ttl_seconds=60)
        old = store.create(seed=1, width=8, height=8, quality=90)
        recent = store.create(seed=2, width=8, height=8, quality=90)
        running = store.create(seed=3, width=8, height=8, quality=90)
        self.finish(store, old, 120)
        self.finish(store, recent, 10)
        store.update(running.id, status="running")

        assert store.prune() == [old.id]
        assert store.get(old.id) is None
        assert store.get(recent.id) is recent
        assert store.get(running.id) is running

    def test_create_evicts_expired_jobs(self):
        store = ExportJobStore(ttl_seconds=60)
        for seed in range(5):
            self.finish(store, store.create(seed=seed, width=8, height=8, quality=90), 120)

        store.create(seed=9, width=8, height=8, quality=90)

        assert len(store) == 1

    def test_no_ttl_keeps_jobs(self):
        store = ExportJobStore()
        job = store.create(seed=1, width=8, height=8, quality=90)
        self.finish(store, job, 10**6)

        assert store.prune() == []
        assert store.get(job.id) is job

    def test_active_limit(self):
        store = ExportJobStore(max_active=2)
        first = store.create(seed=1, width=8, height=8, quality=90)
        store.create(seed=2, width=8, height=8, quality=90)

        with pytest.raises(ExportLimitReached):
            store.create(seed=3, width=8, height=8, quality=90)

        self.finish(store, first, 0)
        store.create(seed=3, width=8, height=8, quality=90)
        assert store.active_count() == 2
