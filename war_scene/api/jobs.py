"""In-memory registry of background export jobs."""

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import structlog

from ..core.errors import GenerationCancelled
from ..render.export import ExportResult, export_scene

logger = structlog.get_logger()

PENDING = "pending"
RUNNING = "running"
COMPLETED = "completed"
FAILED = "failed"
CANCELLED = "cancelled"

FINISHED_STATES = (COMPLETED, FAILED, CANCELLED)


class ExportLimitReached(Exception):
    """Too many exports are pending or running to accept another one."""

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"At most {limit} export(s) may run at once")


@dataclass
class ExportJob:
    """State of one export request."""

    id: str
    seed: int
    width: int
    height: int
    quality: int
    status: str = PENDING
    progress_percent: int = 0
    current_layer: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None
    result: Optional[ExportResult] = None
    cancel_event: threading.Event = field(default_factory=threading.Event)

    @property
    def finished(self) -> bool:
        return self.status in FINISHED_STATES


class ExportJobStore:
    """
    Thread-safe job registry; jobs are updated from worker threads.

    Finished jobs, together with their encoded images, are dropped once
    they are older than ``ttl_seconds``.

    Args:
        ttl_seconds: Retention of finished jobs; ``None`` keeps them forever
        max_active: Limit on pending plus running jobs; ``None`` means no limit
    """

    def __init__(self, ttl_seconds: Optional[int] = None, max_active: Optional[int] = None):
        self.ttl_seconds = ttl_seconds
        self.max_active = max_active
        self._jobs: Dict[str, ExportJob] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def create(self, seed: int, width: int, height: int, quality: int) -> ExportJob:
        """
        Register a new pending job.

        Raises:
            ExportLimitReached: ``max_active`` jobs are already pending or running
        """
        self.prune()
        job = ExportJob(id=str(uuid.uuid4()), seed=seed, width=width, height=height, quality=quality)
        with self._lock:
            if self.max_active is not None and self._active_count() >= self.max_active:
                raise ExportLimitReached(self.max_active)
            self._jobs[job.id] = job
        return job

    def _active_count(self) -> int:
        return sum(1 for job in self._jobs.values() if not job.finished)

    def active_count(self) -> int:
        with self._lock:
            return self._active_count()

    def prune(self, now: Optional[datetime] = None) -> List[str]:
        """Drop finished jobs older than ``ttl_seconds``; returns the removed ids."""
        if self.ttl_seconds is None:
            return []
        cutoff = (now or datetime.utcnow()) - timedelta(seconds=self.ttl_seconds)
        with self._lock:
            expired = [
                job_id for job_id, job in self._jobs.items()
                if job.finished and job.completed_at is not None and job.completed_at <= cutoff
            ]
            for job_id in expired:
                del self._jobs[job_id]
        if expired:
            logger.info("Expired export jobs removed", count=len(expired))
        return expired

    def get(self, job_id: str) -> Optional[ExportJob]:
        self.prune()
        with self._lock:
            return self._jobs.get(job_id)

    def update(self, job_id: str, **changes) -> None:
        with self._lock:
            job = self._jobs[job_id]
            for key, value in changes.items():
                setattr(job, key, value)

    def cancel(self, job_id: str) -> Optional[ExportJob]:
        """Request cancellation; the worker stops at the next layer boundary."""
        job = self.get(job_id)
        if job is not None and not job.finished:
            job.cancel_event.set()
        return job

    def clear(self) -> None:
        with self._lock:
            self._jobs.clear()


def run_export(store: ExportJobStore, job_id: str) -> None:
    """
    Background task rendering and encoding an export.

    Runs in a worker thread. Failures are recorded on the job rather than
    raised, since nobody awaits the task.
    """
    job = store.get(job_id)
    if job is None:
        logger.error("Export job not found", job_id=job_id)
        return

    logger.info("Starting export", job_id=job_id, seed=job.seed)
    store.update(job_id, status=RUNNING)

    def on_progress(layer: str, completed: int, total: int) -> None:
        # Encoding takes the last 10%
        store.update(job_id, current_layer=layer, progress_percent=int(completed / total * 90))

    try:
        result = export_scene(
            job.seed,
            width=job.width,
            height=job.height,
            quality=job.quality,
            progress=on_progress,
            cancel=job.cancel_event,
        )
    except GenerationCancelled as e:
        logger.info("Export cancelled", job_id=job_id, completed_layers=e.completed_layers)
        store.update(job_id, status=CANCELLED, completed_at=datetime.utcnow())
        return
    except Exception as e:
        logger.error("Export failed", job_id=job_id, error=str(e))
        store.update(job_id, status=FAILED, error_message=str(e), completed_at=datetime.utcnow())
        return

    store.update(
        job_id,
        status=COMPLETED,
        progress_percent=100,
        result=result,
        completed_at=datetime.utcnow(),
    )
    logger.info("Export completed", job_id=job_id, filename=result.filename)
