"""
Background evaluation jobs.

Submissions are queued on a bounded asyncio queue and drained by a fixed pool
of worker tasks. Each job runs as its own task under a timeout so shutdown can
cancel it. Job records live in the key-value store with a retention TTL; a
record is removed (or kept for a short grace period) once its terminal state
has been delivered to a poller.
"""

import asyncio
import logging
import time
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from ..core.errors import InvalidPropertyInput, JobNotFound, JobQueueFull
from ..core.metrics import JOB_DURATION, JOBS_FINISHED
from ..core.store import KeyValueStore
from ..schemas import PropertyInput

logger = logging.getLogger(__name__)

KEY_PREFIX = "evaluation_job:"

Pipeline = Callable[[PropertyInput, Callable[[str], Awaitable[None]]], Awaitable[dict]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


_NEXT = {
    JobStatus.QUEUED: {JobStatus.IN_PROGRESS},
    JobStatus.IN_PROGRESS: {JobStatus.COMPLETED, JobStatus.FAILED},
}
TERMINAL = {JobStatus.COMPLETED, JobStatus.FAILED}


class EvaluationJob(BaseModel):
    job_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    status: JobStatus = JobStatus.QUEUED
    stage: str = "queued"
    created_at: datetime = Field(default_factory=_utcnow)
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    property_data: Optional[Dict[str, Any]] = None
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    def advance(self, status: JobStatus) -> None:
        """queued → in_progress → completed|failed, nothing else."""
        if status not in _NEXT.get(self.status, ()):
            raise ValueError(f"illegal job transition {self.status.value} -> {status.value}")
        self.status = status


class JobOrchestrator:
    def __init__(
        self,
        store: KeyValueStore,
        pipeline: Pipeline,
        workers: int = 4,
        queue_size: int = 100,
        job_timeout: float = 180.0,
        retention_seconds: int = 600,
        delivery_grace_seconds: int = 30,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.pipeline = pipeline
        self.workers = max(1, workers)
        self.queue_size = queue_size
        self.job_timeout = job_timeout
        self.retention_seconds = retention_seconds
        self.delivery_grace_seconds = delivery_grace_seconds
        self.clock = clock
        self._queue: Optional[asyncio.Queue] = None
        self._workers: List[asyncio.Task] = []
        self._active: Dict[str, asyncio.Task] = {}

    # ----- lifecycle -----

    def start(self) -> None:
        """Spawn the worker pool on the running loop. Idempotent."""
        if self._queue is not None:
            return
        self._queue = asyncio.Queue(maxsize=self.queue_size)
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"evaluation-worker-{i}")
            for i in range(self.workers)
        ]
        logger.info("Started %d evaluation workers (queue size %d)", self.workers, self.queue_size)

    async def stop(self) -> None:
        tasks = list(self._active.values()) + self._workers
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._workers = []
        self._active.clear()
        self._queue = None

    async def join(self) -> None:
        """Wait until every queued job has finished."""
        if self._queue is not None:
            await self._queue.join()

    # ----- public API -----

    async def submit(self, prop: PropertyInput) -> str:
        if not prop.location.strip():
            raise InvalidPropertyInput("Location is required")
        self.start()
        if self._queue.full():
            raise JobQueueFull("Evaluation queue is full; try again shortly")

        job = EvaluationJob(property_data=prop.model_dump(), created_at=self.clock())
        await self._save(job)
        try:
            self._queue.put_nowait((job.job_id, prop))
        except asyncio.QueueFull:
            await self.store.delete(KEY_PREFIX + job.job_id)
            raise JobQueueFull("Evaluation queue is full; try again shortly")
        logger.info("Quick evaluation queued for %s", prop.location, extra={"job_id": job.job_id})
        return job.job_id

    async def poll(self, job_id: str) -> dict:
        job = await self._load(job_id)
        if job is None:
            raise JobNotFound("Job not found or expired")

        response: dict = {"status": job.status.value, "stage": job.stage}
        if job.status == JobStatus.COMPLETED and job.result is not None:
            response["result"] = job.result
        elif job.status == JobStatus.FAILED:
            response["error"] = job.error or "Evaluation failed"

        if job.status in TERMINAL:
            await self._mark_delivered(job)
        return response

    # ----- internals -----

    async def _mark_delivered(self, job: EvaluationJob) -> None:
        if self.delivery_grace_seconds <= 0:
            await self.store.delete(KEY_PREFIX + job.job_id)
        elif job.delivered_at is None:
            # keep for retried polls; expiry is not extended by later polls
            job.delivered_at = self.clock()
            await self._save(job, ttl=self.delivery_grace_seconds)

    async def _save(self, job: EvaluationJob, ttl: Optional[int] = None) -> None:
        await self.store.set(KEY_PREFIX + job.job_id, job.model_dump_json(),
                             ttl=ttl or self.retention_seconds)

    async def _load(self, job_id: str) -> Optional[EvaluationJob]:
        raw = await self.store.get(KEY_PREFIX + job_id)
        return EvaluationJob.model_validate_json(raw) if raw else None

    async def _worker(self, index: int) -> None:
        while True:
            job_id, prop = await self._queue.get()
            try:
                task = asyncio.create_task(self._run(job_id, prop))
                self._active[job_id] = task
                await task
            except asyncio.CancelledError:
                raise
            except Exception:
                # _run records failures itself; this only guards the worker loop
                logger.exception("Evaluation worker %d crashed on job", index, extra={"job_id": job_id})
            finally:
                self._active.pop(job_id, None)
                self._queue.task_done()

    async def _run(self, job_id: str, prop: PropertyInput) -> None:
        extra = {"job_id": job_id}
        job = await self._load(job_id)
        if job is None:
            logger.warning("Job record vanished before it started", extra=extra)
            return

        started = time.perf_counter()
        try:
            job.advance(JobStatus.IN_PROGRESS)
            job.stage = "fetching_data"
            await self._save(job)
            logger.info("Starting evaluation for %s", prop.location, extra=extra)

            async def on_stage(stage: str) -> None:
                job.stage = stage
                await self._save(job)

            result = await asyncio.wait_for(self.pipeline(prop, on_stage), self.job_timeout)

            job.advance(JobStatus.COMPLETED)
            job.stage = "completed"
            job.completed_at = self.clock()
            job.result = result
            job.property_data = None
            await self._save(job)
            JOBS_FINISHED.labels(status="completed").inc()
            logger.info("Evaluation completed", extra=extra)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if isinstance(exc, asyncio.TimeoutError):
                message = f"Evaluation timed out after {self.job_timeout:.0f}s"
            else:
                message = str(exc) or type(exc).__name__
            logger.exception("Evaluation failed: %s", message, extra=extra)
            await self._fail(job, message)
        finally:
            JOB_DURATION.observe(time.perf_counter() - started)

    async def _fail(self, job: EvaluationJob, message: str) -> None:
        try:
            if job.status == JobStatus.QUEUED:
                job.advance(JobStatus.IN_PROGRESS)
            if job.status == JobStatus.IN_PROGRESS:
                job.advance(JobStatus.FAILED)
            job.stage = "failed"
            job.error = message
            job.failed_at = self.clock()
            await self._save(job)
            JOBS_FINISHED.labels(status="failed").inc()
        except Exception:
            logger.exception("Could not record job failure", extra={"job_id": job.job_id})
