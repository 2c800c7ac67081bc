from __future__ import annotations

import logging
import os
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Dict, Optional, Protocol, Tuple

from redis import Redis
from rq import Queue, Worker, get_current_job
from rq.job import Job, JobStatus

from .engine import DEFAULT_HEADER_FILL, PyMuPDFScheduleEngine, ScheduleParser
from .fetch import DEFAULT_CATALOG_API_URL, CatalogServiceClient, RequestsFetcher
from .models import JobKind, JobResult, JobState, QueueName
from .reconcile import CatalogReconciler
from .repository import SqlAlchemyCatalogRepository
from .sessions import DEFAULT_HORAIRE_BASE_URL
from .worker import CatalogJobWorker, SessionSweepWorker

logger = logging.getLogger(__name__)


@dataclass
class WorkerConfig:
    database_url: str
    redis_url: str = "redis://localhost:6379/0"
    catalog_api_url: str = DEFAULT_CATALOG_API_URL
    horaire_base_url: str = DEFAULT_HORAIRE_BASE_URL
    fetch_timeout: float = 30.0
    upsert_workers: int = 8
    job_timeout: int = 1800
    header_fill: Tuple[float, float, float] = DEFAULT_HEADER_FILL

    @classmethod
    def from_env(cls) -> "WorkerConfig":
        fill = os.getenv("HEADER_FILL_COLOR")
        return cls(
            database_url=os.getenv("DATABASE_URL", "sqlite+pysqlite:///./data/catalog_sync.db"),
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
            catalog_api_url=os.getenv("CATALOG_API_URL", DEFAULT_CATALOG_API_URL),
            horaire_base_url=os.getenv("HORAIRE_BASE_URL", DEFAULT_HORAIRE_BASE_URL),
            fetch_timeout=float(os.getenv("FETCH_TIMEOUT", "30")),
            upsert_workers=int(os.getenv("UPSERT_WORKERS", "8")),
            job_timeout=int(os.getenv("JOB_TIMEOUT", "1800")),
            header_fill=parse_fill_color(fill) if fill else DEFAULT_HEADER_FILL,
        )


def parse_fill_color(value: str) -> Tuple[float, float, float]:
    """Parse "r,g,b" with components in 0..1 or 0..255."""
    parts = [float(p) for p in value.split(",")]
    if len(parts) != 3:
        raise ValueError(f"Expected three color components, got {value!r}")
    if any(p > 1.0 for p in parts):
        parts = [p / 255.0 for p in parts]
    return parts[0], parts[1], parts[2]


def build_worker(config: WorkerConfig) -> CatalogJobWorker:
    repo = SqlAlchemyCatalogRepository(config.database_url)
    fetcher = RequestsFetcher(timeout=config.fetch_timeout)
    reconciler = CatalogReconciler(repo, max_workers=config.upsert_workers)
    parser = ScheduleParser(PyMuPDFScheduleEngine(header_fill=config.header_fill), fetcher)
    sweep = SessionSweepWorker(repo, parser, reconciler, horaire_base_url=config.horaire_base_url)
    return CatalogJobWorker(
        repository=repo,
        catalog_client=CatalogServiceClient(fetcher, config.catalog_api_url),
        reconciler=reconciler,
        sweep_worker=sweep,
    )


def run_job(kind_name: str, config: WorkerConfig) -> dict:
    """
    RQ task entrypoint. Builds the components from config and executes one
    job. Progress and summary counters go to the job's meta for monitoring.
    """
    kind = JobKind.parse(kind_name)
    job = get_current_job()
    result = build_worker(config).dispatch(kind)
    if job is not None:
        job.meta["progress"] = 100
        job.meta["summary"] = result.summary
        job.meta["supported"] = result.supported
        job.save_meta()
    return result.summary


@dataclass
class JobHandle:
    id: str
    queue: QueueName
    kind: JobKind


class JobQueue(Protocol):
    def enqueue(self, queue: QueueName, kind: JobKind) -> JobHandle:
        ...

    def wait_until_finished(self, handle: JobHandle, timeout: float) -> JobState:
        ...


class RQJobQueue:
    """
    Redis-backed job queue using RQ, one RQ queue per QueueName. Workers are
    started by calling `work()` in a dedicated process.
    """

    def __init__(self, config: WorkerConfig, poll_interval: float = 1.0):
        self.config = config
        self.poll_interval = poll_interval
        self.redis = Redis.from_url(config.redis_url)
        self.queues: Dict[QueueName, Queue] = {
            name: Queue(name.value, connection=self.redis) for name in QueueName
        }

    def enqueue(self, queue: QueueName, kind: JobKind) -> JobHandle:
        job = self.queues[queue].enqueue(
            run_job,
            kind.value,
            self.config,
            job_timeout=self.config.job_timeout,
            retry=None,
        )
        logger.info("Job added to queue %s: %s (%s)", queue.value, job.id, kind.value)
        return JobHandle(id=job.id, queue=queue, kind=kind)

    def wait_until_finished(self, handle: JobHandle, timeout: float) -> JobState:
        job = Job.fetch(handle.id, connection=self.redis)
        deadline = time.monotonic() + timeout
        while True:
            status = job.get_status(refresh=True)
            if status == JobStatus.FINISHED:
                return JobState.FINISHED
            if status in (JobStatus.FAILED, JobStatus.STOPPED, JobStatus.CANCELED):
                return JobState.FAILED
            if time.monotonic() >= deadline:
                return JobState.TIMED_OUT
            time.sleep(self.poll_interval)

    def work(self, burst: bool = False):
        worker = Worker(list(self.queues.values()), connection=self.redis)
        worker.work(burst=burst, with_scheduler=True)


class InlineJobQueue:
    """
    Runs each job in the calling thread as soon as it is enqueued. Meant for
    local runs and tests where no Redis is available.
    """

    def __init__(self, worker: CatalogJobWorker):
        self.worker = worker
        self.states: Dict[str, JobState] = {}
        self.results: Dict[str, JobResult] = {}

    def enqueue(self, queue: QueueName, kind: JobKind) -> JobHandle:
        handle = JobHandle(id=str(uuid.uuid4()), queue=queue, kind=kind)
        try:
            self.results[handle.id] = self.worker.dispatch(kind)
            self.states[handle.id] = JobState.FINISHED
        except Exception:  # noqa: BLE001
            logger.exception("Job %s (%s) failed", handle.id, kind.value)
            self.states[handle.id] = JobState.FAILED
        return handle

    def wait_until_finished(self, handle: JobHandle, timeout: float) -> JobState:
        return self.states.get(handle.id, JobState.QUEUED)


@dataclass
class ChainOutcome:
    programs: JobState
    courses: Optional[JobState] = None

    @property
    def succeeded(self) -> bool:
        return self.programs == JobState.FINISHED and self.courses == JobState.FINISHED


class PipelineScheduler:
    """
    Chains the catalog jobs: programs first, then courses. The courses job is
    only enqueued once the programs job is reported finished; a failed or
    timed-out programs job ends the chain. Failures are logged, never raised,
    and nothing is retried.
    """

    def __init__(self, queue: JobQueue, stage_timeout: float = 3600.0):
        self.queue = queue
        self.stage_timeout = stage_timeout

    def trigger(self) -> threading.Thread:
        thread = threading.Thread(target=self.run_chain, name="catalog-sync-chain", daemon=True)
        thread.start()
        return thread

    def run_chain(self) -> ChainOutcome:
        logger.info("Starting catalog job processing...")
        try:
            programs_state = self._run_stage(QueueName.PROGRAMS, JobKind.PROGRAMS_UPSERT)
        except Exception:  # noqa: BLE001
            logger.exception("Error enqueuing programs job")
            return ChainOutcome(programs=JobState.FAILED)
        if programs_state != JobState.FINISHED:
            return ChainOutcome(programs=programs_state)

        try:
            courses_state = self._run_stage(QueueName.COURSES, JobKind.COURSES_UPSERT)
        except Exception:  # noqa: BLE001
            logger.exception("Error enqueuing courses job")
            courses_state = JobState.FAILED
        return ChainOutcome(programs=programs_state, courses=courses_state)

    def _run_stage(self, queue: QueueName, kind: JobKind) -> JobState:
        handle = self.queue.enqueue(queue, kind)
        state = self.queue.wait_until_finished(handle, self.stage_timeout)
        if state == JobState.FINISHED:
            logger.info("%s job %s finished processing.", queue.value.capitalize(), handle.id)
        else:
            logger.error("Error processing %s job %s: %s", queue.value, handle.id, state.value)
        return state
