"""
Ingestion subsystem exports.
"""

from .accumulator import RecordAccumulator, accumulate_records
from .columns import build_columns, classify
from .engine import PyMuPDFScheduleEngine, ScheduleEngine, ScheduleParser
from .errors import (
    CatalogSyncError,
    ConflictAlreadyExists,
    ExtractionError,
    FetchError,
    NotFoundError,
    ValidationError,
)
from .fetch import CatalogServiceClient, Fetcher, RequestsFetcher
from .job_queue import (
    ChainOutcome,
    InlineJobQueue,
    JobHandle,
    JobQueue,
    PipelineScheduler,
    RQJobQueue,
    WorkerConfig,
    build_worker,
    run_job,
)
from .models import (
    CourseRecord,
    CourseSnapshot,
    DocumentToken,
    HeaderCell,
    HeaderColumn,
    JobKind,
    JobResult,
    JobState,
    PrerequisiteRecord,
    ProgramCourseRecord,
    ProgramRecord,
    ProgramSnapshot,
    QueueName,
    ScheduleDocument,
    ScheduleRecord,
    SessionRecord,
    SweepMetrics,
    Trimester,
)
from .prerequisites import parse_prerequisites
from .reconcile import CatalogReconciler
from .repository import CatalogRepository, InMemoryCatalogRepository, SqlAlchemyCatalogRepository
from .worker import CatalogJobWorker, SessionSweepWorker

__all__ = [
    "CatalogJobWorker",
    "CatalogReconciler",
    "CatalogRepository",
    "CatalogServiceClient",
    "CatalogSyncError",
    "ChainOutcome",
    "ConflictAlreadyExists",
    "CourseRecord",
    "CourseSnapshot",
    "DocumentToken",
    "ExtractionError",
    "FetchError",
    "Fetcher",
    "HeaderCell",
    "HeaderColumn",
    "InMemoryCatalogRepository",
    "InlineJobQueue",
    "JobHandle",
    "JobKind",
    "JobQueue",
    "JobResult",
    "JobState",
    "NotFoundError",
    "PipelineScheduler",
    "PrerequisiteRecord",
    "ProgramCourseRecord",
    "ProgramRecord",
    "ProgramSnapshot",
    "PyMuPDFScheduleEngine",
    "QueueName",
    "RQJobQueue",
    "RecordAccumulator",
    "RequestsFetcher",
    "ScheduleDocument",
    "ScheduleEngine",
    "ScheduleParser",
    "ScheduleRecord",
    "SessionRecord",
    "SessionSweepWorker",
    "SqlAlchemyCatalogRepository",
    "SweepMetrics",
    "Trimester",
    "ValidationError",
    "WorkerConfig",
    "accumulate_records",
    "build_columns",
    "build_worker",
    "classify",
    "parse_prerequisites",
    "run_job",
]
