from __future__ import annotations

import os
from functools import lru_cache

from catalog_sync.ingestion import (
    CatalogJobWorker,
    InlineJobQueue,
    JobQueue,
    PipelineScheduler,
    RQJobQueue,
    WorkerConfig,
    build_worker,
)


@lru_cache(maxsize=1)
def get_config() -> WorkerConfig:
    return WorkerConfig.from_env()


@lru_cache(maxsize=1)
def get_worker() -> CatalogJobWorker:
    return build_worker(get_config())


@lru_cache(maxsize=1)
def get_queue() -> JobQueue:
    # JOB_QUEUE=inline runs jobs inside the API process (no Redis needed).
    if os.getenv("JOB_QUEUE", "rq") == "inline":
        return InlineJobQueue(get_worker())
    return RQJobQueue(get_config())


def get_scheduler() -> PipelineScheduler:
    stage_timeout = float(os.getenv("STAGE_TIMEOUT", "3600"))
    return PipelineScheduler(get_queue(), stage_timeout=stage_timeout)
