from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends

from api.dependencies import get_scheduler, get_worker
from catalog_sync.ingestion import CatalogJobWorker, PipelineScheduler

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.post("/run-workers", status_code=202)
def run_workers(scheduler: PipelineScheduler = Depends(get_scheduler)):
    thread = scheduler.trigger()
    return {"status": "started", "thread": thread.name}


@router.post("/sessions", status_code=202)
def run_session_sweep(background_tasks: BackgroundTasks, worker: CatalogJobWorker = Depends(get_worker)):
    background_tasks.add_task(worker.process_sessions)
    return {"status": "started"}
