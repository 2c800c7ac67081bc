from __future__ import annotations

import os

from fastapi import FastAPI

from api.routes.jobs import router as jobs_router
from catalog_sync import setup_logging


def create_app() -> FastAPI:
    app = FastAPI(title="Catalog Sync API", version="0.1.0")

    # Job triggers are development tooling only.
    if os.getenv("ENABLE_JOB_ROUTES", "1") == "1":
        app.include_router(jobs_router)

    @app.get("/healthz")
    def health() -> dict:
        return {"status": "ok"}

    return app


setup_logging()
app = create_app()
