"""
Catalog synchronization core package.

The ingestion subsystem keeps programs, courses, sessions and prerequisite
links in step with the course-catalog web service and the published
schedule PDFs. It exposes the token classifiers, the schedule column model
and record accumulator, the prerequisite parser, a reconciliation engine
over a pluggable repository, and the queue-driven jobs that chain them.
"""

import logging
from pathlib import Path
from typing import Optional


def setup_logging(level: int = logging.INFO, log_file: Optional[Path] = None) -> None:
    handlers = [logging.StreamHandler()]
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
        force=True,
    )
