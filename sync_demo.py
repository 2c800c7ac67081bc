"""
Example: run the catalog pipeline locally or against Redis.

Usage:
    python3 sync_demo.py parse-pdf --pdf /path/to/horaire.pdf
    python3 sync_demo.py chain --db ./data/catalog_sync.db
    python3 sync_demo.py sweep --db ./data/catalog_sync.db
    python3 sync_demo.py enqueue-chain      # needs a running `worker`
    python3 sync_demo.py worker

`chain` is the command to schedule monthly (e.g. from cron).
"""

import argparse
import json
import logging
from dataclasses import asdict, replace
from pathlib import Path

from catalog_sync import setup_logging
from catalog_sync.ingestion import (
    InlineJobQueue,
    PipelineScheduler,
    PyMuPDFScheduleEngine,
    RQJobQueue,
    ScheduleParser,
    WorkerConfig,
    build_worker,
)


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("command", choices=["parse-pdf", "chain", "sweep", "enqueue-chain", "worker"])
    parser.add_argument("--pdf", type=Path, help="Schedule PDF to parse (parse-pdf)")
    parser.add_argument("--db", type=Path, default=None, help="SQLite DB path (overrides DATABASE_URL)")
    parser.add_argument("--log-file", type=Path, default=None, help="Also write logs to this file")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    setup_logging(logging.DEBUG if args.verbose else logging.INFO, log_file=args.log_file)

    config = WorkerConfig.from_env()
    if args.db:
        args.db.parent.mkdir(parents=True, exist_ok=True)
        config = replace(config, database_url=f"sqlite+pysqlite:///{args.db}")

    if args.command == "parse-pdf":
        if not args.pdf or not args.pdf.exists():
            raise FileNotFoundError(f"PDF not found: {args.pdf}")
        schedule_parser = ScheduleParser(PyMuPDFScheduleEngine(header_fill=config.header_fill))
        records = schedule_parser.parse_bytes(args.pdf.read_bytes())
        print(json.dumps([asdict(r) for r in records], ensure_ascii=False, indent=2))
    elif args.command == "chain":
        outcome = PipelineScheduler(InlineJobQueue(build_worker(config))).run_chain()
        print(f"Chain finished: programs={outcome.programs.value}, courses={outcome.courses.value if outcome.courses else None}")
    elif args.command == "sweep":
        metrics = build_worker(config).sweep_worker.run()
        print(json.dumps(asdict(metrics), indent=2))
    elif args.command == "enqueue-chain":
        outcome = PipelineScheduler(RQJobQueue(config)).run_chain()
        print(f"Chain finished: programs={outcome.programs.value}, courses={outcome.courses.value if outcome.courses else None}")
    elif args.command == "worker":
        RQJobQueue(config).work()


if __name__ == "__main__":
    main()
