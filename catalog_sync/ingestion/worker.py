from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Optional

from .engine import ScheduleParser
from .errors import ConflictAlreadyExists, ExtractionError, ValidationError
from .fetch import CatalogServiceClient
from .models import (
    JobKind,
    JobResult,
    ProgramRecord,
    ScheduleRecord,
    SessionRecord,
    SweepMetrics,
)
from .prerequisites import parse_prerequisites
from .reconcile import CatalogReconciler
from .repository import CatalogRepository
from .sessions import build_horaire_pdf_url, session_code, trimester_for_date

logger = logging.getLogger(__name__)


class SessionSweepWorker:
    """
    Walks the schedule documents of the current session and records the
    prerequisites they list.

    Programs are processed one after another so only one document is being
    fetched at a time. A failure inside a program is logged and the sweep
    moves on to the next program; a failure while handling one of the
    program's courses ends that program's course loop.
    """

    def __init__(
        self,
        repository: CatalogRepository,
        parser: ScheduleParser,
        reconciler: CatalogReconciler,
        horaire_base_url: Optional[str] = None,
        today: Callable[[], date] = date.today,
    ):
        self.repo = repository
        self.parser = parser
        self.reconciler = reconciler
        self.horaire_base_url = horaire_base_url
        self.today = today

    def run(self) -> SweepMetrics:
        metrics = SweepMetrics()
        logger.info("Starting session sweep.")
        try:
            session = self.get_or_create_current_session()
            logger.info("Current session: year %s, trimester %s", session.year, session.trimester.value)

            programs = self.repo.list_horaire_parsable_programs()
            logger.info("Found %d programs with a parsable schedule PDF.", len(programs))

            for program in programs:
                self.process_program(session, program, metrics)
        except Exception:  # noqa: BLE001
            logger.exception("Error in session sweep")

        logger.info("Total unstructured prerequisites updated: %d", metrics.unstructured_updated)
        logger.info("Total prerequisites added: %d", metrics.prerequisites_added)
        return metrics

    def get_or_create_current_session(self) -> SessionRecord:
        day = self.today()
        trimester = trimester_for_date(day)
        year = day.year
        existing = self.repo.get_session(year, trimester)
        if existing:
            return existing
        try:
            return self.repo.create_session(year, trimester)
        except ConflictAlreadyExists:
            session = self.repo.get_session(year, trimester)
            if session is None:
                raise
            return session

    def process_program(self, session: SessionRecord, program: ProgramRecord, metrics: SweepMetrics) -> None:
        logger.info("Processing program: %s", program.code)
        try:
            if not program.code:
                raise ValidationError(f"Program code is empty for program id {program.id}")

            url = build_horaire_pdf_url(
                session_code(session.year, session.trimester), program.code, self.horaire_base_url
            )
            records = self.parser.parse_from_url(url)
            metrics.records_parsed += len(records)
            logger.info("Parsed %d courses for program %s.", len(records), program.code)

            for record in records:
                self.process_record(record, program, metrics)
            metrics.programs_processed += 1
            logger.info("Saved parsed courses for program %s.", program.code)
        except Exception:  # noqa: BLE001
            metrics.programs_failed += 1
            logger.exception("Error processing program %s", program.code)

    def process_record(self, record: ScheduleRecord, program: ProgramRecord, metrics: SweepMetrics) -> None:
        course = self.repo.get_course_by_code(record.code)
        if course is None:
            metrics.courses_missing += 1
            logger.error("Course not found in database: %s (program %s)", record.code, program.code)
            return

        program_course = self.repo.get_program_course(course.id, program.id)
        if program_course is None:
            logger.warning("Program course not found: course %s in program %s", record.code, program.code)
            return

        if not record.prerequisites or not record.prerequisites.strip():
            return

        parsed = parse_prerequisites(record.prerequisites)
        logger.debug("Unstructured prerequisites for course %s: %r", record.code, parsed.raw_text)
        metrics.unstructured_updated += self.reconciler.update_unstructured_prerequisite(
            program_course, parsed.raw_text
        )

        for code in parsed.codes:
            if self.reconciler.add_prerequisite_if_not_exists(program_course, code, program):
                metrics.prerequisites_added += 1


class CatalogJobWorker:
    """
    Executes one queued job. Each JobKind has its own branch; kinds that are
    declared but not implemented yet return an unsupported JobResult.
    """

    def __init__(
        self,
        repository: CatalogRepository,
        catalog_client: CatalogServiceClient,
        reconciler: CatalogReconciler,
        sweep_worker: Optional[SessionSweepWorker] = None,
    ):
        self.repo = repository
        self.catalog_client = catalog_client
        self.reconciler = reconciler
        self.sweep_worker = sweep_worker

    def dispatch(self, kind: JobKind) -> JobResult:
        if kind is JobKind.PROGRAMS_UPSERT:
            return self.process_programs()
        if kind is JobKind.COURSES_UPSERT:
            return self.process_courses()
        if kind is JobKind.SESSIONS_SWEEP:
            return self.process_sessions()
        if kind in (JobKind.COURSE_AVAILABILITY, JobKind.COURSE_PREREQUISITES):
            logger.warning("Job kind %s is not supported yet", kind.value)
            return JobResult(kind=kind, supported=False)
        raise ValueError(f"Unhandled job kind: {kind}")

    def process_programs(self) -> JobResult:
        logger.info("Processing programs...")
        try:
            programs = self.catalog_client.fetch_programs()
            if not programs:
                raise ExtractionError("No programs fetched.")
            logger.info("%d programs fetched.", len(programs))

            self.reconciler.upsert_programs(programs)
        except Exception:
            logger.exception("Error processing programs")
            raise
        return JobResult(kind=JobKind.PROGRAMS_UPSERT, summary={"processed": True, "programs": len(programs)})

    def process_courses(self) -> JobResult:
        logger.info("Processing courses...")
        try:
            courses = self.catalog_client.fetch_courses()
            if not courses:
                raise ExtractionError("No courses fetched.")
            logger.info("%d courses fetched.", len(courses))

            self.reconciler.upsert_courses(courses)
            linked = self.reconciler.link_program_courses(courses)
        except Exception:
            logger.exception("Error processing courses")
            raise
        return JobResult(
            kind=JobKind.COURSES_UPSERT,
            summary={"processed": True, "courses": len(courses), "program_courses_added": linked},
        )

    def process_sessions(self) -> JobResult:
        if self.sweep_worker is None:
            raise RuntimeError("Session sweep requested but no sweep worker is configured")
        metrics = self.sweep_worker.run()
        return JobResult(kind=JobKind.SESSIONS_SWEEP, summary=vars(metrics).copy())
