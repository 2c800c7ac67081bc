from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, List, Optional, Sequence, Tuple, TypeVar

from .errors import ConflictAlreadyExists, ValidationError
from .models import CourseRecord, CourseSnapshot, ProgramCourseRecord, ProgramRecord, ProgramSnapshot
from .repository import CatalogRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _normalized_course(course) -> Tuple:
    # Timestamps and ids are not part of the comparison.
    return (course.code, course.title, course.description, course.credits, course.cycle)


def _normalized_program(program) -> Tuple:
    return (program.code, program.title, program.credits, program.cycle, bool(program.horaire_parsable_pdf))


class CatalogReconciler:
    """
    Merges fetched catalog snapshots into the repository.

    Batch upserts look up existing rows once, write only what changed and run
    the writes concurrently. There is no transaction across a batch: when one
    write fails the others may already be committed.
    """

    def __init__(self, repository: CatalogRepository, max_workers: int = 8):
        self.repo = repository
        self.max_workers = max_workers

    def upsert_courses(self, snapshots: Sequence[CourseSnapshot]) -> List[CourseRecord]:
        existing = {c.code: c for c in self.repo.find_courses_by_codes(s.code for s in snapshots)}
        updates: List[Callable[[], CourseRecord]] = []
        creations: List[Callable[[], CourseRecord]] = []

        for snapshot in snapshots:
            current = existing.get(snapshot.code)
            if current is None:
                creations.append(lambda s=snapshot: self._create_course(s))
            elif _normalized_course(current) != _normalized_course(snapshot):
                updates.append(lambda c=current, s=snapshot: self._update_course(c, s))
            else:
                updates.append(lambda c=current: c)

        logger.debug("Upserting %d courses (%d new)", len(snapshots), len(creations))
        return self._run_concurrently(updates + creations)

    def upsert_programs(self, snapshots: Sequence[ProgramSnapshot]) -> List[ProgramRecord]:
        existing = {p.code: p for p in self.repo.find_programs_by_codes(s.code for s in snapshots)}
        operations: List[Callable[[], ProgramRecord]] = []
        for snapshot in snapshots:
            current = existing.get(snapshot.code)
            if current is None:
                operations.append(lambda s=snapshot: self._create_program(s))
            elif _normalized_program(current) != _normalized_program(snapshot):
                operations.append(lambda c=current, s=snapshot: self.repo.update_program(c.id, s))
            else:
                operations.append(lambda c=current: c)
        return self._run_concurrently(operations)

    def link_program_courses(self, snapshots: Sequence[CourseSnapshot]) -> int:
        """
        Create the program-course associations listed on course snapshots.
        Existing associations are left untouched. Returns how many were added.
        """
        wanted_programs = {code for s in snapshots for code in s.program_codes}
        if not wanted_programs:
            return 0
        programs = {p.code: p for p in self.repo.find_programs_by_codes(wanted_programs)}
        courses = {c.code: c for c in self.repo.find_courses_by_codes(s.code for s in snapshots)}

        added = 0
        for snapshot in snapshots:
            course = courses.get(snapshot.code)
            if course is None:
                continue
            for program_code in snapshot.program_codes:
                program = programs.get(program_code)
                if program is None:
                    logger.warning("Program %s not found for course %s", program_code, snapshot.code)
                    continue
                if self._create_program_course_if_not_exists(course.id, program.id):
                    added += 1
        return added

    def add_prerequisite_if_not_exists(
        self,
        program_course: ProgramCourseRecord,
        code: str,
        program: ProgramRecord,
    ) -> bool:
        prerequisite = self.repo.get_course_by_code(code)
        if prerequisite is None:
            logger.debug("Prerequisite course %s not found for program %s", code, program.code)
            return False

        try:
            self._require_ids(program_course.course_id, program.id, prerequisite.id)
        except ValidationError as exc:
            logger.error("Cannot add prerequisite %s for program %s: %s", code, program.code, exc)
            return False

        course_id, program_id = program_course.course_id, program.id
        if self.repo.get_prerequisite(course_id, program_id, prerequisite.id):
            logger.debug("Prerequisite already exists: (%s, %s, %s)", course_id, program_id, prerequisite.id)
            return False

        try:
            self.repo.create_prerequisite(course_id, program_id, prerequisite.id)
        except ConflictAlreadyExists:
            # Another run inserted the same row between the lookup and the insert.
            return False
        return True

    def update_unstructured_prerequisite(self, program_course: ProgramCourseRecord, raw_text: str) -> int:
        return self.repo.update_unstructured_prerequisite(
            program_course.course_id, program_course.program_id, raw_text
        )

    def _create_course(self, snapshot: CourseSnapshot) -> CourseRecord:
        logger.debug("Creating course: %s", snapshot.code)
        try:
            return self.repo.create_course(snapshot)
        except ConflictAlreadyExists:
            # Created by a concurrent writer or an earlier duplicate in the batch.
            existing = self.repo.get_course_by_code(snapshot.code)
            if existing is None:
                raise
            logger.debug("Course %s already exists", snapshot.code)
            return existing

    def _create_program(self, snapshot: ProgramSnapshot) -> ProgramRecord:
        logger.debug("Creating program: %s", snapshot.code)
        try:
            return self.repo.create_program(snapshot)
        except ConflictAlreadyExists:
            existing = self.repo.get_program_by_code(snapshot.code)
            if existing is None:
                raise
            logger.debug("Program %s already exists", snapshot.code)
            return existing

    def _update_course(self, current: CourseRecord, snapshot: CourseSnapshot) -> CourseRecord:
        logger.debug("Updating course: %s", snapshot.code)
        return self.repo.update_course(current.id, snapshot)

    def _create_program_course_if_not_exists(self, course_id: int, program_id: int) -> bool:
        if self.repo.get_program_course(course_id, program_id):
            return False
        try:
            self.repo.create_program_course(course_id, program_id)
        except ConflictAlreadyExists:
            return False
        return True

    def _require_ids(self, course_id: Optional[int], program_id: Optional[int], prerequisite_id: Optional[int]) -> None:
        if not course_id or not program_id or not prerequisite_id:
            raise ValidationError("course_id, program_id and prerequisite_id must be provided")

    def _run_concurrently(self, operations: List[Callable[[], T]]) -> List[T]:
        if not operations:
            return []
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures: List[Future] = [pool.submit(op) for op in operations]
        # Leaving the pool waits for every write; the first failure is re-raised.
        return [future.result() for future in futures]
