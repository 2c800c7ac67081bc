from __future__ import annotations

import threading
from copy import deepcopy
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .errors import ConflictAlreadyExists, NotFoundError
from .models import (
    CourseRecord,
    CourseSnapshot,
    PrerequisiteRecord,
    ProgramCourseRecord,
    ProgramRecord,
    ProgramSnapshot,
    SessionRecord,
    Trimester,
)

Base = declarative_base()


class ProgramModel(Base):
    __tablename__ = "programs"
    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String, unique=True, index=True)
    title = Column(String)
    credits = Column(Integer)
    cycle = Column(Integer)
    horaire_parsable_pdf = Column(Boolean, default=False)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)


class CourseModel(Base):
    __tablename__ = "courses"
    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String, unique=True, index=True, nullable=False)
    title = Column(String)
    description = Column(Text)
    credits = Column(Integer)
    cycle = Column(Integer)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)


class SessionModel(Base):
    __tablename__ = "sessions"
    __table_args__ = (UniqueConstraint("year", "trimester", name="uq_session_year_trimester"),)
    id = Column(Integer, primary_key=True, autoincrement=True)
    year = Column(Integer, nullable=False)
    trimester = Column(Enum(Trimester), nullable=False)
    created_at = Column(DateTime)


class ProgramCourseModel(Base):
    __tablename__ = "program_courses"
    course_id = Column(Integer, ForeignKey("courses.id"), primary_key=True)
    program_id = Column(Integer, ForeignKey("programs.id"), primary_key=True)
    type_ = Column("type", String)
    unstructured_prerequisite = Column(Text)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)


class PrerequisiteModel(Base):
    __tablename__ = "course_prerequisites"
    course_id = Column(Integer, primary_key=True)
    program_id = Column(Integer, primary_key=True)
    prerequisite_id = Column(Integer, ForeignKey("courses.id"), primary_key=True)
    created_at = Column(DateTime)


class CatalogRepository:
    """
    Persistence boundary for the catalog. Lookups use business keys (course
    and program codes, (year, trimester), association key tuples).
    Implementations raise ConflictAlreadyExists when a uniqueness constraint
    rejects an insert, and set created_at/updated_at themselves.
    """

    # Programs
    def get_program_by_code(self, code: str) -> Optional[ProgramRecord]:
        raise NotImplementedError

    def find_programs_by_codes(self, codes: Iterable[str]) -> List[ProgramRecord]:
        raise NotImplementedError

    def create_program(self, snapshot: ProgramSnapshot) -> ProgramRecord:
        raise NotImplementedError

    def update_program(self, program_id: int, snapshot: ProgramSnapshot) -> ProgramRecord:
        raise NotImplementedError

    def list_horaire_parsable_programs(self) -> List[ProgramRecord]:
        raise NotImplementedError

    # Courses
    def get_course_by_code(self, code: str) -> Optional[CourseRecord]:
        raise NotImplementedError

    def find_courses_by_codes(self, codes: Iterable[str]) -> List[CourseRecord]:
        raise NotImplementedError

    def create_course(self, snapshot: CourseSnapshot) -> CourseRecord:
        raise NotImplementedError

    def update_course(self, course_id: int, snapshot: CourseSnapshot) -> CourseRecord:
        raise NotImplementedError

    # Sessions
    def get_session(self, year: int, trimester: Trimester) -> Optional[SessionRecord]:
        raise NotImplementedError

    def create_session(self, year: int, trimester: Trimester) -> SessionRecord:
        raise NotImplementedError

    # Program-course associations
    def get_program_course(self, course_id: int, program_id: int) -> Optional[ProgramCourseRecord]:
        raise NotImplementedError

    def create_program_course(
        self, course_id: int, program_id: int, type_: Optional[str] = None
    ) -> ProgramCourseRecord:
        raise NotImplementedError

    def update_unstructured_prerequisite(self, course_id: int, program_id: int, text: str) -> int:
        raise NotImplementedError

    # Prerequisites
    def get_prerequisite(self, course_id: int, program_id: int, prerequisite_id: int) -> Optional[PrerequisiteRecord]:
        raise NotImplementedError

    def create_prerequisite(self, course_id: int, program_id: int, prerequisite_id: int) -> PrerequisiteRecord:
        raise NotImplementedError

    def list_prerequisites(self, course_id: int, program_id: int) -> List[PrerequisiteRecord]:
        raise NotImplementedError


class InMemoryCatalogRepository(CatalogRepository):
    """
    In-memory store for local runs and tests. Returns copies so callers
    cannot mutate stored rows, and serializes access because reconciliation
    writes run on worker threads.
    """

    def __init__(self):
        self.programs: Dict[int, ProgramRecord] = {}
        self.courses: Dict[int, CourseRecord] = {}
        self.sessions: Dict[int, SessionRecord] = {}
        self.program_courses: Dict[Tuple[int, int], ProgramCourseRecord] = {}
        self.prerequisites: Dict[Tuple[int, int, int], PrerequisiteRecord] = {}
        self._lock = threading.RLock()
        self._next_id = {"programs": 1, "courses": 1, "sessions": 1}

    def _clone(self, obj):
        return deepcopy(obj)

    def _allocate_id(self, table: str) -> int:
        value = self._next_id[table]
        self._next_id[table] = value + 1
        return value

    def get_program_by_code(self, code: str) -> Optional[ProgramRecord]:
        with self._lock:
            for program in self.programs.values():
                if program.code == code:
                    return self._clone(program)
        return None

    def find_programs_by_codes(self, codes: Iterable[str]) -> List[ProgramRecord]:
        wanted = set(codes)
        with self._lock:
            return [self._clone(p) for p in self.programs.values() if p.code in wanted]

    def create_program(self, snapshot: ProgramSnapshot) -> ProgramRecord:
        with self._lock:
            if any(p.code == snapshot.code for p in self.programs.values()):
                raise ConflictAlreadyExists(f"Program {snapshot.code} already exists")
            record = ProgramRecord(
                id=self._allocate_id("programs"),
                code=snapshot.code,
                title=snapshot.title,
                credits=snapshot.credits,
                cycle=snapshot.cycle,
                horaire_parsable_pdf=snapshot.horaire_parsable_pdf,
                created_at=datetime.utcnow(),
            )
            self.programs[record.id] = record
            return self._clone(record)

    def update_program(self, program_id: int, snapshot: ProgramSnapshot) -> ProgramRecord:
        with self._lock:
            program = self.programs.get(program_id)
            if program is None:
                raise NotFoundError(f"Program {program_id} not found")
            program.code = snapshot.code
            program.title = snapshot.title
            program.credits = snapshot.credits
            program.cycle = snapshot.cycle
            program.horaire_parsable_pdf = snapshot.horaire_parsable_pdf
            program.updated_at = datetime.utcnow()
            return self._clone(program)

    def list_horaire_parsable_programs(self) -> List[ProgramRecord]:
        with self._lock:
            programs = [p for p in self.programs.values() if p.horaire_parsable_pdf]
            return [self._clone(p) for p in sorted(programs, key=lambda p: p.id)]

    def get_course_by_code(self, code: str) -> Optional[CourseRecord]:
        with self._lock:
            for course in self.courses.values():
                if course.code == code:
                    return self._clone(course)
        return None

    def find_courses_by_codes(self, codes: Iterable[str]) -> List[CourseRecord]:
        wanted = set(codes)
        with self._lock:
            return [self._clone(c) for c in self.courses.values() if c.code in wanted]

    def create_course(self, snapshot: CourseSnapshot) -> CourseRecord:
        with self._lock:
            if any(c.code == snapshot.code for c in self.courses.values()):
                raise ConflictAlreadyExists(f"Course {snapshot.code} already exists")
            record = CourseRecord(
                id=self._allocate_id("courses"),
                code=snapshot.code,
                title=snapshot.title,
                description=snapshot.description,
                credits=snapshot.credits,
                cycle=snapshot.cycle,
                created_at=datetime.utcnow(),
            )
            self.courses[record.id] = record
            return self._clone(record)

    def update_course(self, course_id: int, snapshot: CourseSnapshot) -> CourseRecord:
        with self._lock:
            course = self.courses.get(course_id)
            if course is None:
                raise NotFoundError(f"Course {course_id} not found")
            course.code = snapshot.code
            course.title = snapshot.title
            course.description = snapshot.description
            course.credits = snapshot.credits
            course.cycle = snapshot.cycle
            course.updated_at = datetime.utcnow()
            return self._clone(course)

    def get_session(self, year: int, trimester: Trimester) -> Optional[SessionRecord]:
        with self._lock:
            for session in self.sessions.values():
                if session.year == year and session.trimester == trimester:
                    return self._clone(session)
        return None

    def create_session(self, year: int, trimester: Trimester) -> SessionRecord:
        with self._lock:
            if self.get_session(year, trimester):
                raise ConflictAlreadyExists(f"Session {year} {trimester.value} already exists")
            record = SessionRecord(id=self._allocate_id("sessions"), year=year, trimester=trimester)
            self.sessions[record.id] = record
            return self._clone(record)

    def get_program_course(self, course_id: int, program_id: int) -> Optional[ProgramCourseRecord]:
        with self._lock:
            record = self.program_courses.get((course_id, program_id))
            return self._clone(record) if record else None

    def create_program_course(
        self, course_id: int, program_id: int, type_: Optional[str] = None
    ) -> ProgramCourseRecord:
        with self._lock:
            key = (course_id, program_id)
            if key in self.program_courses:
                raise ConflictAlreadyExists(f"Program course {key} already exists")
            record = ProgramCourseRecord(course_id=course_id, program_id=program_id, type_=type_)
            self.program_courses[key] = record
            return self._clone(record)

    def update_unstructured_prerequisite(self, course_id: int, program_id: int, text: str) -> int:
        with self._lock:
            record = self.program_courses.get((course_id, program_id))
            if not record:
                return 0
            record.unstructured_prerequisite = text
            record.updated_at = datetime.utcnow()
            return 1

    def get_prerequisite(self, course_id: int, program_id: int, prerequisite_id: int) -> Optional[PrerequisiteRecord]:
        with self._lock:
            record = self.prerequisites.get((course_id, program_id, prerequisite_id))
            return self._clone(record) if record else None

    def create_prerequisite(self, course_id: int, program_id: int, prerequisite_id: int) -> PrerequisiteRecord:
        with self._lock:
            key = (course_id, program_id, prerequisite_id)
            if key in self.prerequisites:
                raise ConflictAlreadyExists(f"Prerequisite {key} already exists")
            record = PrerequisiteRecord(course_id=course_id, program_id=program_id, prerequisite_id=prerequisite_id)
            self.prerequisites[key] = record
            return self._clone(record)

    def list_prerequisites(self, course_id: int, program_id: int) -> List[PrerequisiteRecord]:
        with self._lock:
            return [
                self._clone(p)
                for p in self.prerequisites.values()
                if p.course_id == course_id and p.program_id == program_id
            ]


def _program_from_model(model: ProgramModel) -> ProgramRecord:
    return ProgramRecord(
        id=model.id,
        code=model.code,
        title=model.title,
        credits=model.credits,
        cycle=model.cycle,
        horaire_parsable_pdf=bool(model.horaire_parsable_pdf),
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _course_from_model(model: CourseModel) -> CourseRecord:
    return CourseRecord(
        id=model.id,
        code=model.code,
        title=model.title,
        description=model.description,
        credits=model.credits,
        cycle=model.cycle,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _program_course_from_model(model: ProgramCourseModel) -> ProgramCourseRecord:
    return ProgramCourseRecord(
        course_id=model.course_id,
        program_id=model.program_id,
        type_=model.type_,
        unstructured_prerequisite=model.unstructured_prerequisite,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _prerequisite_from_model(model: PrerequisiteModel) -> PrerequisiteRecord:
    return PrerequisiteRecord(
        course_id=model.course_id,
        program_id=model.program_id,
        prerequisite_id=model.prerequisite_id,
        created_at=model.created_at,
    )


class SqlAlchemyCatalogRepository(CatalogRepository):
    """
    SQL-backed repository using SQLAlchemy. Works with SQLite/Postgres URLs.
    Every call opens its own session so the repository can be shared by
    reconciliation worker threads.
    """

    def __init__(self, database_url: str):
        self.engine = create_engine(database_url, future=True)
        Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False, future=True)

    def _session(self) -> Session:
        return self.SessionLocal()

    def _insert(self, model, conflict_message: str):
        with self._session() as session:
            session.add(model)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictAlreadyExists(conflict_message) from exc
            return model

    # region Program operations
    def get_program_by_code(self, code: str) -> Optional[ProgramRecord]:
        with self._session() as session:
            model = session.execute(select(ProgramModel).where(ProgramModel.code == code)).scalar_one_or_none()
            return _program_from_model(model) if model else None

    def find_programs_by_codes(self, codes: Iterable[str]) -> List[ProgramRecord]:
        wanted = list(set(codes))
        if not wanted:
            return []
        with self._session() as session:
            models = session.execute(select(ProgramModel).where(ProgramModel.code.in_(wanted))).scalars().all()
            return [_program_from_model(m) for m in models]

    def create_program(self, snapshot: ProgramSnapshot) -> ProgramRecord:
        model = ProgramModel(
            code=snapshot.code,
            title=snapshot.title,
            credits=snapshot.credits,
            cycle=snapshot.cycle,
            horaire_parsable_pdf=snapshot.horaire_parsable_pdf,
            created_at=datetime.utcnow(),
        )
        return _program_from_model(self._insert(model, f"Program {snapshot.code} already exists"))

    def update_program(self, program_id: int, snapshot: ProgramSnapshot) -> ProgramRecord:
        with self._session() as session:
            session.execute(
                update(ProgramModel)
                .where(ProgramModel.id == program_id)
                .values(
                    code=snapshot.code,
                    title=snapshot.title,
                    credits=snapshot.credits,
                    cycle=snapshot.cycle,
                    horaire_parsable_pdf=snapshot.horaire_parsable_pdf,
                    updated_at=datetime.utcnow(),
                )
            )
            session.commit()
            model = session.get(ProgramModel, program_id, populate_existing=True)
            if model is None:
                raise NotFoundError(f"Program {program_id} not found")
            return _program_from_model(model)

    def list_horaire_parsable_programs(self) -> List[ProgramRecord]:
        with self._session() as session:
            stmt = select(ProgramModel).where(ProgramModel.horaire_parsable_pdf.is_(True)).order_by(ProgramModel.id)
            return [_program_from_model(m) for m in session.execute(stmt).scalars().all()]

    # endregion

    # region Course operations
    def get_course_by_code(self, code: str) -> Optional[CourseRecord]:
        with self._session() as session:
            model = session.execute(select(CourseModel).where(CourseModel.code == code)).scalar_one_or_none()
            return _course_from_model(model) if model else None

    def find_courses_by_codes(self, codes: Iterable[str]) -> List[CourseRecord]:
        wanted = list(set(codes))
        if not wanted:
            return []
        with self._session() as session:
            models = session.execute(select(CourseModel).where(CourseModel.code.in_(wanted))).scalars().all()
            return [_course_from_model(m) for m in models]

    def create_course(self, snapshot: CourseSnapshot) -> CourseRecord:
        model = CourseModel(
            code=snapshot.code,
            title=snapshot.title,
            description=snapshot.description,
            credits=snapshot.credits,
            cycle=snapshot.cycle,
            created_at=datetime.utcnow(),
        )
        return _course_from_model(self._insert(model, f"Course {snapshot.code} already exists"))

    def update_course(self, course_id: int, snapshot: CourseSnapshot) -> CourseRecord:
        with self._session() as session:
            session.execute(
                update(CourseModel)
                .where(CourseModel.id == course_id)
                .values(
                    code=snapshot.code,
                    title=snapshot.title,
                    description=snapshot.description,
                    credits=snapshot.credits,
                    cycle=snapshot.cycle,
                    updated_at=datetime.utcnow(),
                )
            )
            session.commit()
            model = session.get(CourseModel, course_id, populate_existing=True)
            if model is None:
                raise NotFoundError(f"Course {course_id} not found")
            return _course_from_model(model)

    # endregion

    # region Session operations
    def get_session(self, year: int, trimester: Trimester) -> Optional[SessionRecord]:
        with self._session() as session:
            stmt = select(SessionModel).where(SessionModel.year == year, SessionModel.trimester == trimester)
            model = session.execute(stmt).scalar_one_or_none()
            if not model:
                return None
            return SessionRecord(id=model.id, year=model.year, trimester=model.trimester, created_at=model.created_at)

    def create_session(self, year: int, trimester: Trimester) -> SessionRecord:
        model = SessionModel(year=year, trimester=trimester, created_at=datetime.utcnow())
        model = self._insert(model, f"Session {year} {trimester.value} already exists")
        return SessionRecord(id=model.id, year=model.year, trimester=model.trimester, created_at=model.created_at)

    # endregion

    # region Association operations
    def get_program_course(self, course_id: int, program_id: int) -> Optional[ProgramCourseRecord]:
        with self._session() as session:
            model = session.get(ProgramCourseModel, (course_id, program_id))
            return _program_course_from_model(model) if model else None

    def create_program_course(
        self, course_id: int, program_id: int, type_: Optional[str] = None
    ) -> ProgramCourseRecord:
        model = ProgramCourseModel(
            course_id=course_id,
            program_id=program_id,
            type_=type_,
            created_at=datetime.utcnow(),
        )
        model = self._insert(model, f"Program course ({course_id}, {program_id}) already exists")
        return _program_course_from_model(model)

    def update_unstructured_prerequisite(self, course_id: int, program_id: int, text: str) -> int:
        with self._session() as session:
            result = session.execute(
                update(ProgramCourseModel)
                .where(ProgramCourseModel.course_id == course_id, ProgramCourseModel.program_id == program_id)
                .values(unstructured_prerequisite=text, updated_at=datetime.utcnow())
            )
            session.commit()
            return int(result.rowcount or 0)

    def get_prerequisite(self, course_id: int, program_id: int, prerequisite_id: int) -> Optional[PrerequisiteRecord]:
        with self._session() as session:
            model = session.get(PrerequisiteModel, (course_id, program_id, prerequisite_id))
            return _prerequisite_from_model(model) if model else None

    def create_prerequisite(self, course_id: int, program_id: int, prerequisite_id: int) -> PrerequisiteRecord:
        model = PrerequisiteModel(
            course_id=course_id,
            program_id=program_id,
            prerequisite_id=prerequisite_id,
            created_at=datetime.utcnow(),
        )
        model = self._insert(model, f"Prerequisite ({course_id}, {program_id}, {prerequisite_id}) already exists")
        return _prerequisite_from_model(model)

    def list_prerequisites(self, course_id: int, program_id: int) -> List[PrerequisiteRecord]:
        with self._session() as session:
            stmt = select(PrerequisiteModel).where(
                PrerequisiteModel.course_id == course_id, PrerequisiteModel.program_id == program_id
            )
            return [_prerequisite_from_model(m) for m in session.execute(stmt).scalars().all()]

    # endregion
