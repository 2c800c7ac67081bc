from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class Trimester(str, Enum):
    HIVER = "HIVER"
    ETE = "ETE"
    AUTOMNE = "AUTOMNE"


class QueueName(str, Enum):
    PROGRAMS = "programs"
    COURSES = "courses"
    SESSIONS = "sessions"


class JobKind(str, Enum):
    PROGRAMS_UPSERT = "programs-upsert"
    COURSES_UPSERT = "courses-upsert"
    COURSE_AVAILABILITY = "course-availability"
    COURSE_PREREQUISITES = "course-prerequisites"
    SESSIONS_SWEEP = "sessions-sweep"

    @classmethod
    def parse(cls, name: str) -> "JobKind":
        try:
            return cls(name)
        except ValueError:
            raise ValueError(f"Unknown job name: {name}") from None


class JobState(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    FINISHED = "finished"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass
class DocumentToken:
    text: str
    x: float
    y: float
    width: Optional[float] = None
    height: Optional[float] = None


@dataclass
class HeaderCell:
    x: float
    y: float
    width: float
    height: float


@dataclass
class HeaderColumn:
    index: int
    name: str
    start_x: float
    end_x: float

    def contains(self, x: float) -> bool:
        return self.start_x <= x <= self.end_x


@dataclass
class ScheduleRecord:
    code: str = ""
    available: Dict[str, str] = field(default_factory=dict)
    prerequisites: str = ""


@dataclass
class ScheduleDocument:
    pages: List[List[DocumentToken]]
    header_cells: List[HeaderCell]

    def tokens(self) -> List[DocumentToken]:
        return [token for page in self.pages for token in page]

    @property
    def first_page(self) -> List[DocumentToken]:
        return self.pages[0] if self.pages else []


@dataclass
class PrerequisiteParse:
    codes: List[str]
    has_residue: bool
    raw_text: str


@dataclass
class CourseSnapshot:
    code: str
    title: str
    description: Optional[str] = None
    credits: Optional[int] = None
    cycle: Optional[int] = None
    program_codes: List[str] = field(default_factory=list)


@dataclass
class ProgramSnapshot:
    code: str
    title: str
    credits: Optional[int] = None
    cycle: Optional[int] = None
    horaire_parsable_pdf: bool = False


@dataclass
class ProgramRecord:
    id: int
    code: Optional[str]
    title: str
    credits: Optional[int] = None
    cycle: Optional[int] = None
    horaire_parsable_pdf: bool = False
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = None


@dataclass
class CourseRecord:
    id: int
    code: str
    title: str
    description: Optional[str] = None
    credits: Optional[int] = None
    cycle: Optional[int] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = None


@dataclass
class SessionRecord:
    id: int
    year: int
    trimester: Trimester
    created_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class ProgramCourseRecord:
    course_id: int
    program_id: int
    type_: Optional[str] = None
    unstructured_prerequisite: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = None


@dataclass
class PrerequisiteRecord:
    course_id: int
    program_id: int
    prerequisite_id: int
    created_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class SweepMetrics:
    programs_processed: int = 0
    programs_failed: int = 0
    records_parsed: int = 0
    courses_missing: int = 0
    unstructured_updated: int = 0
    prerequisites_added: int = 0


@dataclass
class JobResult:
    kind: JobKind
    supported: bool = True
    summary: Dict[str, Any] = field(default_factory=dict)
