import logging
from datetime import date

import pytest

from catalog_sync.ingestion import (
    CatalogJobWorker,
    CatalogReconciler,
    CourseSnapshot,
    ExtractionError,
    FetchError,
    InMemoryCatalogRepository,
    JobKind,
    ProgramSnapshot,
    ScheduleRecord,
    SessionSweepWorker,
    Trimester,
)

BASE_URL = "https://horaire.test/pdf"


class FakeScheduleParser:
    def __init__(self, documents):
        self.documents = documents
        self.urls = []

    def parse_from_url(self, url):
        self.urls.append(url)
        result = self.documents[url]
        if isinstance(result, Exception):
            raise result
        return result


def _url(program_code):
    return f"{BASE_URL}/20243/{program_code}.pdf"


def _seed(repo):
    # Programs are created one by one so their ids follow this order.
    repo.create_program(ProgramSnapshot(code="7084", title="Génie logiciel", horaire_parsable_pdf=True))
    repo.create_program(ProgramSnapshot(code="7086", title="Génie des TI", horaire_parsable_pdf=True))
    repo.create_program(ProgramSnapshot(code="7684", title="Génie électrique", horaire_parsable_pdf=False))
    reconciler = CatalogReconciler(repo)
    courses = [
        CourseSnapshot(code="LOG320", title="Structures", program_codes=["7084", "7086"]),
        CourseSnapshot(code="LOG210", title="Analyse", program_codes=["7084", "7086"]),
        CourseSnapshot(code="MAT145", title="Calcul", program_codes=["7084", "7086"]),
        CourseSnapshot(code="GTI350", title="Interfaces", program_codes=[]),
    ]
    reconciler.upsert_courses(courses)
    reconciler.link_program_courses(courses)
    return reconciler


def _sweep(repo, parser, reconciler=None):
    return SessionSweepWorker(
        repo,
        parser,
        reconciler or CatalogReconciler(repo),
        horaire_base_url=BASE_URL,
        today=lambda: date(2024, 10, 1),
    )


def _program_course(repo, course_code, program_code):
    course = repo.get_course_by_code(course_code)
    program = repo.get_program_by_code(program_code)
    return repo.get_program_course(course.id, program.id)


def test_failed_program_does_not_stop_the_sweep():
    repo = InMemoryCatalogRepository()
    _seed(repo)
    parser = FakeScheduleParser(
        {
            _url("7084"): FetchError(_url("7084"), "non-success response", status_code=404),
            _url("7086"): [ScheduleRecord(code="LOG320", available={"A24": "J"}, prerequisites="LOG210 ou MAT145")],
        }
    )

    metrics = _sweep(repo, parser).run()

    assert parser.urls == [_url("7084"), _url("7086")]
    assert metrics.programs_failed == 1
    assert metrics.programs_processed == 1
    assert metrics.unstructured_updated == 1
    assert metrics.prerequisites_added == 2
    assert _program_course(repo, "LOG320", "7086").unstructured_prerequisite == "LOG210 ou MAT145"
    assert _program_course(repo, "LOG320", "7084").unstructured_prerequisite is None


def test_error_inside_course_loop_aborts_rest_of_program_only():
    class ExplodingRepository(InMemoryCatalogRepository):
        def get_course_by_code(self, code):
            if code == "MAT145":
                raise RuntimeError("store unavailable")
            return super().get_course_by_code(code)

    repo = ExplodingRepository()
    _seed(repo)
    records = [
        ScheduleRecord(code="LOG210", prerequisites="LOG320"),
        ScheduleRecord(code="MAT145", prerequisites="LOG210"),
        ScheduleRecord(code="LOG320", prerequisites="LOG210"),
    ]
    parser = FakeScheduleParser(
        {
            _url("7084"): records,
            _url("7086"): [ScheduleRecord(code="LOG320", prerequisites="LOG210")],
        }
    )

    metrics = _sweep(repo, parser).run()

    assert metrics.programs_failed == 1
    assert metrics.programs_processed == 1
    # 7084: LOG210 handled, then MAT145 raised and LOG320 was never reached.
    assert _program_course(repo, "LOG210", "7084").unstructured_prerequisite == "LOG320"
    assert _program_course(repo, "LOG320", "7084").unstructured_prerequisite is None
    assert _program_course(repo, "LOG320", "7086").unstructured_prerequisite == "LOG210"
    assert metrics.unstructured_updated == 2


def test_missing_course_association_or_text_is_skipped():
    repo = InMemoryCatalogRepository()
    _seed(repo)
    parser = FakeScheduleParser(
        {
            _url("7084"): [
                ScheduleRecord(code="XYZ999", prerequisites="LOG210"),
                ScheduleRecord(code="GTI350", prerequisites="LOG210"),
                ScheduleRecord(code="LOG320", prerequisites="   "),
                ScheduleRecord(code="MAT145", prerequisites="LOG210, LOG210 et ABC123"),
            ],
            _url("7086"): [],
        }
    )

    metrics = _sweep(repo, parser).run()

    assert metrics.courses_missing == 1
    assert metrics.records_parsed == 4
    assert metrics.unstructured_updated == 1
    assert metrics.prerequisites_added == 1
    assert _program_course(repo, "LOG320", "7084").unstructured_prerequisite is None


def test_blank_prerequisites_never_reach_the_store():
    class RecordingReconciler(CatalogReconciler):
        def __init__(self, repo):
            super().__init__(repo)
            self.calls = 0

        def update_unstructured_prerequisite(self, program_course, raw_text):
            self.calls += 1
            return super().update_unstructured_prerequisite(program_course, raw_text)

    repo = InMemoryCatalogRepository()
    _seed(repo)
    reconciler = RecordingReconciler(repo)
    parser = FakeScheduleParser({_url("7084"): [ScheduleRecord(code="LOG320", prerequisites="")], _url("7086"): []})
    _sweep(repo, parser, reconciler).run()
    assert reconciler.calls == 0


def test_rerunning_the_sweep_adds_nothing_new():
    repo = InMemoryCatalogRepository()
    _seed(repo)
    documents = {_url("7084"): [ScheduleRecord(code="LOG320", prerequisites="LOG210 ou MAT145")], _url("7086"): []}

    first = _sweep(repo, FakeScheduleParser(documents)).run()
    second = _sweep(repo, FakeScheduleParser(documents)).run()

    assert first.prerequisites_added == 2
    assert second.prerequisites_added == 0
    assert second.unstructured_updated == 1
    assert len(repo.sessions) == 1
    assert repo.get_session(2024, Trimester.AUTOMNE) is not None


def test_program_without_code_is_isolated():
    repo = InMemoryCatalogRepository()
    _seed(repo)
    program = repo.get_program_by_code("7084")
    repo.programs[program.id].code = None
    parser = FakeScheduleParser({_url("7086"): [ScheduleRecord(code="LOG320", prerequisites="LOG210")]})

    metrics = _sweep(repo, parser).run()

    assert metrics.programs_failed == 1
    assert metrics.prerequisites_added == 1


def test_top_level_failure_is_logged_not_raised():
    class BrokenRepository(InMemoryCatalogRepository):
        def list_horaire_parsable_programs(self):
            raise RuntimeError("database down")

    metrics = _sweep(BrokenRepository(), FakeScheduleParser({})).run()
    assert metrics.programs_processed == 0


class FakeCatalogClient:
    def __init__(self, programs=None, courses=None):
        self.programs = programs or []
        self.courses = courses or []

    def fetch_programs(self):
        return self.programs

    def fetch_courses(self):
        return self.courses


def _job_worker(repo, client):
    return CatalogJobWorker(repo, client, CatalogReconciler(repo))


def test_dispatch_programs_then_courses():
    repo = InMemoryCatalogRepository()
    client = FakeCatalogClient(
        programs=[ProgramSnapshot(code="7084", title="Génie logiciel", horaire_parsable_pdf=True)],
        courses=[CourseSnapshot(code="LOG210", title="Analyse", program_codes=["7084"])],
    )
    worker = _job_worker(repo, client)

    programs = worker.dispatch(JobKind.PROGRAMS_UPSERT)
    courses = worker.dispatch(JobKind.COURSES_UPSERT)

    assert programs.summary == {"processed": True, "programs": 1}
    assert courses.summary == {"processed": True, "courses": 1, "program_courses_added": 1}
    assert repo.get_course_by_code("LOG210") is not None


def test_dispatch_unsupported_kinds():
    worker = _job_worker(InMemoryCatalogRepository(), FakeCatalogClient())
    for kind in (JobKind.COURSE_AVAILABILITY, JobKind.COURSE_PREREQUISITES):
        result = worker.dispatch(kind)
        assert result.kind is kind
        assert result.supported is False


def test_unknown_job_name_is_rejected():
    assert JobKind.parse("courses-upsert") is JobKind.COURSES_UPSERT
    with pytest.raises(ValueError):
        JobKind.parse("create")


def test_empty_course_fetch_fails_the_job():
    worker = _job_worker(InMemoryCatalogRepository(), FakeCatalogClient())
    with pytest.raises(ExtractionError):
        worker.dispatch(JobKind.COURSES_UPSERT)
    with pytest.raises(ExtractionError):
        worker.dispatch(JobKind.PROGRAMS_UPSERT)


def test_sessions_job_returns_metrics():
    repo = InMemoryCatalogRepository()
    _seed(repo)
    parser = FakeScheduleParser({_url("7084"): [], _url("7086"): []})
    worker = CatalogJobWorker(repo, FakeCatalogClient(), CatalogReconciler(repo), sweep_worker=_sweep(repo, parser))
    result = worker.dispatch(JobKind.SESSIONS_SWEEP)
    assert result.summary["programs_processed"] == 2


def test_session_is_resolved_from_a_single_date():
    days = iter([date(2024, 12, 31), date(2025, 1, 1)])
    repo = InMemoryCatalogRepository()
    sweep = SessionSweepWorker(repo, FakeScheduleParser({}), CatalogReconciler(repo), today=lambda: next(days))

    session = sweep.get_or_create_current_session()

    assert (session.year, session.trimester) == (2024, Trimester.AUTOMNE)


def test_missing_program_course_is_logged(caplog):
    repo = InMemoryCatalogRepository()
    _seed(repo)
    parser = FakeScheduleParser({_url("7084"): [ScheduleRecord(code="GTI350", prerequisites="LOG210")], _url("7086"): []})

    with caplog.at_level(logging.WARNING, logger="catalog_sync.ingestion.worker"):
        _sweep(repo, parser).run()

    assert "Program course not found: course GTI350 in program 7084" in caplog.text


def test_programs_job_failure_is_logged_and_raised(caplog):
    class DownCatalogClient(FakeCatalogClient):
        def fetch_programs(self):
            raise FetchError("https://catalog.test/programs", "non-success response", status_code=503)

    worker = _job_worker(InMemoryCatalogRepository(), DownCatalogClient())
    with caplog.at_level(logging.ERROR, logger="catalog_sync.ingestion.worker"):
        with pytest.raises(FetchError):
            worker.dispatch(JobKind.PROGRAMS_UPSERT)

    assert "Error processing programs" in caplog.text
