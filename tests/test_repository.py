import pytest

from catalog_sync.ingestion import (
    ConflictAlreadyExists,
    CourseSnapshot,
    InMemoryCatalogRepository,
    NotFoundError,
    ProgramSnapshot,
    SqlAlchemyCatalogRepository,
    Trimester,
)


@pytest.fixture(params=["memory", "sqlite"])
def repo(request, tmp_path):
    if request.param == "memory":
        return InMemoryCatalogRepository()
    return SqlAlchemyCatalogRepository(f"sqlite+pysqlite:///{tmp_path / 'catalog.db'}")


def test_course_roundtrip_and_timestamps(repo):
    created = repo.create_course(CourseSnapshot(code="LOG210", title="Analyse et conception", credits=3, cycle=1))
    assert created.id
    assert created.created_at is not None
    assert created.updated_at is None

    fetched = repo.get_course_by_code("LOG210")
    assert fetched and fetched.title == "Analyse et conception"

    updated = repo.update_course(created.id, CourseSnapshot(code="LOG210", title="Analyse et conception", credits=4, cycle=1))
    assert updated.credits == 4
    assert updated.updated_at is not None
    assert updated.created_at == created.created_at


def test_find_courses_by_codes(repo):
    repo.create_course(CourseSnapshot(code="LOG210", title="A"))
    repo.create_course(CourseSnapshot(code="MAT145", title="B"))
    repo.create_course(CourseSnapshot(code="GTI100", title="C"))
    found = repo.find_courses_by_codes(["LOG210", "GTI100", "XYZ999"])
    assert sorted(c.code for c in found) == ["GTI100", "LOG210"]
    assert repo.find_courses_by_codes([]) == []


def test_duplicate_course_is_a_conflict(repo):
    repo.create_course(CourseSnapshot(code="LOG210", title="A"))
    with pytest.raises(ConflictAlreadyExists):
        repo.create_course(CourseSnapshot(code="LOG210", title="A"))


def test_update_missing_course_raises_not_found(repo):
    with pytest.raises(NotFoundError):
        repo.update_course(999, CourseSnapshot(code="LOG210", title="A"))


def test_sessions_are_unique_per_year_and_trimester(repo):
    session = repo.create_session(2024, Trimester.AUTOMNE)
    assert repo.get_session(2024, Trimester.AUTOMNE).id == session.id
    assert repo.get_session(2024, Trimester.HIVER) is None
    with pytest.raises(ConflictAlreadyExists):
        repo.create_session(2024, Trimester.AUTOMNE)


def test_programs_and_parsable_listing(repo):
    repo.create_program(ProgramSnapshot(code="7084", title="Génie logiciel", horaire_parsable_pdf=True))
    repo.create_program(ProgramSnapshot(code="7684", title="Génie électrique", horaire_parsable_pdf=False))
    repo.create_program(ProgramSnapshot(code="7086", title="Génie des TI", horaire_parsable_pdf=True))
    assert [p.code for p in repo.list_horaire_parsable_programs()] == ["7084", "7086"]
    assert repo.get_program_by_code("7684").title == "Génie électrique"


def test_associations_and_unstructured_text(repo):
    course = repo.create_course(CourseSnapshot(code="LOG320", title="Structures de données"))
    prereq = repo.create_course(CourseSnapshot(code="LOG210", title="Analyse"))
    program = repo.create_program(ProgramSnapshot(code="7084", title="Génie logiciel"))

    repo.create_program_course(course.id, program.id, type_="obligatoire")
    with pytest.raises(ConflictAlreadyExists):
        repo.create_program_course(course.id, program.id)

    assert repo.update_unstructured_prerequisite(course.id, program.id, "LOG210") == 1
    assert repo.update_unstructured_prerequisite(course.id, program.id, "LOG210 ou MAT145") == 1
    assert repo.get_program_course(course.id, program.id).unstructured_prerequisite == "LOG210 ou MAT145"
    assert repo.update_unstructured_prerequisite(prereq.id, program.id, "x") == 0

    repo.create_prerequisite(course.id, program.id, prereq.id)
    with pytest.raises(ConflictAlreadyExists):
        repo.create_prerequisite(course.id, program.id, prereq.id)
    assert repo.get_prerequisite(course.id, program.id, prereq.id) is not None
    assert len(repo.list_prerequisites(course.id, program.id)) == 1


def test_in_memory_repository_returns_copies():
    repo = InMemoryCatalogRepository()
    created = repo.create_course(CourseSnapshot(code="LOG210", title="A"))
    created.title = "mutated"
    assert repo.get_course_by_code("LOG210").title == "A"
