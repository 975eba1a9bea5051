"""Pytest configuration and shared fixtures."""
from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from retake_engine.database import init_db
from retake_engine.models.directory import Course, Exam, Student
from retake_engine.services.catalog import seed_default_management_statuses
from retake_engine.services.facade import RetakeService


@pytest.fixture
def db_session():
    """Create a fresh in-memory database for each test."""
    # In-memory SQLite for fast tests
    engine = create_engine("sqlite:///:memory:")
    init_db(engine)

    TestingSessionLocal = sessionmaker(bind=engine)
    session = TestingSessionLocal()

    yield session

    session.close()
    engine.dispose()


@pytest.fixture
def course(db_session):
    course = Course(name="Algebra II")
    db_session.add(course)
    db_session.commit()
    db_session.refresh(course)
    return course


@pytest.fixture
def exam(db_session, course):
    exam = Exam(course_id=course.id, name="Quadratics quiz", exam_number=3)
    db_session.add(exam)
    db_session.commit()
    db_session.refresh(exam)
    return exam


@pytest.fixture
def students(db_session):
    """Three students, in id order: Alice, Bob, Chloe."""
    rows = [
        Student(name="Alice Kim", phone_number="010-1111-2222", school="North High"),
        Student(name="Bob Lee", phone_number="010-3333-4444", school="North High"),
        Student(name="Chloe Park", phone_number="010-5555-6666", school="South High"),
    ]
    db_session.add_all(rows)
    db_session.commit()
    for row in rows:
        db_session.refresh(row)
    return rows


@pytest.fixture
def management_statuses(db_session):
    """The default management-status catalog."""
    seed_default_management_statuses(db_session)
    return db_session


@pytest.fixture
def service(db_session):
    return RetakeService(db_session)


@pytest.fixture
def sample_retake(service, exam, students):
    """Alice's Pending retake of the quiz, scheduled for 2025-03-01."""
    [retake] = service.assign_batch(exam.id, [students[0].id], date(2025, 3, 1), performed_by="admin_1")
    return retake
