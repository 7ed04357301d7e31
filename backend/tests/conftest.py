"""
Pytest configuration for the Exam Integrity API tests
"""
import os

# settings are read at import time; configure before anything from app is imported
os.environ["SQLALCHEMY_DATABASE_URI"] = "sqlite://"
os.environ["REDIS_URL"] = ""
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "true"
os.environ["CELERY_BROKER_URL"] = "memory://"
os.environ["CELERY_RESULT_BACKEND"] = "cache+memory://"
os.environ["ENVIRONMENT"] = "development"

from datetime import timedelta
from uuid import uuid4

import fakeredis
import pytest
from fastapi.testclient import TestClient

from app import models  # noqa: F401
from app.core.database import Base, engine, SessionLocal
from app.main import app
from app.models.exam import Exam, ExamInvite, ExamSubmission
from app.services.session_lock import SessionLockManager, get_session_lock_manager
from app.utils.timezone import utc_now


@pytest.fixture(scope='function')
def db():
    """Fresh in-memory schema per test"""
    Base.metadata.create_all(engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)


@pytest.fixture(scope='function')
def fake_redis():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture(scope='function')
def lock_manager(fake_redis):
    return SessionLockManager(client=fake_redis, ttl_seconds=60)


@pytest.fixture(scope='function')
def client(db, lock_manager):
    """Test client with the session lock backed by fakeredis"""
    app.dependency_overrides[get_session_lock_manager] = lambda: lock_manager
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture(scope='function')
def make_exam(db):
    def _make_exam(**overrides):
        values = {
            'slug': f'exam-{uuid4().hex[:8]}',
            'title': 'Midterm',
            'description': 'Midterm exam',
            'duration_minutes': 90,
            'total_marks': 100,
            'question_count': 20,
            'is_published': True,
            'is_active': True,
            'strict_level': 3,
            'proctoring_enabled': True,
            'lock_screen': True,
            'prevent_tab_switching': True,
        }
        values.update(overrides)
        exam = Exam(**values)
        db.add(exam)
        db.commit()
        db.refresh(exam)
        return exam
    return _make_exam


@pytest.fixture(scope='function')
def make_submission(db):
    def _make_submission(exam, student_id='student-1', **overrides):
        values = {
            'exam_id': exam.id,
            'student_id': student_id,
            'status': 'in_progress',
        }
        values.update(overrides)
        submission = ExamSubmission(**values)
        db.add(submission)
        db.commit()
        db.refresh(submission)
        return submission
    return _make_submission


@pytest.fixture(scope='function')
def make_invite(db):
    def _make_invite(exam, **overrides):
        values = {
            'exam_id': exam.id,
            'token': uuid4().hex,
            'token_type': 'single_use',
            'use_limit': 1,
            'use_count': 0,
            'valid_from': utc_now() - timedelta(hours=1),
            'valid_until': utc_now() + timedelta(days=1),
        }
        values.update(overrides)
        invite = ExamInvite(**values)
        db.add(invite)
        db.commit()
        db.refresh(invite)
        return invite
    return _make_invite


@pytest.fixture(scope='function')
def exam(make_exam):
    return make_exam()


@pytest.fixture(scope='function')
def submission(make_submission, exam):
    return make_submission(exam)
