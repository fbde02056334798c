from collections.abc import Generator
from contextlib import contextmanager

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from careflow.database import Base, get_db, get_session_factory
from careflow.errors import UpstreamUnavailable
from careflow.main import app
from careflow.schemas.assessment import AIAssessment, SuggestedDoctor, SuggestedTest
from careflow.services.ai_consultant import get_ai_consultant
from careflow.services.blob_store import get_blob_store
from careflow.services.report_analyzer import get_report_analyzer


class FakeConsultant:
    def __init__(self):
        self.fail = False
        self.transcripts: list[str] = []
        self.assessment = AIAssessment(
            summary="Symptoms are consistent with a respiratory infection.",
            suggested_tests=[
                SuggestedTest(name="Complete Blood Count", reason="Check for infection", priority="high"),
                SuggestedTest(name="Chest X-Ray", reason="Rule out pneumonia", priority="medium"),
            ],
            suggested_doctor=SuggestedDoctor(doctor_id="doctor-1", reason="General practitioner"),
        )

    def assess(self, transcript: str) -> AIAssessment:
        self.transcripts.append(transcript)
        if self.fail:
            raise UpstreamUnavailable("AI consultant is unavailable")
        return self.assessment


class FakeBlobStore:
    def __init__(self):
        self.fail = False
        self.blobs: dict[str, bytes] = {}

    def store(self, data: bytes, file_name: str, mime_type: str) -> str:
        if self.fail:
            raise UpstreamUnavailable("File storage is unavailable")
        url = f"memory://blobs/{len(self.blobs) + 1}-{file_name}"
        self.blobs[url] = data
        return url

    def load(self, url: str) -> bytes:
        return self.blobs[url]


class FakeAnalyzer:
    def __init__(self):
        self.fail = False
        self.summary = "Hemoglobin and white cell count within reference range."

    def analyze(self, file_bytes: bytes, file_name: str, mime_type: str, report_type: str) -> str:
        if self.fail:
            raise UpstreamUnavailable("Report analysis engine is unavailable")
        return self.summary


@pytest.fixture()
def db_session() -> Generator:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def session_factory(db_session):
    # Background jobs share the test session instead of opening their own.
    @contextmanager
    def factory():
        yield db_session

    return factory


@pytest.fixture()
def consultant() -> FakeConsultant:
    return FakeConsultant()


@pytest.fixture()
def blob_store() -> FakeBlobStore:
    return FakeBlobStore()


@pytest.fixture()
def analyzer() -> FakeAnalyzer:
    return FakeAnalyzer()


@pytest.fixture()
def client(db_session, session_factory, consultant, blob_store, analyzer) -> Generator[TestClient, None, None]:
    def override_get_db():
        db_session.expire_all()
        try:
            yield db_session
        except Exception:
            db_session.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_ai_consultant] = lambda: consultant
    app.dependency_overrides[get_blob_store] = lambda: blob_store
    app.dependency_overrides[get_report_analyzer] = lambda: analyzer

    # Tests use an in-memory DB via dependency override; skip app startup side effects.
    original_startup = list(app.router.on_startup)
    app.router.on_startup.clear()
    with TestClient(app) as test_client:
        yield test_client
    app.router.on_startup[:] = original_startup
    app.dependency_overrides.clear()


def actor_headers(actor_id: str, role: str) -> dict[str, str]:
    return {"X-Actor-Id": actor_id, "X-Actor-Role": role}


@pytest.fixture()
def patient() -> dict[str, str]:
    return actor_headers("patient-1", "patient")


@pytest.fixture()
def other_patient() -> dict[str, str]:
    return actor_headers("patient-2", "patient")


@pytest.fixture()
def doctor() -> dict[str, str]:
    return actor_headers("doctor-1", "doctor")


@pytest.fixture()
def other_doctor() -> dict[str, str]:
    return actor_headers("doctor-2", "doctor")
