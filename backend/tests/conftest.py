"""Pytest configuration and fixtures."""
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import backoffice.models  # noqa: F401
from backoffice.core.config import Settings, get_settings
from backoffice.db.base import Base, get_db
from backoffice.main import app
from backoffice.models.intake import IntakeJob, IntakeResult, IntakeRun, IntakeStatus
from backoffice.services.storage import LocalBlobStore, get_blob_store

WEBHOOK_SECRET = "test-webhook-secret"


@pytest.fixture
def engine():
    """In-memory SQLite shared across threads of the test client."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def settings_factory(tmp_path):
    """Build isolated settings; keyword arguments override the defaults."""
    def _make(**overrides) -> Settings:
        values = {
            "DEBUG": False,
            "DATABASE_URL": "sqlite://",
            "STORAGE_BACKEND": "local",
            "STORAGE_LOCAL_ROOT": str(tmp_path / "blobs"),
            "PARSER_DISPATCH_URL": None,
            "PARSER_WEBHOOK_URL": None,
            "PARSER_WEBHOOK_SECRET": WEBHOOK_SECRET,
            "WEBHOOK_ENFORCE_SIGNATURE": False,
            "INTAKE_DEV_AUTOSIMULATE": None,
            "DEV_ROUTES_ENABLED": True,
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)
    return _make


@pytest.fixture
def settings(settings_factory):
    return settings_factory()


@pytest.fixture
def blob_store(settings):
    return LocalBlobStore(settings.STORAGE_LOCAL_ROOT)


@pytest.fixture
def client_factory(session_factory, blob_store):
    """TestClient wired to the test database, blob store and given settings."""
    def _make(settings: Settings) -> TestClient:
        def override_get_db():
            db = session_factory()
            try:
                yield db
            finally:
                db.close()

        def override_get_blob_store():
            yield blob_store

        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_settings] = lambda: settings
        app.dependency_overrides[get_blob_store] = override_get_blob_store
        return TestClient(app)

    yield _make
    app.dependency_overrides.clear()


@pytest.fixture
def client(client_factory, settings):
    return client_factory(settings)


@pytest.fixture
def make_succeeded_run(db_session):
    """Insert a finished run with an extraction result for an object."""
    base_time = datetime(2025, 1, 1, tzinfo=timezone.utc)
    counter = {"n": 0}

    def _make(object_id: str, data: dict, finished_at: datetime = None) -> IntakeRun:
        counter["n"] += 1
        finished = finished_at or base_time + timedelta(minutes=counter["n"])
        intake_id = str(uuid.uuid4())
        run = IntakeRun(
            id=intake_id,
            object_id=object_id,
            upload_storage_path=f"{object_id}/{intake_id}/doc.pdf",
            filename="doc.pdf",
            status=IntakeStatus.SUCCEEDED.value,
            started_at=finished,
            finished_at=finished,
            created_at=finished,
        )
        db_session.add(run)
        db_session.add(IntakeJob(
            id=str(uuid.uuid4()),
            intake_id=intake_id,
            status=IntakeStatus.SUCCEEDED.value,
            webhook_target="http://testserver/webhooks/parser",
            started_at=finished,
            finished_at=finished,
        ))
        db_session.add(IntakeResult(intake_id=intake_id, data=dict(data), created_at=finished))
        db_session.commit()
        return run

    return _make


@pytest.fixture
def make_processing_run(db_session):
    """Insert a run/job pair waiting for the parser callback."""
    def _make(object_id: str = "P1") -> tuple[IntakeRun, IntakeJob]:
        intake_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc)
        run = IntakeRun(
            id=intake_id,
            object_id=object_id,
            upload_storage_path=f"{object_id}/{intake_id}/doc.pdf",
            filename="doc.pdf",
            status=IntakeStatus.PROCESSING.value,
            started_at=now,
        )
        job = IntakeJob(
            id=str(uuid.uuid4()),
            intake_id=intake_id,
            status=IntakeStatus.PROCESSING.value,
            webhook_target="http://testserver/webhooks/parser",
            started_at=now,
        )
        db_session.add(run)
        db_session.add(job)
        db_session.commit()
        return run, job

    return _make
