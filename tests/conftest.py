"""Test configuration and fixtures."""

from datetime import datetime, timedelta, timezone
from typing import Generator

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from campaign_workspace.api import app
from campaign_workspace.config import Settings, get_settings
from campaign_workspace.db import Base, MetadataRepository, get_db
from campaign_workspace.pipeline import ArtifactPipeline
from campaign_workspace.routes import get_object_store
from campaign_workspace.storage import FileObjectStore, create_http_client
from campaign_workspace.workspace import Workspace


class StepClock:
    """Clock that advances one second per call, so storage keys never collide."""

    def __init__(self, start: datetime = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        current = self.now
        self.now += timedelta(seconds=1)
        return current


@pytest.fixture
def engine():
    """Fresh in-memory database shared across sessions of one test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db_session(engine) -> Generator[Session, None, None]:
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture
def repository(db_session) -> MetadataRepository:
    return MetadataRepository(db_session)


@pytest.fixture
def store(tmp_path) -> FileObjectStore:
    return FileObjectStore(
        tmp_path / "storage",
        public_base_url="http://testserver",
        input_bucket="campaign-files",
        output_bucket="campaign-outputs",
        sleep=lambda seconds: None,
    )


@pytest.fixture
def http_client(store) -> Generator[httpx.Client, None, None]:
    client = create_http_client(store, timeout=5.0)
    yield client
    client.close()


@pytest.fixture
def pipeline(store, http_client) -> ArtifactPipeline:
    return ArtifactPipeline(store, http_client)


@pytest.fixture
def workspace(repository, store, pipeline) -> Workspace:
    return Workspace(repository, store, pipeline, clock=StepClock())


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        environment="test",
        auth_url=None,
        public_base_url="http://testserver",
        input_bucket="campaign-files",
        output_bucket="campaign-outputs",
        retry_backoff_strategy="none",
    )


@pytest.fixture
def client(engine, store, test_settings) -> Generator[TestClient, None, None]:
    """TestClient wired to the in-memory database and the temp object store."""
    session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def override_get_db():
        db = session_local()
        try:
            yield db
        finally:
            db.close()

    def override_get_object_store():
        yield store

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_object_store] = override_get_object_store
    app.dependency_overrides[get_settings] = lambda: test_settings
    yield TestClient(app)
    app.dependency_overrides.clear()
