"""Shared fixtures: an isolated SQLite database, fake AI providers and fake sockets."""
# ruff: noqa: E402

import asyncio
import os
import re
from typing import Dict, List, Optional

# Must be set before the app modules read their configuration
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTH_TOKENS"] = (
    "token-seed:seed,token-a:user-a,token-b:user-b,token-c:user-c,token-outsider:outsider"
)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from starlette.websockets import WebSocketState

from app.core.db import get_db
from app.core.errors import EmbeddingServiceUnavailable
from app.main import app, get_agenda_generator, get_embedding_provider
from app.models.orm.base import Base
from app.models.orm.user import UserORM
from app.models.schemas.study_session import SessionAgenda

AUTH = {name: {"Authorization": f"Bearer token-{name}"} for name in ("seed", "a", "b", "c", "outsider")}

VOCABULARY = [
    "calculus",
    "physics",
    "chemistry",
    "biology",
    "history",
    "algebra",
    "statistics",
    "literature",
]


class FakeEmbeddingProvider:
    """
    Deterministic bag-of-words embeddings over a small vocabulary.

    ``vectors`` pins exact vectors for given texts; texts in ``fail_on`` raise
    EmbeddingServiceUnavailable. Every call is recorded in ``calls``.
    """

    def __init__(
        self,
        vectors: Optional[Dict[str, List[float]]] = None,
        fail_on: Optional[set] = None,
    ):
        self.vectors = vectors or {}
        self.fail_on = fail_on or set()
        self.calls: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            # Let other candidate tasks run, like a real network call would
            await asyncio.sleep(0)
            if text in self.fail_on:
                raise EmbeddingServiceUnavailable()
            if text in self.vectors:
                return list(self.vectors[text])
            tokens = re.findall(r"[a-z]+", text.lower())
            return [float(tokens.count(word)) for word in VOCABULARY]
        finally:
            self.in_flight -= 1


class FakeAgendaGenerator:
    def __init__(self, agenda: Optional[SessionAgenda] = None):
        self.agenda = agenda or SessionAgenda.model_validate(
            {
                "objectives": ["Review limits", "Practice derivatives"],
                "practiceQuestions": [
                    {"question": "What is d/dx x^2?", "answer": "2x"},
                ],
                "timeSchedule": [
                    {"time": "0-45 min", "activity": "Limits"},
                    {"time": "45-90 min", "activity": "Derivatives"},
                ],
            }
        )
        self.requests: List[dict] = []

    async def generate(self, course_name: str, topics: List[str], duration: int) -> SessionAgenda:
        self.requests.append({"course_name": course_name, "topics": topics, "duration": duration})
        return self.agenda


class FakeConnection:
    """Stands in for a starlette WebSocket inside the chat registry."""

    def __init__(self, name: str = "conn", broken: bool = False):
        self.name = name
        self.broken = broken
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.sent: List[dict] = []

    async def send_json(self, data, mode: str = "text") -> None:
        if self.broken:
            raise RuntimeError("socket is broken")
        self.sent.append(data)

    def disconnect(self) -> None:
        self.client_state = WebSocketState.DISCONNECTED

    def __repr__(self) -> str:
        return f"FakeConnection({self.name!r})"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def make_user(db_session):
    def _make_user(user_id: str, topics: List[str], **fields) -> UserORM:
        user = UserORM(user_id=user_id, topics=list(topics), preferred_languages=[], **fields)
        db_session.add(user)
        db_session.commit()
        return user

    return _make_user


@pytest.fixture
def embedder():
    return FakeEmbeddingProvider()


@pytest.fixture
def agenda_generator():
    return FakeAgendaGenerator()


@pytest.fixture
def client(session_factory, embedder, agenda_generator):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_embedding_provider] = lambda: embedder
    app.dependency_overrides[get_agenda_generator] = lambda: agenda_generator

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
