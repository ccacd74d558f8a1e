"""
Shared pytest configuration.

Puts the project root on sys.path so the flat modules import without an
install, and provides fakes for the OpenAI / Pinecone / LINE collaborators.
"""

import base64
import datetime
import sys
from pathlib import Path

import pytest


ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from app import create_app  # noqa: E402


class FakeClock:
    def __init__(self, start=datetime.datetime(2026, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += datetime.timedelta(seconds=seconds)


class FakeRetriever:
    def __init__(self, passages=None, error=None):
        self.passages = ["The office is open from 9:00 to 18:00."] if passages is None else passages
        self.error = error
        self.calls = []

    def retrieve(self, query, k=None):
        self.calls.append((query, k))
        if self.error:
            raise self.error
        return list(self.passages)


class FakeModel:
    def __init__(self, answer="We are open from 9:00 to 18:00.", error=None):
        self.answer = answer
        self.error = error
        self.prompts = []

    def invoke(self, prompt):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return self.answer


class FakeDelivery:
    def __init__(self, error=None):
        self.error = error
        self.replies = []

    def reply(self, reply_token, text):
        if self.error:
            raise self.error
        self.replies.append((reply_token, text))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def retriever():
    return FakeRetriever()


@pytest.fixture
def model():
    return FakeModel()


@pytest.fixture
def delivery():
    return FakeDelivery()


@pytest.fixture
def make_app(tmp_path, retriever, model, delivery, clock):
    def _make(**overrides):
        config = {
            "TESTING": True,
            "DATABASE_URL": f"sqlite:///{tmp_path / 'chat.db'}",
            "RATELIMIT_ENABLED": False,
            "LINE_CHANNEL_SECRET": None,
            "ADMIN_USER": "admin",
            "ADMIN_PASS": "secret",
            "MAX_MESSAGES_IN_DB": 20,
            "LLM_CONTEXT_HISTORY_COUNT": 3,
            "SESSION_TTL_SECONDS": 300,
            "TOP_K": 5,
            "MAX_CONTEXT_CHARS": 8000,
        }
        config.update(overrides)
        return create_app(config, retriever=retriever, model=model, delivery=delivery, clock=clock)
    return _make


@pytest.fixture
def app(make_app):
    app = make_app()
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def history(app):
    return app.extensions["chatbot"]["history"]


@pytest.fixture
def orchestrator(app):
    return app.extensions["chatbot"]["orchestrator"]


@pytest.fixture
def admin_headers():
    token = base64.b64encode(b"admin:secret").decode("ascii")
    return {"Authorization": f"Basic {token}"}
