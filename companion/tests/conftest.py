"""
Shared test fixtures for the Bonk Language Companion tests.

Provides a scripted AI double, storage doubles (flaky local store and an
in-memory Supabase), a test client, and common test data used across all
test modules.
"""

import asyncio
import weakref

import pytest
from fastapi.testclient import TestClient

from companion.errors import PersistenceError
from companion.services.storage import LocalStorageAdapter

SPANISH_SENTENCE = "Me gusta mucho el cine y la pizza, es my favorite"
FRENCH_SENTENCE = "je suis aller au parc hier avec mes amis"


class FakeAI:
    """Scripted stand-in for OpenAIService that records every call."""

    def __init__(self):
        self.detect_calls: list[str] = []
        self.correct_calls: list[dict] = []
        self.chat_calls: list[dict] = []
        self.languages: dict[str, str] = {}
        self.default_language = "spanish"
        self.detect_gates: dict[str, asyncio.Event] = {}
        self.chat_gate: asyncio.Event | None = None
        self.detect_error: Exception | None = None
        self.correct_error: Exception | None = None
        self.chat_error: Exception | None = None
        self.corrections: dict[str, str] = {}

    async def detect_language(self, text: str) -> str:
        self.detect_calls.append(text)
        gate = self.detect_gates.get(text)
        if gate is not None:
            await gate.wait()
        if self.detect_error is not None:
            raise self.detect_error
        return self.languages.get(text, self.default_language)

    async def correct_text(self, text: str, model: str = "gpt-3.5-turbo", language: str = "") -> str:
        self.correct_calls.append({"text": text, "model": model, "language": language})
        if self.correct_error is not None:
            raise self.correct_error
        return self.corrections.get(text, text.strip().capitalize() + ".")

    async def chat(self, messages: list[dict], system_prompt=None, model: str = "gpt-3.5-turbo") -> str:
        self.chat_calls.append({"messages": messages, "system_prompt": system_prompt})
        if self.chat_gate is not None:
            await self.chat_gate.wait()
        if self.chat_error is not None:
            raise self.chat_error
        return f"tutor reply {len(self.chat_calls)}"


class FlakyStorage(LocalStorageAdapter):
    """Local storage whose writes can be switched to fail."""

    def __init__(self, directory):
        super().__init__(directory)
        self.fail_progress = False
        self.fail_sessions = False

    async def save_progress(self, progress):
        if self.fail_progress:
            raise PersistenceError("progress write refused")
        await super().save_progress(progress)

    async def upsert_session(self, session):
        if self.fail_sessions:
            raise PersistenceError("session write refused")
        return await super().upsert_session(session)


class FakeSupabase:
    """In-memory replacement for the functions in supabase_service."""

    FUNCTIONS = (
        "get_profile", "create_profile", "update_profile",
        "list_chat_sessions", "find_chat_session", "insert_chat_session",
        "update_chat_session", "list_lessons", "insert_lesson", "delete_lesson",
    )

    def __init__(self):
        self.profiles: dict[str, dict] = {}
        self.sessions: list[dict] = []
        self.lessons: list[dict] = []
        self.failing: set[str] = set()

    def wrap(self, name: str):
        fn = getattr(self, name)

        def call(*args):
            if name in self.failing:
                raise RuntimeError(f"{name} unavailable")
            return fn(*args)

        return call

    def get_profile(self, user_id):
        row = self.profiles.get(user_id)
        return dict(row) if row else None

    def create_profile(self, user_id, fields):
        self.profiles[user_id] = {"id": user_id, **fields}
        return dict(self.profiles[user_id])

    def update_profile(self, user_id, fields):
        self.profiles.setdefault(user_id, {"id": user_id}).update(fields)

    def list_chat_sessions(self, user_id):
        rows = [dict(r) for r in self.sessions if r["user_id"] == user_id]
        return sorted(rows, key=lambda r: r["created_at"], reverse=True)

    def find_chat_session(self, user_id, corrected_text):
        for row in self.sessions:
            if row["user_id"] == user_id and row["corrected_text"] == corrected_text:
                return dict(row)
        return None

    def insert_chat_session(self, row):
        self.sessions.append(dict(row))
        return dict(row)

    def update_chat_session(self, session_id, user_id, fields):
        for row in self.sessions:
            if row["id"] == session_id and row["user_id"] == user_id:
                row.update(fields)

    def list_lessons(self, user_id):
        return [dict(r) for r in self.lessons if r["user_id"] == user_id]

    def insert_lesson(self, row):
        self.lessons.append(dict(row))
        return dict(row)

    def delete_lesson(self, lesson_id, user_id):
        self.lessons = [
            r for r in self.lessons if not (r["id"] == lesson_id and r["user_id"] == user_id)
        ]


@pytest.fixture(autouse=True)
def mock_mode_env(monkeypatch, tmp_path):
    """Ensure MOCK_MODE=true, no API keys and a throwaway local store for all tests."""
    monkeypatch.setenv("MOCK_MODE", "true")
    monkeypatch.setenv("OPENAI_API_KEY", "")
    monkeypatch.setenv("OPENAI_ORG_ID", "")
    monkeypatch.setenv("SUPABASE_URL", "")
    monkeypatch.setenv("SUPABASE_ANON_KEY", "")

    from companion import config
    from companion.services import storage

    monkeypatch.setattr(config, "LOCAL_STORE_DIR", str(tmp_path / "local-store"))
    monkeypatch.setattr(config, "DETECT_DEBOUNCE_MS", 10)
    monkeypatch.setattr(storage, "_remote_adapters", weakref.WeakValueDictionary())


@pytest.fixture
def test_client():
    """Create a FastAPI TestClient for route testing."""
    from companion.main import app
    return TestClient(app)


@pytest.fixture
def fake_ai():
    return FakeAI()


@pytest.fixture
def local_storage(tmp_path):
    return LocalStorageAdapter(tmp_path / "adapter")


@pytest.fixture
def flaky_storage(tmp_path):
    return FlakyStorage(tmp_path / "flaky")


@pytest.fixture
def fake_supabase(monkeypatch):
    """Patch supabase_service with an in-memory table set."""
    from companion.services import supabase_service

    fake = FakeSupabase()
    for name in FakeSupabase.FUNCTIONS:
        monkeypatch.setattr(supabase_service, name, fake.wrap(name))
    return fake


@pytest.fixture
def spanish_sentence():
    return SPANISH_SENTENCE


@pytest.fixture
def french_sentence():
    return FRENCH_SENTENCE
