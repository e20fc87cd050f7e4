"""
Storage adapters for learner progress, chat sessions and saved lessons.

The orchestrator talks to a StorageAdapter and never knows which variant is
live:

Local variant:  one JSON blob per collection in a directory. Missing or
                corrupt blobs read as empty collections.
Remote variant: account-scoped rows in Supabase. Calls run in a worker
                thread and failures surface as PersistenceError.

select_adapter() picks the variant from the authentication state, and
sync_local_to_remote() folds anonymous local data into an account after
sign-in.
"""

import abc
import asyncio
import contextlib
import json
import logging
import os
import weakref
from pathlib import Path
from typing import Optional

from pydantic import TypeAdapter, ValidationError as SchemaError

from companion import config
from companion.errors import PersistenceError
from companion.models import ChatSession, SavedLesson, SyncReport, UserProgress

logger = logging.getLogger(__name__)

PROGRESS_KEY = "languageLearnerData"
SESSIONS_KEY = "chatHistory"
LESSONS_KEY = "savedLessons"

_SESSION_LIST = TypeAdapter(list[ChatSession])
_LESSON_LIST = TypeAdapter(list[SavedLesson])


class StorageAdapter(abc.ABC):
    """Capability set shared by the local and the account-backed store."""

    @abc.abstractmethod
    async def get_progress(self) -> UserProgress: ...

    @abc.abstractmethod
    async def save_progress(self, progress: UserProgress) -> None: ...

    @abc.abstractmethod
    async def find_session_by_corrected_text(self, corrected_text: str) -> Optional[ChatSession]: ...

    @abc.abstractmethod
    async def upsert_session(self, session: ChatSession) -> ChatSession:
        """Insert the session, or load-merge it into the one with the same corrected text."""

    @abc.abstractmethod
    async def list_sessions(self) -> list[ChatSession]: ...

    @abc.abstractmethod
    async def list_lessons(self) -> list[SavedLesson]: ...

    @abc.abstractmethod
    async def save_lesson(self, lesson: SavedLesson) -> SavedLesson: ...

    @abc.abstractmethod
    async def delete_lesson(self, lesson_id: str) -> None: ...


# ---------------------------------------------------------------------------
# Local variant
# ---------------------------------------------------------------------------

class LocalStorageAdapter(StorageAdapter):
    """Durable single-device store: one JSON file per collection."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def _read(self, key: str):
        path = self._path(key)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("Could not read %s, treating as empty: %s", path, exc)
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("Corrupt %s blob, treating as empty: %s", key, exc)
            return None

    def _write(self, key: str, payload) -> None:
        path = self._path(key)
        tmp = path.with_name(path.name + ".tmp")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
            os.replace(tmp, path)
        except OSError as exc:
            raise PersistenceError(f"could not write {key}: {exc}") from exc

    def _load_progress(self) -> UserProgress:
        data = self._read(PROGRESS_KEY)
        if not isinstance(data, dict):
            return UserProgress()
        try:
            return UserProgress.model_validate(data)
        except SchemaError as exc:
            logger.warning("Invalid %s blob, using defaults: %s", PROGRESS_KEY, exc)
            return UserProgress()

    def _load_sessions(self) -> list[ChatSession]:
        data = self._read(SESSIONS_KEY)
        if data is None:
            return []
        try:
            return _SESSION_LIST.validate_python(data)
        except SchemaError as exc:
            logger.warning("Invalid %s blob, treating as empty: %s", SESSIONS_KEY, exc)
            return []

    def _load_lessons(self) -> list[SavedLesson]:
        data = self._read(LESSONS_KEY)
        if data is None:
            return []
        try:
            return _LESSON_LIST.validate_python(data)
        except SchemaError as exc:
            logger.warning("Invalid %s blob, treating as empty: %s", LESSONS_KEY, exc)
            return []

    def _store_sessions(self, sessions: list[ChatSession]) -> None:
        self._write(SESSIONS_KEY, _SESSION_LIST.dump_python(sessions, mode="json"))

    def _store_lessons(self, lessons: list[SavedLesson]) -> None:
        self._write(LESSONS_KEY, _LESSON_LIST.dump_python(lessons, mode="json"))

    async def get_progress(self) -> UserProgress:
        return self._load_progress()

    async def save_progress(self, progress: UserProgress) -> None:
        self._write(PROGRESS_KEY, progress.model_dump(mode="json"))

    async def find_session_by_corrected_text(self, corrected_text: str) -> Optional[ChatSession]:
        for session in self._load_sessions():
            if session.corrected_text == corrected_text:
                return session
        return None

    async def upsert_session(self, session: ChatSession) -> ChatSession:
        sessions = self._load_sessions()
        for index, stored in enumerate(sessions):
            if stored.corrected_text == session.corrected_text:
                merged = stored.merged_with(session)
                sessions[index] = merged
                self._store_sessions(sessions)
                return merged
        sessions.append(session)
        self._store_sessions(sessions)
        return session

    async def list_sessions(self) -> list[ChatSession]:
        return sorted(self._load_sessions(), key=lambda s: s.created_at, reverse=True)

    async def list_lessons(self) -> list[SavedLesson]:
        return sorted(self._load_lessons(), key=lambda lesson: lesson.created_at, reverse=True)

    async def save_lesson(self, lesson: SavedLesson) -> SavedLesson:
        lessons = self._load_lessons()
        lessons.append(lesson)
        self._store_lessons(lessons)
        return lesson

    async def delete_lesson(self, lesson_id: str) -> None:
        lessons = self._load_lessons()
        remaining = [lesson for lesson in lessons if lesson.id != lesson_id]
        if len(remaining) != len(lessons):
            self._store_lessons(remaining)


# ---------------------------------------------------------------------------
# Remote variant
# ---------------------------------------------------------------------------

_PROGRESS_FIELDS = tuple(UserProgress.model_fields)


def _progress_from_row(row: dict) -> UserProgress:
    return UserProgress.model_validate(
        {key: row[key] for key in _PROGRESS_FIELDS if row.get(key) is not None}
    )


def _session_from_row(row: dict) -> ChatSession:
    return ChatSession.model_validate({**row, "messages": row.get("messages") or []})


class SupabaseStorageAdapter(StorageAdapter):
    """Account-backed store scoped to one signed-in user."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        self._progress_lock = asyncio.Lock()
        # corrected text -> (lock, number of holders and waiters)
        self._session_locks: dict[str, tuple[asyncio.Lock, int]] = {}

    @contextlib.asynccontextmanager
    async def _session_lock(self, corrected_text: str):
        """Hold the lock for one corrected text; it is dropped once nobody needs it."""
        lock, users = self._session_locks.get(corrected_text, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._session_locks[corrected_text] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._session_locks[corrected_text]
            if users == 1:
                del self._session_locks[corrected_text]
            else:
                self._session_locks[corrected_text] = (lock, users - 1)

    async def _call(self, action: str, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except Exception as exc:
            logger.warning("Supabase %s failed for user %s: %s", action, self.user_id, exc)
            raise PersistenceError(f"{action} failed: {exc}") from exc

    async def get_progress(self) -> UserProgress:
        from companion.services import supabase_service

        row = await self._call("load profile", supabase_service.get_profile, self.user_id)
        if row is None:
            progress = UserProgress()
            await self._call(
                "create profile", supabase_service.create_profile, self.user_id, progress.model_dump()
            )
            logger.info("Created profile for user %s", self.user_id)
            return progress
        return _progress_from_row(row)

    async def save_progress(self, progress: UserProgress) -> None:
        from companion.services import supabase_service

        # Writes land in call order; a slow earlier write cannot overwrite a later one.
        async with self._progress_lock:
            await self._call(
                "save profile", supabase_service.update_profile, self.user_id, progress.model_dump()
            )

    async def find_session_by_corrected_text(self, corrected_text: str) -> Optional[ChatSession]:
        from companion.services import supabase_service

        row = await self._call(
            "find session", supabase_service.find_chat_session, self.user_id, corrected_text
        )
        return _session_from_row(row) if row else None

    async def upsert_session(self, session: ChatSession) -> ChatSession:
        from companion.services import supabase_service

        # Serialise upserts of the same text so two writers cannot both insert.
        async with self._session_lock(session.corrected_text):
            existing = await self.find_session_by_corrected_text(session.corrected_text)
            if existing is None:
                row = {"user_id": self.user_id, **session.model_dump(mode="json")}
                stored = await self._call("insert session", supabase_service.insert_chat_session, row)
                return _session_from_row(stored)

            merged = existing.merged_with(session)
            fields = merged.model_dump(
                mode="json", include={"input_text", "language", "model", "messages"}
            )
            await self._call(
                "update session", supabase_service.update_chat_session, merged.id, self.user_id, fields
            )
            return merged

    async def list_sessions(self) -> list[ChatSession]:
        from companion.services import supabase_service

        rows = await self._call("list sessions", supabase_service.list_chat_sessions, self.user_id)
        return [_session_from_row(row) for row in rows or []]

    async def list_lessons(self) -> list[SavedLesson]:
        from companion.services import supabase_service

        rows = await self._call("list lessons", supabase_service.list_lessons, self.user_id)
        return [SavedLesson.model_validate(row) for row in rows or []]

    async def save_lesson(self, lesson: SavedLesson) -> SavedLesson:
        from companion.services import supabase_service

        row = {"user_id": self.user_id, **lesson.model_dump(mode="json")}
        stored = await self._call("save lesson", supabase_service.insert_lesson, row)
        return SavedLesson.model_validate(stored)

    async def delete_lesson(self, lesson_id: str) -> None:
        from companion.services import supabase_service

        await self._call("delete lesson", supabase_service.delete_lesson, lesson_id, self.user_id)


# ---------------------------------------------------------------------------
# Selection and sync
# ---------------------------------------------------------------------------

# Live users share one adapter (and its locks); an adapter nobody holds is released.
_remote_adapters: "weakref.WeakValueDictionary[str, SupabaseStorageAdapter]" = (
    weakref.WeakValueDictionary()
)


def select_adapter(user_id: Optional[str]) -> StorageAdapter:
    """Account-backed storage for a signed-in user, local storage otherwise."""
    if user_id:
        adapter = _remote_adapters.get(user_id)
        if adapter is None:
            adapter = SupabaseStorageAdapter(user_id)
            _remote_adapters[user_id] = adapter
        return adapter
    return LocalStorageAdapter(config.LOCAL_STORE_DIR)


def merge_progress(first: UserProgress, second: UserProgress) -> UserProgress:
    """Combine two progress records without losing either side's gains."""
    return UserProgress(
        bonk_points=max(first.bonk_points, second.bonk_points),
        total_corrections=max(first.total_corrections, second.total_corrections),
        languages_learned=[*second.languages_learned, *first.languages_learned],
        streak_days=max(first.streak_days, second.streak_days),
        level=max(first.level, second.level),
        daily_challenge=first.daily_challenge or second.daily_challenge,
    )


async def sync_local_to_remote(local: StorageAdapter, remote: StorageAdapter) -> SyncReport:
    """Copy anonymous local data into an account after sign-in.

    Sessions go through the idempotent upsert, lessons already present with
    the same title and content are skipped, progress is merged.
    """
    sessions = await local.list_sessions()
    for session in sessions:
        await remote.upsert_session(session)

    seen = {(lesson.title, lesson.content) for lesson in await remote.list_lessons()}
    copied = 0
    for lesson in await local.list_lessons():
        if (lesson.title, lesson.content) in seen:
            continue
        await remote.save_lesson(lesson)
        seen.add((lesson.title, lesson.content))
        copied += 1

    progress = merge_progress(await local.get_progress(), await remote.get_progress())
    await remote.save_progress(progress)
    logger.info("Synced %d sessions and %d lessons to remote storage", len(sessions), copied)
    return SyncReport(sessions=len(sessions), lessons=copied, progress=progress)
