"""
Correction session orchestration.

CorrectionOrchestrator drives the AI calls of the correction flow and folds
their results into learner progress, chat sessions and lessons through
whichever StorageAdapter is active.

CorrectionSession is the per-learner state machine on top of it: the draft
text, the auto-detect switch and manual language, the debounced detector and
the selected model.

Progress is updated optimistically: the new in-memory value is computed
synchronously from the latest in-memory value, then persisted. A failed write
is logged and NOT rolled back, so the gain is lost if the app reloads before
the next successful write. Progress that could not be loaded is never
written: the reward is skipped and the load is retried next time.
"""

import asyncio
import logging
import random
from datetime import date
from typing import Awaitable, Callable, Optional

from companion.config import DEFAULT_MODEL
from companion.errors import PersistenceError, UpstreamError, ValidationError
from companion.models import (
    AVAILABLE_MODELS,
    SUPPORTED_LANGUAGES,
    ChatMessage,
    ChatSession,
    CorrectionResult,
    InputDraft,
    LanguageSelection,
    SavedLesson,
    UserProgress,
)
from companion.services.detection import DetectedCallback, DetectionDebouncer
from companion.services.openai_service import EXPLANATION_SYSTEM_PROMPT, LESSON_SYSTEM_PROMPT
from companion.services.storage import StorageAdapter

logger = logging.getLogger(__name__)

REWARD_MIN = 5
REWARD_MAX = 14
LESSON_REWARD = 15

EXPLANATION_FALLBACK = "Sorry, I couldn't fetch the explanation."

_MODEL_VALUES = {m["value"] for m in AVAILABLE_MODELS}


def _chat_turns(messages: list[ChatMessage]) -> list[dict]:
    return [
        {"role": "user" if m.sender == "user" else "assistant", "content": m.text}
        for m in messages
    ]


class CorrectionOrchestrator:
    """Correction, explanation and lesson flows written once against StorageAdapter."""

    def __init__(self, ai, storage: StorageAdapter, rng: Optional[random.Random] = None):
        self._ai = ai
        self.storage = storage
        self._rng = rng or random.Random()
        self.progress: Optional[UserProgress] = None
        self.last_result: Optional[CorrectionResult] = None
        self._progress_lock = asyncio.Lock()
        self._saved_progress: Optional[UserProgress] = None

    async def load_progress(self) -> Optional[UserProgress]:
        """Return the in-memory progress, loading it from storage the first time.

        Returns None when storage cannot be read; nothing is cached then, so
        the next call tries again.
        """
        if self.progress is None:
            try:
                loaded = await self.storage.get_progress()
            except PersistenceError as exc:
                logger.warning("Could not load progress, will retry on next update: %s", exc)
                return None
            # Another flow may have loaded (and updated) progress while we waited.
            if self.progress is None:
                self.progress = loaded
                self._saved_progress = loaded
        return self.progress

    def roll_reward(self) -> int:
        return self._rng.randint(REWARD_MIN, REWARD_MAX)

    async def correct(self, text: str, language: str, model: str = DEFAULT_MODEL) -> CorrectionResult:
        """Correct a text and award points for it.

        Raises:
            ValidationError: text is empty or whitespace; nothing is sent.
            UpstreamError: the corrector failed; last_result is left untouched.
        """
        if not text or not text.strip():
            raise ValidationError("Enter some text to correct")

        await self.load_progress()
        corrected = await self._call_ai(
            "Correction", self._ai.correct_text(text, model=model, language=language)
        )
        corrected = (corrected or "").strip()
        if not corrected:
            raise UpstreamError("Corrector returned an empty text")

        result = CorrectionResult(
            corrected_text=corrected, input_text=text, language=language, model=model
        )
        self.last_result = result
        reward = self.roll_reward()
        if await self._award(lambda progress: progress.with_correction(language, reward)):
            logger.info(
                "Correction in %s with %s: +%d points (%d total corrections)",
                language, model, reward, self.progress.total_corrections,
            )

        await self._persist_session(
            ChatSession(corrected_text=corrected, input_text=text, language=language, model=model)
        )
        return result

    async def open_session(self, corrected_text: str) -> ChatSession:
        """Find or start the tutor conversation for a corrected text.

        A session without messages gets the tutor's initial explanation.
        """
        if not corrected_text or not corrected_text.strip():
            raise ValidationError("No corrected text to explain")

        session = await self._find_session(corrected_text)
        if session is None:
            session = self._new_session(corrected_text)
        if session.messages:
            return session

        prompt = (
            "Please explain the corrections you made to the following text.\n\n"
            f"Corrected text:\n{corrected_text}"
        )
        try:
            explanation = await self._call_ai(
                "Explanation",
                self._ai.chat([{"role": "user", "content": prompt}], system_prompt=EXPLANATION_SYSTEM_PROMPT),
            )
        except UpstreamError:
            explanation = EXPLANATION_FALLBACK

        session = session.model_copy(
            update={"messages": [*session.messages, ChatMessage(sender="tutor", text=explanation)]}
        )
        return await self._persist_session(session) or session

    async def send_message(self, corrected_text: str, text: str) -> ChatSession:
        """Append a learner message, ask the tutor, append the reply.

        The learner message is stored before the tutor is asked, so an
        UpstreamError leaves it in the session.
        """
        if not text or not text.strip():
            raise ValidationError("Message is empty")

        session = await self._find_session(corrected_text)
        if session is None:
            session = await self.open_session(corrected_text)

        session = session.model_copy(
            update={"messages": [*session.messages, ChatMessage(sender="user", text=text.strip())]}
        )
        session = await self._persist_session(session) or session

        reply = await self._call_ai("Tutor chat", self._ai.chat(_chat_turns(session.messages)))
        session = session.model_copy(
            update={"messages": [*session.messages, ChatMessage(sender="tutor", text=reply)]}
        )
        return await self._persist_session(session) or session

    async def create_lesson(self, corrected_text: str) -> SavedLesson:
        """Summarise a tutor conversation into a lesson and award lesson points."""
        session = await self._find_session(corrected_text)
        if session is None or not session.messages:
            raise ValidationError("There is no conversation to turn into a lesson yet")

        conversation = "\n\n".join(
            f"{'User' if m.sender == 'user' else 'Tutor'}: {m.text}" for m in session.messages
        )
        prompt = (
            "Based on this conversation about language learning and corrections, create a "
            "concise learning summary with key vocabulary, useful phrases, and grammar tips:"
            f"\n\n{conversation}"
        )
        content = await self._call_ai(
            "Lesson summary",
            self._ai.chat([{"role": "user", "content": prompt}], system_prompt=LESSON_SYSTEM_PROMPT),
        )
        lesson = await self.storage.save_lesson(
            SavedLesson(
                title=f"Lesson from conversation: {date.today().isoformat()}",
                content=content,
            )
        )

        await self._award(lambda progress: progress.with_reward(LESSON_REWARD))
        return lesson

    async def list_sessions(self) -> list[ChatSession]:
        return await self.storage.list_sessions()

    async def list_lessons(self) -> list[SavedLesson]:
        return await self.storage.list_lessons()

    async def delete_lesson(self, lesson_id: str) -> None:
        await self.storage.delete_lesson(lesson_id)

    # ── internals ─────────────────────────────────────────────────────

    async def _call_ai(self, action: str, call: Awaitable[str]) -> str:
        try:
            return await call
        except UpstreamError as exc:
            logger.warning("%s failed: %s", action, exc)
            raise
        except Exception as exc:
            logger.warning("%s failed (%s): %s", action, type(exc).__name__, exc)
            raise UpstreamError(f"{action} failed: {exc}") from exc

    def _new_session(self, corrected_text: str) -> ChatSession:
        result = self.last_result
        if result is not None and result.corrected_text == corrected_text:
            return ChatSession(
                corrected_text=corrected_text,
                input_text=result.input_text,
                language=result.language,
                model=result.model,
            )
        return ChatSession(corrected_text=corrected_text)

    async def _find_session(self, corrected_text: str) -> Optional[ChatSession]:
        try:
            return await self.storage.find_session_by_corrected_text(corrected_text)
        except PersistenceError as exc:
            logger.warning("Session lookup failed: %s", exc)
            return None

    async def _award(self, update: Callable[[UserProgress], UserProgress]) -> bool:
        """Apply a progress update to the latest in-memory value and persist it.

        Returns False, changing nothing, when progress could not be loaded.
        """
        if await self.load_progress() is None:
            logger.warning("Progress unavailable; reward not recorded")
            return False
        self.progress = update(self.progress)
        await self._persist_progress()
        return True

    async def _persist_progress(self) -> None:
        # Writes are serialised and each one stores the newest value, so an
        # older snapshot can never land after a newer one.
        async with self._progress_lock:
            latest = self.progress
            if latest is None or latest is self._saved_progress:
                return
            try:
                await self.storage.save_progress(latest)
            except PersistenceError as exc:
                logger.warning(
                    "Progress not persisted; in-memory update kept and will be lost on reload: %s",
                    exc,
                )
                return
            self._saved_progress = latest

    async def _persist_session(self, session: ChatSession) -> Optional[ChatSession]:
        try:
            return await self.storage.upsert_session(session)
        except PersistenceError as exc:
            logger.warning("Session for %r not persisted: %s", session.corrected_text[:40], exc)
            return None


class CorrectionSession:
    """Per-learner state: draft, language selection, detector and model."""

    def __init__(
        self,
        ai,
        storage: StorageAdapter,
        debounce: float = 0.6,
        timeout: float = 12.0,
        model: str = DEFAULT_MODEL,
        on_detected: Optional[DetectedCallback] = None,
        rng: Optional[random.Random] = None,
    ):
        self.orchestrator = CorrectionOrchestrator(ai, storage, rng=rng)
        self.detector = DetectionDebouncer(
            ai.detect_language, delay=debounce, timeout=timeout, on_detected=on_detected
        )
        self.draft = InputDraft()
        self.selection = LanguageSelection()
        self.model = model

    @property
    def effective_language(self) -> str:
        return self.selection.resolved(self.detector.state.language)

    def set_text(self, text: str) -> None:
        self.draft = InputDraft(text=text)
        self.detector.on_text_change(text)

    def set_auto_detect(self, enabled: bool) -> None:
        """Switch auto-detect; switching it off keeps the language in use."""
        if enabled == self.selection.auto_detect:
            return
        if not enabled:
            self.selection.manual_language = self.effective_language
        self.selection.auto_detect = enabled
        self.detector.set_enabled(enabled)
        if enabled:
            self.detector.on_text_change(self.draft.text)

    def select_language(self, language: str) -> None:
        """Pick a language by hand. Doing so turns auto-detect off."""
        if language not in SUPPORTED_LANGUAGES:
            raise ValidationError(f"Unsupported language: {language}")
        if self.selection.auto_detect:
            self.selection.auto_detect = False
            self.detector.set_enabled(False)
        self.selection.manual_language = language

    def select_model(self, model: str) -> None:
        if model not in _MODEL_VALUES:
            raise ValidationError(f"Unknown model: {model}")
        self.model = model

    async def correct(self) -> CorrectionResult:
        return await self.orchestrator.correct(self.draft.text, self.effective_language, self.model)

    def snapshot(self) -> dict:
        state = self.detector.state
        return {
            "text": self.draft.text,
            "has_signal": self.draft.has_signal,
            "auto_detect": self.selection.auto_detect,
            "manual_language": self.selection.manual_language,
            "detected_language": state.language,
            "detecting": state.in_flight,
            "generation": state.generation,
            "language": self.effective_language,
            "model": self.model,
        }

    def close(self) -> None:
        self.detector.close()
