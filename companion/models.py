"""
Pydantic models for the Bonk Language Companion.

Defines the data contract between the session orchestrator, the storage
adapters, the AI services and the HTTP/WebSocket routes. Everything that is
persisted or sent over the wire flows through these validated models.
"""

import uuid
from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from companion.config import DEFAULT_MODEL

UNKNOWN_LANGUAGE = "unknown"

SUPPORTED_LANGUAGES = ("english", "spanish", "french", "german", "italian", "portuguese")

AVAILABLE_MODELS = (
    {"value": "gpt-3.5-turbo", "label": "GPT-3.5 Turbo"},
    {"value": "gpt-4o-mini", "label": "GPT-4o mini"},
    {"value": "gpt-4o", "label": "GPT-4o"},
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class InputDraft(BaseModel):
    """The text currently being edited. Replaced on every keystroke."""

    text: str = Field(default="", description="Raw text as typed")

    @property
    def has_signal(self) -> bool:
        from companion.services.language import has_signal

        return has_signal(self.text)


class DetectionState(BaseModel):
    """Result of the last applied detection call."""

    language: Optional[str] = Field(
        default=None,
        description="Detected language code, 'unknown', or None when nothing is detected",
    )
    in_flight: bool = Field(default=False, description="Whether a detection request is outstanding")
    generation: int = Field(
        default=0, ge=0, description="Monotonic tag of the most recent detection request"
    )


class LanguageSelection(BaseModel):
    """Auto-detect switch plus the language the user picked by hand."""

    auto_detect: bool = Field(default=True)
    manual_language: str = Field(default="english", description="Manually chosen language")

    def resolved(self, last_detected: Optional[str]) -> str:
        from companion.services.language import resolve_language

        return resolve_language(self.auto_detect, last_detected, self.manual_language)


class CorrectionResult(BaseModel):
    """Output of one successful correction call. Immutable."""

    model_config = ConfigDict(frozen=True)

    corrected_text: str = Field(..., description="Corrected version of the input")
    input_text: str = Field(..., description="Text the user submitted")
    language: str = Field(..., description="Resolved language used for the request")
    model: str = Field(..., description="Model identifier used for the request")
    created_at: datetime = Field(default_factory=_utcnow)


class ChatMessage(BaseModel):
    """A single message in a tutor conversation."""

    sender: Literal["user", "tutor"] = Field(..., description="Who wrote the message")
    text: str = Field(..., description="Message body")


def merge_messages(existing: list[ChatMessage], incoming: list[ChatMessage]) -> list[ChatMessage]:
    """Merge two message lists that may have diverged from a common prefix.

    The stored list is kept as-is and the incoming tail past the shared prefix
    is appended, so a stale writer never drops messages another writer added.
    """
    shared = 0
    for ours, theirs in zip(existing, incoming):
        if ours != theirs:
            break
        shared += 1
    return [*existing, *incoming[shared:]]


class ChatSession(BaseModel):
    """A corrected text and the tutor conversation about it.

    Identity within a backend is the corrected text: at most one session
    exists per exact corrected-text value.
    """

    id: str = Field(default_factory=_new_id, description="Stable session id")
    corrected_text: str = Field(..., description="Corrected text this session discusses")
    input_text: str = Field(default="", description="Original text that was corrected")
    language: str = Field(default="", description="Language the correction was made in")
    model: str = Field(default="", description="Model that produced the correction")
    messages: list[ChatMessage] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)

    def merged_with(self, incoming: "ChatSession") -> "ChatSession":
        """Load-merge an incoming write into this stored session."""
        return self.model_copy(
            update={
                "messages": merge_messages(self.messages, incoming.messages),
                "input_text": incoming.input_text or self.input_text,
                "language": incoming.language or self.language,
                "model": incoming.model or self.model,
            }
        )


class UserProgress(BaseModel):
    """Gamified counters for one learner."""

    bonk_points: int = Field(default=0, ge=0, description="Point balance")
    total_corrections: int = Field(default=0, ge=0, description="Successful corrections so far")
    languages_learned: list[str] = Field(
        default_factory=list, description="Distinct languages practiced"
    )
    streak_days: int = Field(default=0, ge=0)
    level: int = Field(default=1, ge=1)
    daily_challenge: bool = Field(default=False)

    @field_validator("languages_learned")
    @classmethod
    def _unique_languages(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(value))

    def with_correction(self, language: str, reward: int) -> "UserProgress":
        """Return the progress after one successful correction."""
        learned = self.languages_learned
        if language not in learned:
            learned = [*learned, language]
        return self.model_copy(
            update={
                "bonk_points": self.bonk_points + reward,
                "total_corrections": self.total_corrections + 1,
                "languages_learned": learned,
            }
        )

    def with_reward(self, points: int) -> "UserProgress":
        """Return the progress with extra points and nothing else changed."""
        return self.model_copy(update={"bonk_points": self.bonk_points + points})


class SavedLesson(BaseModel):
    """A tiny lesson generated from a tutor conversation."""

    id: str = Field(default_factory=_new_id)
    title: str = Field(..., description="Display title")
    content: str = Field(..., description="Lesson body (vocabulary, phrases, grammar tips)")
    created_at: datetime = Field(default_factory=_utcnow)


# ---------------------------------------------------------------------------
# HTTP wire models
# ---------------------------------------------------------------------------

class DetectRequest(BaseModel):
    text: str = Field(default="", description="Text to classify")


class DetectResponse(BaseModel):
    language: str = Field(..., description="One of the supported languages or 'unknown'")


class CorrectRequest(BaseModel):
    text: str = Field(default="", description="Text to correct")
    model: str = Field(default=DEFAULT_MODEL, description="Model identifier")
    language: Optional[str] = Field(default=None, description="Resolved target language")


class CorrectResponse(BaseModel):
    corrected: str


class ChatTurn(BaseModel):
    """One message in the OpenAI chat format."""

    role: Literal["system", "user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    messages: list[ChatTurn] = Field(default_factory=list)
    model: str = Field(default=DEFAULT_MODEL)
    system_prompt: Optional[str] = Field(default=None, alias="systemPrompt")


class ChatReply(BaseModel):
    reply: str


class SyncReport(BaseModel):
    """Outcome of copying local data into an account-backed store."""

    sessions: int = Field(default=0, ge=0, description="Sessions upserted remotely")
    lessons: int = Field(default=0, ge=0, description="Lessons copied remotely")
    progress: UserProgress = Field(default_factory=UserProgress)
