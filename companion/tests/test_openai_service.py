"""
Tests for companion.services.openai_service module.

Verifies:
- Service initializes in mock mode by default
- Mock detection uses the keyword heuristic
- Mock correction answers scripted sentences and tidies everything else
- Mock chat returns the explanation, cycling replies or the lesson
- Markdown fences are stripped from model output
"""

import pytest

from companion.mock_data import MOCK_CHAT_REPLIES, MOCK_EXPLANATION, MOCK_LESSON
from companion.services.openai_service import (
    LESSON_SYSTEM_PROMPT,
    OpenAIService,
    _strip_markdown_fences,
    _tidy_sentence,
)


class TestOpenAIServiceInit:
    """Tests for OpenAIService initialization."""

    def test_initializes_in_mock_mode(self):
        """Verify service initializes with mock_mode=True when MOCK_MODE=true."""
        svc = OpenAIService()
        assert svc.mock_mode is True

    def test_does_not_have_real_client_in_mock_mode(self):
        """Verify real client attributes are not set in mock mode."""
        svc = OpenAIService()
        assert not hasattr(svc, "_client")
        assert not hasattr(svc, "_detect_model")


class TestOpenAIServiceMock:
    """Tests for mock mode responses."""

    @pytest.fixture
    def service(self):
        """Create a fresh OpenAIService for each test."""
        return OpenAIService()

    @pytest.mark.asyncio
    async def test_detect_language(self, service, spanish_sentence):
        assert await service.detect_language(spanish_sentence) == "spanish"

    @pytest.mark.asyncio
    async def test_correct_scripted_sentence(self, service, spanish_sentence):
        """Scripted inputs return their scripted correction, whitespace ignored."""
        corrected = await service.correct_text(f"  {spanish_sentence}  ", language="spanish")
        assert corrected == "Me gusta mucho el cine y la pizza, es mi favorita."

    @pytest.mark.asyncio
    async def test_correct_unscripted_sentence_is_tidied(self, service):
        assert await service.correct_text("hola   como estas") == "Hola como estas."

    @pytest.mark.asyncio
    async def test_first_chat_is_explanation(self, service):
        reply = await service.chat([{"role": "user", "content": "explain"}])
        assert reply == MOCK_EXPLANATION

    @pytest.mark.asyncio
    async def test_follow_up_replies_cycle(self, service):
        history = [
            {"role": "assistant", "content": MOCK_EXPLANATION},
            {"role": "user", "content": "why?"},
        ]
        replies = [await service.chat(history) for _ in range(len(MOCK_CHAT_REPLIES) + 1)]
        assert replies[: len(MOCK_CHAT_REPLIES)] == MOCK_CHAT_REPLIES
        assert replies[-1] == MOCK_CHAT_REPLIES[0]

    @pytest.mark.asyncio
    async def test_lesson_prompt_returns_lesson(self, service):
        reply = await service.chat(
            [{"role": "user", "content": "summarise"}], system_prompt=LESSON_SYSTEM_PROMPT
        )
        assert reply == MOCK_LESSON


class TestTextHelpers:
    """Tests for output clean-up helpers."""

    def test_strip_json_fence(self):
        assert _strip_markdown_fences('```json\n{"language": "french"}\n```') == '{"language": "french"}'

    def test_plain_text_untouched(self):
        assert _strip_markdown_fences("  Hola.  ") == "Hola."

    def test_tidy_sentence(self):
        assert _tidy_sentence("i like it ,really") == "I like it,really."

    def test_tidy_keeps_existing_punctuation(self):
        assert _tidy_sentence("what is this?") == "What is this?"
