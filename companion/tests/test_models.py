"""
Tests for companion.models module.

Verifies:
- Defaults of the session state models
- CorrectionResult is immutable
- UserProgress transitions and deduplication of learned languages
- ChatSession load-merge keeps every message from both writers
- ChatRequest accepts the camelCase systemPrompt alias
"""

import pydantic
import pytest

from companion.models import (
    ChatMessage,
    ChatRequest,
    ChatSession,
    CorrectionResult,
    DetectionState,
    InputDraft,
    LanguageSelection,
    UserProgress,
    merge_messages,
)


class TestSessionStateModels:
    """Tests for draft, detection and selection models."""

    def test_detection_state_defaults(self):
        state = DetectionState()
        assert state.language is None
        assert state.in_flight is False
        assert state.generation == 0

    def test_language_selection_defaults(self):
        selection = LanguageSelection()
        assert selection.auto_detect is True
        assert selection.manual_language == "english"

    def test_selection_resolves_detected_language(self):
        assert LanguageSelection().resolved("french") == "french"
        assert LanguageSelection().resolved("unknown") == "english"
        assert LanguageSelection(auto_detect=False, manual_language="german").resolved("french") == "german"

    def test_draft_signal(self):
        assert InputDraft(text="hola").has_signal is False
        assert InputDraft(text="hola como estas hoy").has_signal is True


class TestCorrectionResult:
    """Tests for the immutable correction result."""

    def test_is_frozen(self):
        result = CorrectionResult(
            corrected_text="Hola.", input_text="hola", language="spanish", model="gpt-4o"
        )
        with pytest.raises(pydantic.ValidationError):
            result.corrected_text = "changed"


class TestUserProgress:
    """Tests for progress counters."""

    def test_defaults(self):
        progress = UserProgress()
        assert progress.bonk_points == 0
        assert progress.total_corrections == 0
        assert progress.languages_learned == []
        assert progress.level == 1

    def test_with_correction_adds_points_and_language(self):
        progress = UserProgress().with_correction("spanish", 7)
        assert progress.bonk_points == 7
        assert progress.total_corrections == 1
        assert progress.languages_learned == ["spanish"]

    def test_with_correction_keeps_languages_unique(self):
        progress = UserProgress().with_correction("spanish", 5).with_correction("spanish", 5)
        assert progress.languages_learned == ["spanish"]
        assert progress.total_corrections == 2

    def test_with_reward_only_changes_points(self):
        before = UserProgress(bonk_points=3, total_corrections=2, languages_learned=["french"])
        after = before.with_reward(15)
        assert after.bonk_points == 18
        assert after.total_corrections == 2
        assert after.languages_learned == ["french"]
        assert before.bonk_points == 3

    def test_duplicate_languages_collapsed_on_load(self):
        progress = UserProgress.model_validate({"languages_learned": ["german", "german", "italian"]})
        assert progress.languages_learned == ["german", "italian"]

    def test_negative_points_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            UserProgress(bonk_points=-1)


class TestChatSessionMerge:
    """Tests for load-merge of concurrent session writes."""

    def _msg(self, sender, text):
        return ChatMessage(sender=sender, text=text)

    def test_merge_appends_new_tail(self):
        base = [self._msg("tutor", "explanation")]
        incoming = [*base, self._msg("user", "why?")]
        assert merge_messages(base, incoming) == incoming

    def test_merge_keeps_both_diverged_tails(self):
        """A stale writer never drops messages the other writer stored."""
        base = [self._msg("tutor", "explanation")]
        stored = [*base, self._msg("user", "first")]
        incoming = [*base, self._msg("user", "second")]
        merged = merge_messages(stored, incoming)
        assert [m.text for m in merged] == ["explanation", "first", "second"]

    def test_merge_with_empty_incoming_keeps_stored(self):
        stored = [self._msg("tutor", "explanation")]
        assert merge_messages(stored, []) == stored

    def test_merged_with_keeps_identity_and_fills_fields(self):
        stored = ChatSession(corrected_text="Hola.", messages=[self._msg("tutor", "hi")])
        incoming = ChatSession(corrected_text="Hola.", input_text="hola", language="spanish")
        merged = stored.merged_with(incoming)
        assert merged.id == stored.id
        assert merged.created_at == stored.created_at
        assert merged.input_text == "hola"
        assert merged.language == "spanish"
        assert [m.text for m in merged.messages] == ["hi"]

    def test_unknown_sender_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            ChatMessage(sender="robot", text="beep")


class TestChatRequest:
    """Tests for the chat proxy request body."""

    def test_accepts_camel_case_system_prompt(self):
        body = ChatRequest.model_validate(
            {"messages": [{"role": "user", "content": "hi"}], "systemPrompt": "be nice"}
        )
        assert body.system_prompt == "be nice"

    def test_accepts_field_name(self):
        body = ChatRequest(messages=[], system_prompt="be nice")
        assert body.system_prompt == "be nice"
