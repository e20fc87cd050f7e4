"""
AI service for the Bonk Language Companion.

Covers the three AI collaborators of the correction flow:
- language detection   (text -> one of the supported languages or 'unknown')
- text correction      (text, model, language -> corrected text)
- tutor conversation   (chat messages, optional system prompt -> reply)

Mock mode: answers from mock_data and the keyword heuristic, no API calls.
Real mode: AsyncOpenAI chat completions bounded by asyncio.wait_for.
Every real-mode failure is raised as UpstreamError.
"""

import asyncio
import json
import logging
import os
import re

from companion.config import DEFAULT_MODEL, MOCK_MODE, REQUEST_TIMEOUT_S
from companion.errors import UpstreamError
from companion.models import SUPPORTED_LANGUAGES, UNKNOWN_LANGUAGE
from companion.services.language import heuristic_detect, normalize_language

logger = logging.getLogger(__name__)

CORRECTION_SYSTEM_PROMPT = (
    "You are a meticulous language teacher. Correct the grammar, spelling, "
    "punctuation and word choice of the user's text. Keep the meaning and tone. "
    "Reply with the corrected text only, no commentary."
)

EXPLANATION_SYSTEM_PROMPT = (
    "You are a friendly language tutor. Explain corrections clearly and briefly, "
    "one point per line, with short examples. Answer follow-up questions about "
    "grammar and vocabulary in the same encouraging tone."
)

LESSON_SYSTEM_PROMPT = (
    "You are a helpful language tutor. Create a concise learning summary from this "
    "conversation. Format your response in three clear sections: 1) Key Vocabulary "
    "(5-8 relevant words with translations), 2) Useful Phrases (3-5 practical "
    "expressions), and 3) Grammar Tips (1-2 relevant grammar points with simple "
    "examples). Keep your response concise and focused on practical language use."
)

_DETECTION_SYSTEM_PROMPT = (
    "Identify the main language of the user's text. Return ONLY valid JSON of the form "
    '{"language": "<name>"} where <name> is one of: '
    + ", ".join(SUPPORTED_LANGUAGES)
    + f", {UNKNOWN_LANGUAGE}."
)

_SENTENCE_END = (".", "!", "?", "…")


def _strip_markdown_fences(text: str) -> str:
    """Strip markdown code fences (```json ... ```) from LLM output."""
    text = text.strip()
    if text.startswith("```"):
        first_newline = text.index("\n") if "\n" in text else len(text)
        text = text[first_newline + 1:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


def _tidy_sentence(text: str) -> str:
    """Collapse whitespace, capitalise the first letter, end with punctuation."""
    tidy = re.sub(r"\s+", " ", text).strip()
    tidy = re.sub(r"\s+([,.!?;:])", r"\1", tidy)
    if not tidy:
        return tidy
    tidy = tidy[0].upper() + tidy[1:]
    if not tidy.endswith(_SENTENCE_END):
        tidy += "."
    return tidy


class OpenAIService:
    """Language detection, correction and tutor chat over OpenAI."""

    def __init__(self):
        self.mock_mode = MOCK_MODE
        self._timeout = REQUEST_TIMEOUT_S
        self._mock_reply_index = 0
        if not self.mock_mode:
            self._init_real_client()

    def _init_real_client(self):
        """Initialize AsyncOpenAI client for real completions."""
        from openai import AsyncOpenAI

        api_key = os.getenv("OPENAI_API_KEY", "")
        org_id = os.getenv("OPENAI_ORG_ID", "")
        self._client = AsyncOpenAI(
            api_key=api_key,
            organization=org_id if org_id else None,
        )
        self._detect_model = "gpt-4o-mini"

    # ── public API ────────────────────────────────────────────────────

    async def detect_language(self, text: str) -> str:
        """Classify the language of a text."""
        if self.mock_mode:
            return heuristic_detect(text)
        return await self._real_detect(text)

    async def correct_text(self, text: str, model: str = DEFAULT_MODEL, language: str = "") -> str:
        """Return the corrected version of a text."""
        if self.mock_mode:
            return self._mock_correct(text)
        return await self._real_correct(text, model=model, language=language)

    async def chat(
        self,
        messages: list[dict],
        system_prompt: str | None = None,
        model: str = DEFAULT_MODEL,
    ) -> str:
        """Ask the tutor for the next reply in a conversation."""
        if self.mock_mode:
            return self._mock_chat(messages, system_prompt)
        return await self._real_chat(messages, system_prompt=system_prompt, model=model)

    # ── mock mode ─────────────────────────────────────────────────────

    def _mock_correct(self, text: str) -> str:
        from companion.mock_data import MOCK_CORRECTIONS

        key = text.strip()
        if key in MOCK_CORRECTIONS:
            return MOCK_CORRECTIONS[key]
        return _tidy_sentence(key)

    def _mock_chat(self, messages: list[dict], system_prompt: str | None) -> str:
        from companion.mock_data import MOCK_CHAT_REPLIES, MOCK_EXPLANATION, MOCK_LESSON

        if system_prompt == LESSON_SYSTEM_PROMPT:
            return MOCK_LESSON
        if len(messages) <= 1:
            return MOCK_EXPLANATION
        reply = MOCK_CHAT_REPLIES[self._mock_reply_index % len(MOCK_CHAT_REPLIES)]
        self._mock_reply_index += 1
        return reply

    # ── real mode ─────────────────────────────────────────────────────

    async def _complete(self, model: str, messages: list[dict], temperature: float, **kwargs) -> str:
        """Run one chat completion and return its stripped text content."""
        try:
            completion = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=model,
                    messages=messages,
                    temperature=temperature,
                    **kwargs,
                ),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.error("OpenAI %s timed out (%.0fs)", model, self._timeout)
            raise UpstreamError(f"{model} timed out") from None
        except Exception as exc:
            logger.error("OpenAI %s error (%s): %s", model, type(exc).__name__, exc)
            raise UpstreamError(str(exc)) from exc

        content = (completion.choices[0].message.content or "").strip()
        if not content:
            raise UpstreamError(f"{model} returned an empty reply")
        return content

    async def _real_detect(self, text: str) -> str:
        raw = await self._complete(
            self._detect_model,
            [
                {"role": "system", "content": _DETECTION_SYSTEM_PROMPT},
                {"role": "user", "content": text},
            ],
            temperature=0.0,
            max_tokens=20,
            response_format={"type": "json_object"},
        )
        try:
            parsed = json.loads(_strip_markdown_fences(raw))
        except (json.JSONDecodeError, TypeError) as exc:
            logger.warning("Detection JSON parse failed: %s (raw=%s...)", exc, raw[:100])
            raise UpstreamError("language detector returned invalid JSON") from exc
        if not isinstance(parsed, dict):
            raise UpstreamError("language detector returned unexpected payload")
        return normalize_language(parsed.get("language"))

    async def _real_correct(self, text: str, model: str, language: str) -> str:
        system_prompt = CORRECTION_SYSTEM_PROMPT
        if language:
            system_prompt += f" The text is written in {language}; keep it in {language}."
        return await self._complete(
            model,
            [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": text},
            ],
            temperature=0.2,
        )

    async def _real_chat(self, messages: list[dict], system_prompt: str | None, model: str) -> str:
        return await self._complete(
            model,
            [
                {"role": "system", "content": system_prompt or EXPLANATION_SYSTEM_PROMPT},
                *messages,
            ],
            temperature=0.7,
        )
