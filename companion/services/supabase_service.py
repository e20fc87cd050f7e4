"""
Supabase persistence layer for signed-in learners.

Tables (all keyed by the learner's auth user id):
- profiles        id, email, bonk_points, total_corrections, languages_learned,
                  streak_days, level, daily_challenge
- chat_sessions   id, user_id, corrected_text, input_text, language, model,
                  messages (jsonb), created_at
- saved_lessons   id, user_id, title, content, created_at

Functions here are thin synchronous CRUD calls; the storage adapter decides
how they are scheduled and how failures are reported.
"""

import logging
import os
from typing import Optional

from supabase import create_client, Client

logger = logging.getLogger(__name__)

_client: Optional[Client] = None


def _get_client() -> Client:
    global _client
    if _client is None:
        url = os.getenv("SUPABASE_URL", "")
        key = os.getenv("SUPABASE_ANON_KEY", "")
        if not url or not key:
            raise RuntimeError("SUPABASE_URL and SUPABASE_ANON_KEY must be set")
        _client = create_client(url, key)
    return _client


# ── profiles ───────────────────────────────────────────────────────────

def get_profile(user_id: str) -> Optional[dict]:
    """Load the profile row for a user. Returns None if it does not exist."""
    res = _get_client().table("profiles").select("*").eq("id", user_id).execute()
    if res.data:
        return res.data[0]
    return None


def create_profile(user_id: str, fields: dict) -> dict:
    """Insert a profile row and return it."""
    res = _get_client().table("profiles").insert({"id": user_id, **fields}).execute()
    return res.data[0] if res.data else {}


def update_profile(user_id: str, fields: dict) -> None:
    """Update counters on an existing profile row."""
    _get_client().table("profiles").update(fields).eq("id", user_id).execute()
    logger.info("Updated profile %s (%s)", user_id, ", ".join(sorted(fields)))


# ── chat sessions ──────────────────────────────────────────────────────

def list_chat_sessions(user_id: str) -> list[dict]:
    """Return all chat sessions for a user, newest first."""
    res = (
        _get_client()
        .table("chat_sessions")
        .select("*")
        .eq("user_id", user_id)
        .order("created_at", desc=True)
        .execute()
    )
    return res.data


def find_chat_session(user_id: str, corrected_text: str) -> Optional[dict]:
    """Return the chat session whose corrected text matches exactly, if any."""
    res = (
        _get_client()
        .table("chat_sessions")
        .select("*")
        .eq("user_id", user_id)
        .eq("corrected_text", corrected_text)
        .limit(1)
        .execute()
    )
    if res.data:
        return res.data[0]
    return None


def insert_chat_session(row: dict) -> dict:
    res = _get_client().table("chat_sessions").insert(row).execute()
    return res.data[0] if res.data else row


def update_chat_session(session_id: str, user_id: str, fields: dict) -> None:
    (
        _get_client()
        .table("chat_sessions")
        .update(fields)
        .eq("id", session_id)
        .eq("user_id", user_id)
        .execute()
    )


# ── saved lessons ──────────────────────────────────────────────────────

def list_lessons(user_id: str) -> list[dict]:
    """Return all saved lessons for a user, newest first."""
    res = (
        _get_client()
        .table("saved_lessons")
        .select("*")
        .eq("user_id", user_id)
        .order("created_at", desc=True)
        .execute()
    )
    return res.data


def insert_lesson(row: dict) -> dict:
    res = _get_client().table("saved_lessons").insert(row).execute()
    return res.data[0] if res.data else row


def delete_lesson(lesson_id: str, user_id: str) -> None:
    _get_client().table("saved_lessons").delete().eq("id", lesson_id).eq("user_id", user_id).execute()
    logger.info("Deleted lesson %s for user %s", lesson_id, user_id)
