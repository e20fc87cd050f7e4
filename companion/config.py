import os
import sys
from pathlib import Path
from dotenv import load_dotenv

_project_root = Path(__file__).resolve().parent.parent

# Load .env from project root (one level up from companion/)
_env_path = _project_root / ".env"
# In pytest, keep config deterministic from env vars set by tests.
if "pytest" not in sys.modules:
    load_dotenv(_env_path)

# Mock Mode Toggle
# When True, the AI services answer from mock_data and a keyword heuristic
# When False, real OpenAI calls are made (requires valid API keys)
MOCK_MODE = os.getenv("MOCK_MODE", "true").lower() in ("true", "1", "yes")

# OpenAI - correction, language detection and tutor chat
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_ORG_ID = os.getenv("OPENAI_ORG_ID", "")
DEFAULT_MODEL = os.getenv("DEFAULT_MODEL", "gpt-3.5-turbo")

# Supabase - account-backed storage for signed-in users
SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY", "")

# Local storage - one JSON blob per collection for anonymous users
LOCAL_STORE_DIR = os.getenv("LOCAL_STORE_DIR", str(_project_root / ".companion"))

# Detection debounce and request hardening
DETECT_DEBOUNCE_MS = int(os.getenv("DETECT_DEBOUNCE_MS", "600"))
REQUEST_TIMEOUT_S = float(os.getenv("REQUEST_TIMEOUT_S", "12"))
