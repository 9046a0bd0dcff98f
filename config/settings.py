# config/settings.py

import os
from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# Supabase
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_SERVICE_KEY = os.getenv("SUPABASE_SERVICE_KEY")
SUPABASE_JWT_SECRET = os.getenv("SUPABASE_JWT_SECRET")

# Gemini
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-3-pro-preview")
GEMINI_FALLBACK_MODEL = os.getenv("GEMINI_FALLBACK_MODEL", "gemini-2.5-flash")
GEMINI_MAX_OUTPUT_TOKENS = int(os.getenv("GEMINI_MAX_OUTPUT_TOKENS", "64000"))
TRAINING_DESIGNS_DIR = os.getenv("TRAINING_DESIGNS_DIR", "training-designs")

# Credits
MIN_CREDITS_TO_GENERATE = int(os.getenv("MIN_CREDITS_TO_GENERATE", "5"))
CREDIT_RATE_INPUT = float(os.getenv("CREDIT_RATE_INPUT", "0.35"))  # credits per 1k input tokens
CREDIT_RATE_OUTPUT = float(os.getenv("CREDIT_RATE_OUTPUT", "1.05"))  # credits per 1k output tokens
ALLOW_NON_ATOMIC_CREDIT_FALLBACK = _env_flag("ALLOW_NON_ATOMIC_CREDIT_FALLBACK")

# Streaming
STREAM_THROTTLE_MS = int(os.getenv("STREAM_THROTTLE_MS", "50"))
CLEANUP_FRAMES_ON_FAILURE = _env_flag("CLEANUP_FRAMES_ON_FAILURE")

# Billing
DODO_API_KEY = os.getenv("DODO_API_KEY")
DODO_WEBHOOK_SECRET = os.getenv("DODO_WEBHOOK_SECRET")
DODO_ENVIRONMENT = os.getenv("DODO_ENVIRONMENT", "live_mode")
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")
