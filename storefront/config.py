import logging
import os
from typing import Optional

logger = logging.getLogger(__name__)


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def load_secret(env_name: str, file_name: str) -> Optional[str]:
    """Read a secret from the environment, then from mounted secret files."""
    value = os.getenv(env_name)
    if value:
        return value.strip()
    for directory in ("/etc/secrets", "/var/secrets"):
        try:
            with open(os.path.join(directory, file_name), "r") as f:
                value = f.read().strip()
        except (FileNotFoundError, PermissionError):
            continue
        if value:
            return value
    return None


# Persistence
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./pharmacy.db")
SEED_ON_STARTUP = _env_flag("SEED_ON_STARTUP", "true")

# Auth
DEFAULT_JWT_SECRET = "change-me"
JWT_SECRET = load_secret("JWT_SECRET", "jwt-secret") or DEFAULT_JWT_SECRET
JWT_ALGORITHM = "HS256"
TOKEN_TTL_HOURS = int(os.getenv("TOKEN_TTL_HOURS", "24"))

# Assistant
GEMINI_API_KEY = load_secret("GEMINI_API_KEY", "gemini-api-key")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.7"))
LLM_MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "2000"))
MAX_TOOL_ROUNDS = int(os.getenv("MAX_TOOL_ROUNDS", "5"))
CHAT_HISTORY_LIMIT = int(os.getenv("CHAT_HISTORY_LIMIT", "20"))
CHAT_SESSION_TTL_SECONDS = int(os.getenv("CHAT_SESSION_TTL_SECONDS", "3600"))
MAX_CHAT_SESSIONS = int(os.getenv("MAX_CHAT_SESSIONS", "1000"))

# Service wiring
PORT = int(os.getenv("PORT", "8000"))
STOREFRONT_URL = os.getenv("STOREFRONT_URL", "http://localhost:8000")
WARMUP_INTERVAL_SECONDS = int(os.getenv("WARMUP_INTERVAL_SECONDS", "600"))
