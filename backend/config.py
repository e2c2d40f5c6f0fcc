# backend/config.py
import os
import logging
from pathlib import Path
from dotenv import load_dotenv

log = logging.getLogger("config")

# --- Load env from backend/.env OR .env (whichever exists) ---
# Works whether you run from repo root or backend/
root = Path(__file__).resolve().parents[1]          # project root
backend_env = root / "backend" / ".env"
root_env = root / ".env"
if backend_env.exists():
    load_dotenv(backend_env)
elif root_env.exists():
    load_dotenv(root_env)


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() == "true"


# === 🤖 AI (OpenAI-compatible endpoint, Groq by default) ===
# Keys are tried in order; the second one only kicks in on 401/429.
LLM_API_KEYS = [k for k in (os.getenv("GROQ_API_KEY"), os.getenv("GROQ_API_KEY2")) if k]
if not LLM_API_KEYS:
    log.warning("No GROQ_API_KEY set; AI-backed endpoints will fail until one is configured")

LLM_BASE_URL = os.getenv("LLM_BASE_URL", "https://api.groq.com/openai/v1")
LLM_MODEL = os.getenv("LLM_MODEL", "llama-3.3-70b-versatile")
LLM_MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "4000"))

# === 🔎 Google Custom Search ===
GOOGLE_CSE_API_KEY = os.getenv("GOOGLE_CSE_API_KEY")
GOOGLE_CSE_ID = os.getenv("GOOGLE_CSE_ID")
WEB_SEARCH_URL = os.getenv("WEB_SEARCH_URL", "https://www.googleapis.com/customsearch/v1")
WEB_SEARCH_TIMEOUT_SECS = float(os.getenv("WEB_SEARCH_TIMEOUT_SECS", "15"))
WEB_SEARCH_RETRIES = int(os.getenv("WEB_SEARCH_RETRIES", "1"))

# === 🧊 Cache settings ===
CACHE_BACKEND = os.getenv("CACHE_BACKEND", "sql").strip().lower()      # sql | memory
TRENDING_DOMAINS_TTL_HOURS = float(os.getenv("TRENDING_DOMAINS_TTL_HOURS", "24"))
CAREER_KEYWORD_TTL_HOURS = float(os.getenv("CAREER_KEYWORD_TTL_HOURS", str(24 * 30)))
WEB_SEARCH_TTL_HOURS = float(os.getenv("WEB_SEARCH_TTL_HOURS", str(24 * 7)))
WEB_NEWS_TTL_HOURS = float(os.getenv("WEB_NEWS_TTL_HOURS", "24"))
# Coalesce concurrent misses for the same key into one upstream call
CACHE_COALESCE_MISSES = _flag("CACHE_COALESCE_MISSES")

# === 🗺️ Learning path versions ===
PATH_VERSION_KEEP = int(os.getenv("PATH_VERSION_KEEP", "50"))

# === 🌍 CORS Settings ===
ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "ALLOWED_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173"
    ).split(",")
]

# === 🗄️ Database Configuration (robust) ===
def _resolve_sqlite_url(url: str) -> str:
    """Turn 'sqlite:///relative.db' into an absolute path under project root.
    Keep ':memory:' as-is. Ensure absolute paths use 4 slashes."""
    if not url.startswith("sqlite:"):
        return url
    if ":memory:" in url:
        return url
    prefix = "sqlite:///"
    if url.startswith(prefix):
        path = url[len(prefix):]
        if Path(path).is_absolute():
            return f"sqlite:////{Path(path).as_posix().lstrip('/')}"
        abs_path = (root / path).resolve()
        return f"sqlite:////{abs_path.as_posix().lstrip('/')}"
    return url

# Prefer env DATABASE_URL; if missing, persist to ./data/careerpaths.db
_env_db = os.getenv("DATABASE_URL")
if _env_db:
    DATABASE_URL = _resolve_sqlite_url(_env_db)
else:
    data_dir = (root / "data").resolve()
    data_dir.mkdir(parents=True, exist_ok=True)
    sqlite_path = (data_dir / "careerpaths.db").resolve()
    DATABASE_URL = f"sqlite:////{sqlite_path.as_posix().lstrip('/')}"

# Optional SQL echo for debugging (SQL_ECHO=true)
SQL_ECHO = _flag("SQL_ECHO")
