import os
from pathlib import Path


BASE_DIR = Path(__file__).resolve().parent
INSTANCE_DIR = BASE_DIR / "instance"
INSTANCE_DIR.mkdir(exist_ok=True)


def _load_dotenv(path: Path) -> None:
    if not path.exists():
        return
    try:
        for raw in path.read_text(encoding="utf-8").splitlines():
            line = raw.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, val = line.split("=", 1)
            key = key.strip()
            if not key or key in os.environ:
                continue
            val = val.strip().strip("'").strip('"')
            os.environ[key] = val
    except Exception:
        # Fail open if .env can't be parsed.
        return


_load_dotenv(BASE_DIR / ".env")


def _env(key: str, default: str = "") -> str:
    return os.getenv(key, default)


def _env_bool(key: str, default: bool = False) -> bool:
    val = os.getenv(key)
    if val is None:
        return default
    return val.strip().lower() in ("1", "true", "yes", "on")


def _env_int(key: str, default: int) -> int:
    val = os.getenv(key)
    if val is None or val == "":
        return default
    try:
        return int(val)
    except Exception:
        return default


def _resolve_path(value: str, fallback: Path) -> str:
    if not value:
        return str(fallback)
    p = Path(value)
    if not p.is_absolute():
        p = BASE_DIR / p
    return str(p)


APP_NAME = _env("SURVEYDESK_APP_NAME", "SurveyDesk")
APP_VERSION = _env("SURVEYDESK_APP_VERSION", "0.3.0")
APP_ENV = _env("SURVEYDESK_ENV", "development").strip().lower()

DB_PATH = _resolve_path(_env("SURVEYDESK_DB_PATH", ""), INSTANCE_DIR / "surveydesk.db")

HOST = _env("SURVEYDESK_HOST", "127.0.0.1")
PORT = _env_int("SURVEYDESK_PORT", 5000)
DEBUG = _env_bool(
    "SURVEYDESK_DEBUG",
    APP_ENV in ("dev", "development", "local"),
)

SECRET_KEY = _env("SURVEYDESK_SECRET_KEY", "")

LOG_LEVEL = _env("SURVEYDESK_LOG_LEVEL", "DEBUG" if DEBUG else "INFO").strip().upper()

# Survey definitions with embedded images can be large.
MAX_CONTENT_MB = _env_int("SURVEYDESK_MAX_CONTENT_MB", 10)
