# contentgen/core/config.py
import os
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv

# ================== ENV ==================

ROOT_DIR = Path(__file__).resolve().parents[2]
load_dotenv(ROOT_DIR / ".env")

def env(*names: str, default: Optional[str] = None) -> str:
    for n in names:
        v = os.environ.get(n)
        if v is not None and str(v).strip() != "":
            return v
    if default is not None:
        return default
    raise KeyError(f"Missing required env var. Tried: {', '.join(names)}")

# ================== SERVICE ==================

SERVICE_NAME = env("SERVICE_NAME", default="content-generation-service")
LOG_LEVEL = env("LOG_LEVEL", default="INFO").upper()
CORS_ORIGINS = env("CORS_ORIGINS", default="*").split(",")

# Applies to key-service and runs-service calls. Provider SDKs keep their own.
HTTP_TIMEOUT_SECONDS = float(env("HTTP_TIMEOUT_SECONDS", default="30"))

# ================== KEY SERVICE ==================

KEY_SERVICE_URL = env("KEY_SERVICE_URL", default="http://localhost:3001").rstrip("/")
KEY_SERVICE_API_KEY = os.environ.get("KEY_SERVICE_API_KEY", "").strip()

# ================== RUNS SERVICE ==================

RUNS_SERVICE_URL = env("RUNS_SERVICE_URL", default="http://localhost:3002").rstrip("/")
RUNS_SERVICE_API_KEY = os.environ.get("RUNS_SERVICE_API_KEY", "").strip()

RUNS_MAX_RETRIES = int(env("RUNS_MAX_RETRIES", default="3"))
RUNS_RETRY_BASE_DELAY = float(env("RUNS_RETRY_BASE_DELAY", default="0.5"))

# ================== DATABASE ==================

DATABASE_URL = os.environ.get("DATABASE_URL", "")

def get_database_url() -> str:
    """Get database URL - supports SQLite or MySQL."""
    if DATABASE_URL:
        return DATABASE_URL

    mysql_host = os.environ.get("MYSQL_HOST")
    if mysql_host:
        mysql_port = int(os.environ.get("MYSQL_PORT", "3306"))
        mysql_user = os.environ.get("MYSQL_USER", "root")
        mysql_password = os.environ.get("MYSQL_PASSWORD", "")
        mysql_db = os.environ.get("MYSQL_DB", "content_generation")
        return f"mysql+aiomysql://{mysql_user}:{mysql_password}@{mysql_host}:{mysql_port}/{mysql_db}?charset=utf8mb4"

    # Default to SQLite
    db_path = ROOT_DIR / "content_generation.db"
    return f"sqlite+aiosqlite:///{db_path}"
