"""
Application configuration settings.
Loads from .env file first (overrides shell env for local dev), then pydantic reads from environment.
Production: set env vars in the platform (Docker, K8s, etc.); .env is optional.

All CV-service configs and constants are centralized here.
"""
from pathlib import Path

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve .env path: cvfolio/.env (absolute path, works regardless of cwd)
_BASE_DIR = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = (_BASE_DIR / ".env").resolve()

# Load .env into environment BEFORE pydantic reads. override=True ensures .env
# values override any shell env (e.g. stale AWS_ACCESS_KEY_ID from elsewhere).
# When .env doesn't exist (prod), this is a no-op; platform env vars are used.
if _ENV_FILE.exists():
    load_dotenv(_ENV_FILE, override=True)


class Settings(BaseSettings):
    """Application settings. Source: env vars (after dotenv load)."""

    # App
    app_name: str = "cvfolio"
    app_version: str = "1.0.0"
    port: int = 8001

    # Database
    database_url: str = "sqlite:///./cvfolio.db"
    db_connect_timeout: int = 10
    db_pool_timeout: int = 10

    # Auth (tokens are issued by the site's auth service; we only verify them)
    secret_key: str = "your-secret-key-change-in-production"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    # Storage backend: "auto" picks S3 when AWS credentials are set, else local
    storage_backend: str = "auto"
    upload_dir: str = "uploads"
    upload_url_prefix: str = "/uploads"
    storage_connect_timeout: int = 5
    storage_read_timeout: int = 30
    storage_max_attempts: int = 3

    # AWS S3
    aws_access_key_id: str = ""
    aws_secret_access_key: str = ""
    aws_region: str = "eu-central-1"
    aws_bucket_name: str = "cv-files"

    # CV versions
    cv_key_prefix: str = "cv"
    cv_max_file_size_bytes: int = 10 * 1024 * 1024
    # Blobs younger than this are never swept; an upload may not have committed its row yet
    cv_orphan_min_age_seconds: int = 3600

    # Redis
    redis_url: str = ""

    # Cache TTLs (seconds)
    cv_overview_cache_ttl: int = 60

    # Logging
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE) if _ENV_FILE.exists() else ".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()


# --- Constants (non-env, business config) ---

# Analytics windows, in days. The histogram covers the long window, both ends inclusive.
ANALYTICS_SHORT_WINDOW_DAYS: int = 7
ANALYTICS_LONG_WINDOW_DAYS: int = 30

# Closed set of CV formats -> (file extension, content type)
CV_FORMATS: dict[str, tuple[str, str]] = {
    "pdf": ("pdf", "application/pdf"),
    "docx": ("docx", "application/vnd.openxmlformats-officedocument.wordprocessingml.document"),
    "html": ("html", "text/html"),
    "txt": ("txt", "text/plain"),
}
DEFAULT_CV_FORMAT: str = "pdf"

# File name extension -> CV format, used when the uploader does not declare one
CV_EXTENSION_FORMATS: dict[str, str] = {
    ".pdf": "pdf",
    ".docx": "docx",
    ".html": "html",
    ".htm": "html",
    ".txt": "txt",
    ".text": "txt",
}

# Template label meaning "no template"; stored as NULL
DEFAULT_TEMPLATE_NAME: str = "default"

OVERVIEW_CACHE_KEY: str = "cv_overview"
