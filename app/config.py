"""
Application configuration from environment variables.

In development, .env is loaded here so every module sees the same values.
Validates critical secrets at module load; missing values raise RuntimeError.
"""
import os
from pathlib import Path

from dotenv import load_dotenv

# Environment: development | production | test (affects .env loading)
ENV = os.getenv("ENV", "development").lower()

# Load .env only in development; production should set env vars directly
if ENV == "development":
    load_dotenv(Path(__file__).resolve().parent.parent / ".env")

# --- Required (raise if missing) ---
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")
GOOGLE_REDIRECT_URI = os.getenv("GOOGLE_REDIRECT_URI")

for name, val in [
    ("GOOGLE_CLIENT_ID", GOOGLE_CLIENT_ID),
    ("GOOGLE_CLIENT_SECRET", GOOGLE_CLIENT_SECRET),
    ("GOOGLE_REDIRECT_URI", GOOGLE_REDIRECT_URI),
]:
    if not val or not str(val).strip():
        raise RuntimeError(f"Required env var {name} is missing or empty")

# Fernet key for Google tokens at rest; presence is checked in crypto.py
TOKEN_ENCRYPTION_KEY = os.getenv("TOKEN_ENCRYPTION_KEY")

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"

# drive.file: the app only sees files and folders it created itself
GOOGLE_SCOPES = [
    "https://www.googleapis.com/auth/drive.file",
    "openid",
    "email",
    "profile",
]


def _int_env(key: str, default: int, minimum: int = 0) -> int:
    try:
        return max(minimum, int(os.getenv(key, str(default))))
    except ValueError:
        return default


# --- Optional with defaults ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# OAuth CSRF: cookie name for state parameter, short-lived
OAUTH_STATE_COOKIE_NAME = os.getenv("OAUTH_STATE_COOKIE_NAME", "oauth_state")
OAUTH_STATE_MAX_AGE = 600  # 10 minutes

# Secure cookie flag (set True in production over HTTPS)
SECURE_COOKIES = os.getenv("SECURE_COOKIES", "false").lower() in ("1", "true", "yes")

# Bearer token lifetime in seconds; 0 keeps tokens valid until the next login
API_TOKEN_MAX_AGE = _int_env("API_TOKEN_MAX_AGE", 0)

# Refresh the Google access token this many seconds before it expires
GOOGLE_TOKEN_REFRESH_LEEWAY = _int_env("GOOGLE_TOKEN_REFRESH_LEEWAY", 300)

# Presigned URLs: lifetime of a public token (default 5 years)
PRESIGN_TTL_DAYS = _int_env("PRESIGN_TTL_DAYS", 365 * 5, minimum=1)

# Base for presigned URLs, e.g. https://files.example.com; empty = request host
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "").rstrip("/")

# Incoming uploads are buffered here and removed once the Drive upload ends
UPLOAD_TMP_DIR = os.getenv("UPLOAD_TMP_DIR", "uploads")

# Request timeouts (connect, read) in seconds
DRIVE_REQUEST_TIMEOUT = (5, 60)  # connect 5s, read 60s
DRIVE_DOWNLOAD_TIMEOUT = (5, 120)  # streaming download: 120s read
DRIVE_UPLOAD_TIMEOUT = (5, 600)  # resumable upload body: 10 min read
OAUTH_REQUEST_TIMEOUT = (5, 30)

# Chunk size for streaming object bytes back to the caller
DOWNLOAD_CHUNK_SIZE = _int_env("DOWNLOAD_CHUNK_SIZE", 64 * 1024, minimum=1024)

# Database URL (SQLite default; use Postgres URL in production)
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./app.db")

# Skip create_all at startup (set in production when using migrations)
SKIP_DB_INIT = os.getenv("SKIP_DB_INIT", "false").lower() in ("1", "true", "yes")
