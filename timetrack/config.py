import os

from .errors import ConfigurationError


DEFAULT_SQLITE_PATH = "./timetrack.db"
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{DEFAULT_SQLITE_PATH}")

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24 * 7)))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
SSE_HEARTBEAT_SECONDS = float(os.getenv("SSE_HEARTBEAT_SECONDS", "30"))

DEFAULT_ORIGINS = [
    "http://localhost:3010",
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]


def get_secret_key() -> str:
    # Read on every use so a missing key fails the request, not the import.
    secret = os.getenv("SECRET_KEY", "").strip()
    if not secret:
        raise ConfigurationError("JWT secret not configured")
    return secret


def get_allowed_origins() -> list[str]:
    if os.getenv("ALLOW_ALL_ORIGINS") == "1":
        return ["*"]
    origins = list(DEFAULT_ORIGINS)
    extra_origins = os.getenv("FRONTEND_ORIGINS", "")
    if extra_origins:
        origins.extend(
            origin.strip()
            for origin in extra_origins.split(",")
            if origin.strip()
        )
    return origins
