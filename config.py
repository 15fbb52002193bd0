import os
from typing import List, Optional


def _env_list(name: str, default: Optional[List[str]] = None) -> List[str]:
    value = os.getenv(name)
    if value is None:
        return list(default or [])
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings:
    ENV: str = os.getenv("ENV", "dev")
    DEV_MODE: bool = ENV.lower() == "dev"
    PORT: int = int(os.getenv("PORT", "8000"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    DATABASE_URL: str = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
    DATABASE_NAME: str = os.getenv("DATABASE_NAME", "campus_market")
    ALLOWED_ORIGINS: List[str] = _env_list("ALLOWED_ORIGINS", default=["*"] if DEV_MODE else [])
    # Identity provider: JWKS (RS256) in production, shared secret (HS256) in dev
    AUTH_JWKS_URL: Optional[str] = os.getenv("AUTH_JWKS_URL") or None
    AUTH_AUDIENCE: Optional[str] = os.getenv("AUTH_AUDIENCE") or None
    AUTH_ISSUER: Optional[str] = os.getenv("AUTH_ISSUER") or None
    AUTH_SECRET: str = os.getenv("AUTH_SECRET", "change_me_in_prod")


settings = Settings()

if not settings.DEV_MODE:
    if not settings.ALLOWED_ORIGINS or "*" in settings.ALLOWED_ORIGINS:
        raise RuntimeError("ALLOWED_ORIGINS must list explicit origins when ENV!=dev")
    if not settings.AUTH_JWKS_URL:
        if settings.AUTH_SECRET in ("", "change_me_in_prod") or len(settings.AUTH_SECRET) < 16:
            raise RuntimeError("Provide AUTH_JWKS_URL or a secure AUTH_SECRET when ENV!=dev")
