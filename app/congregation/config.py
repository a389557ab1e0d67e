import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str

    congregation_name: str

    workbook_base_url: str
    workbook_proxies: tuple[str, ...]
    workbook_timeout_seconds: int


DEFAULT_WORKBOOK_PROXIES = (
    "https://api.allorigins.win/get?url={url}",
    "https://corsproxy.io/?{url}",
    "https://cors-anywhere.herokuapp.com/{url}",
)


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _split_proxies(raw: str) -> tuple[str, ...]:
    if not raw:
        return DEFAULT_WORKBOOK_PROXIES
    if raw.lower() == "none":
        return ()
    return tuple(p.strip() for p in raw.split(",") if p.strip())


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///congregation.db"),
        congregation_name=_getenv("CONGREGATION_NAME", "Congregation"),
        workbook_base_url=_getenv("WORKBOOK_BASE_URL", "https://www.jw.org/en/library/jw-meeting-workbook"),
        workbook_proxies=_split_proxies(_getenv("WORKBOOK_PROXIES")),
        workbook_timeout_seconds=_getenv_int("WORKBOOK_TIMEOUT_SECONDS", 15),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "CONGREGATION_NAME": s.congregation_name,
        "WORKBOOK_BASE_URL": s.workbook_base_url,
        "WORKBOOK_PROXIES": list(s.workbook_proxies),
        "WORKBOOK_TIMEOUT_SECONDS": s.workbook_timeout_seconds,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
        "MAX_CONTENT_LENGTH": 5 * 1024 * 1024,
    }
