from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_USER_ERROR_SIGNATURES = [
    "syntax error",
    "no such table",
    "no such column",
    "near ",
    "sql error",
    "parse error",
    "duplicate column",
    "table&already exists",
    "constraint",
]


class Settings(BaseSettings):
    API_BASE_URL: str = "https://api.cloudflare.com/client/v4"
    REQUEST_TIMEOUT_SECONDS: float = 30.0
    CACHE_TTL_SECONDS: float = 300.0

    # Lowercase substrings; "a&b" requires both terms to be present
    USER_ERROR_SIGNATURES: List[str] = DEFAULT_USER_ERROR_SIGNATURES

    # Optional credential activated at startup
    ACCOUNT_ID: Optional[str] = None
    API_TOKEN: Optional[str] = None

    LOG_LEVEL: str = "INFO"
    HOST: str = "127.0.0.1"
    PORT: int = 8765

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
