from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

BACKENDS = ("memory", "redis", "sql")
LOG_FORMATS = ("text", "structured", "json")


class Settings(BaseSettings):
    """Rate limiter settings loaded from environment variables.

    All settings can be configured via BUCKETLIMIT_* environment variables
    or a .env file.
    """

    # Storage backend: memory | redis | sql
    backend: str = "memory"

    # Redis settings (atomic script backend)
    redis_url: str = "redis://localhost:6379/0"

    # Database settings (conditional write backend)
    database_url: str = "sqlite+aiosqlite:///./bucketlimit.db"
    db_echo: bool = False

    # Limiter options
    service_name: str | None = None  # Tag stored with limits written by this service
    key_prefix: str = ""  # Prefix for Redis keys
    limit_cache_ttl: float = 0.0  # Seconds to reuse a loaded limit (0 = always read)

    # Table names (sql backend)
    limit_table: str = "rate_limits"
    token_table: str = "rate_tokens"

    # Middleware policy: deny requests when storage is unavailable
    fail_closed: bool = False
    # Key clients by the first X-Forwarded-For hop (only behind a trusted proxy)
    trust_forwarded: bool = False

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        """Validate the backend name."""
        v = v.strip().lower()
        if v not in BACKENDS:
            raise ValueError(f"backend must be one of {', '.join(BACKENDS)}")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in LOG_FORMATS:
            raise ValueError(f"log_format must be one of {', '.join(LOG_FORMATS)}")
        return v

    @field_validator("limit_cache_ttl")
    @classmethod
    def validate_cache_ttl(cls, v: float) -> float:
        """Validate limit cache ttl is not negative."""
        if v < 0:
            raise ValueError("limit_cache_ttl must not be negative")
        return v

    model_config = SettingsConfigDict(
        env_prefix="BUCKETLIMIT_", env_file=".env", extra="ignore"
    )


# Global settings instance
settings = Settings()
