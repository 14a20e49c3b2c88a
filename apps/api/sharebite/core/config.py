"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.01.00"

    # Logging
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str

    # Session Token (supports key rotation)
    JWT_SECRET: str = "change-this-in-production"
    JWT_SECRET_PREVIOUS: str = ""  # Set during rotation, clear after
    JWT_EXPIRES_HOURS: int = 12
    PASSWORD_HASH_ITERATIONS: int = 390_000

    # CORS
    CORS_ORIGINS: str = "http://localhost:5173"

    # Internal scheduled endpoints (cron jobs)
    INTERNAL_SECRET: str = ""  # Secret for /internal/* endpoints
    # When set, the worker triggers sweeps through the API so live
    # subscribers of that process receive the events
    INTERNAL_API_URL: str = ""

    # Rate Limiting (requests per minute)
    RATE_LIMIT_AUTH: int = 5  # Sign-in / sign-up attempts
    RATE_LIMIT_API: int = 120  # General API

    # Change feed
    FEED_QUEUE_SIZE: int = 500  # Per-subscriber backlog before "lagged"
    FEED_PING_SECONDS: int = 15  # SSE keep-alive comment interval

    # Lifecycle sweeps
    # Edible donations still posted this close to expiry move to the
    # non-edible queue. 0 disables diversion.
    DIVERSION_WINDOW_MINUTES: int = 0
    SWEEP_INTERVAL_SECONDS: int = 60

    # Matching
    NEAREST_DEFAULT_LIMIT: int = 5

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def jwt_secrets(self) -> list[str]:
        """Returns list of valid secrets (current first, then previous if set)."""
        secrets = [self.JWT_SECRET]
        if self.JWT_SECRET_PREVIOUS:
            secrets.append(self.JWT_SECRET_PREVIOUS)
        return secrets

    @property
    def cookie_secure(self) -> bool:
        """Secure cookies only in production."""
        return self.ENV not in ("dev", "test")


settings = Settings()
