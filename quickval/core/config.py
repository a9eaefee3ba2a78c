import os
from pydantic import BaseModel

class Settings(BaseModel):
    # Basic
    ENV: str = os.getenv("ENV", "dev")
    DEFAULT_CURRENCY: str = os.getenv("CURRENCY", "AUD")

    # Store (jobs, suburb sales cache, weights, rate limit buckets)
    USE_REDIS: bool = os.getenv("USE_REDIS", "false").lower() == "true"
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    STORE_MAX_KEYS: int = int(os.getenv("STORE_MAX_KEYS", "10000"))

    # Suburb sales cache
    SALES_CACHE_TTL_DAYS: float = float(os.getenv("SALES_CACHE_TTL_DAYS", "7"))

    # Data providers
    PROVIDER_MODE: str = os.getenv("PROVIDER_MODE", "live")        # live | mock
    PROVIDER_TIMEOUT_SECONDS: float = float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "20"))
    MIN_COMPARABLES: int = int(os.getenv("MIN_COMPARABLES", "3"))
    CORELOGIC_BASE_URL: str = os.getenv("CORELOGIC_BASE_URL", "https://api-trestle.corelogic.com")
    CORELOGIC_CLIENT_KEY: str | None = os.getenv("CORELOGIC_CLIENT_KEY")
    CORELOGIC_SECRET_KEY: str | None = os.getenv("CORELOGIC_SECRET_KEY")
    DOMAIN_BASE_URL: str = os.getenv("DOMAIN_BASE_URL", "https://api.domain.com.au")
    DOMAIN_API_KEY: str | None = os.getenv("DOMAIN_API_KEY")
    SCRAPER_ENABLED: bool = os.getenv("SCRAPER_ENABLED", "true").lower() == "true"
    SCRAPER_BASE_URL: str = os.getenv("SCRAPER_BASE_URL", "https://www.realestate.com.au")

    # LLM report writer
    OPENAI_API_KEY: str | None = os.getenv("OPENAI_API_KEY")
    OPENAI_MODEL: str = os.getenv("OPENAI_MODEL", "gpt-4o")
    OPENAI_MAX_TOKENS: int = int(os.getenv("OPENAI_MAX_TOKENS", "2500"))

    # Background jobs
    JOB_WORKERS: int = int(os.getenv("JOB_WORKERS", "4"))
    JOB_QUEUE_SIZE: int = int(os.getenv("JOB_QUEUE_SIZE", "100"))
    JOB_TIMEOUT_SECONDS: float = float(os.getenv("JOB_TIMEOUT_SECONDS", "180"))
    JOB_RETENTION_SECONDS: int = int(os.getenv("JOB_RETENTION_SECONDS", "600"))
    JOB_DELIVERY_GRACE_SECONDS: int = int(os.getenv("JOB_DELIVERY_GRACE_SECONDS", "30"))

    # Security
    API_KEY: str | None = os.getenv("API_KEY")
    RATE_LIMIT_RPM: int = int(os.getenv("RATE_LIMIT_RPM", "60"))

    # CORS
    ALLOW_ORIGINS: str = os.getenv("ALLOW_ORIGINS", "*")

    # Metrics
    PROMETHEUS_ENABLED: bool = os.getenv("PROMETHEUS_ENABLED", "true").lower() == "true"

settings = Settings()
