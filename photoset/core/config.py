"""
Application configuration.
All settings are loaded from environment variables.
Use env.example as a reference for required variables.
"""
from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    IMPORTANT: Credentials have no defaults - they MUST be set in .env file.
    """

    # ===========================================
    # APPLICATION
    # ===========================================
    app_env: str = "local"
    # CORS: comma-separated origins. Empty = default list in photoset.main.
    cors_origins: str = ""
    # Public base URL of this API (used in gateway receipts / links)
    app_base_url: str = "http://localhost:8000"

    # ===========================================
    # DATABASE (PostgreSQL)
    # ===========================================
    database_url: str  # Required, no default

    # ===========================================
    # REDIS & CELERY
    # ===========================================
    redis_url: str  # Required, no default
    # Empty broker = queue integration absent, generation requests answer SERVICE_UNAVAILABLE
    celery_broker_url: str = ""
    celery_result_backend: str = ""

    # ===========================================
    # PAYMENT GATEWAY (T-Bank acquiring API)
    # ===========================================
    tbank_terminal_key: str = ""
    tbank_password: str = ""  # shared secret for request/webhook signatures
    tbank_api_url: str = "https://securepay.tinkoff.ru/v2"
    tbank_timeout: float = 30.0
    refund_receipt_email: str = "noreply@photoset.app"
    refund_receipt_taxation: str = "usn_income_outcome"

    # ===========================================
    # GENERATION
    # ===========================================
    generation_max_photos: int = 23
    generation_max_reference_images: int = 20
    generation_min_reference_images: int = 1
    # Dispatch shaping: not correctness-critical, protects the downstream generator
    generation_chunk_size: int = 5
    generation_max_concurrent_chunks: int = 3
    generation_chunk_delay_ms: int = 1000
    generation_task_creation_delay_ms: int = 500
    # Worker finalization: job is "completed" when at least this share of photos succeeded
    generation_min_success_ratio: float = 0.5
    # Watchdog thresholds
    generation_stuck_minutes: int = 10
    generation_pending_stuck_minutes: int = 15
    prompt_catalog_path: str = ""  # empty = bundled photoset/catalog/catalog.yaml

    # ===========================================
    # IMAGE GENERATION (Replicate)
    # ===========================================
    replicate_api_token: str = ""
    replicate_api_url: str = "https://api.replicate.com/v1"
    replicate_image_model: str = "black-forest-labs/flux-kontext-pro"
    replicate_timeout: float = 120.0
    replicate_poll_interval: float = 2.0
    replicate_max_wait_seconds: int = 300
    image_aspect_ratio: str = "3:4"
    # Max reference images sent along with one prompt
    image_generation_max_references: int = 4
    # Runner retry budget: max attempts total, backoff seconds, respect Retry-After on 429
    image_generation_retry_max_attempts: int = 2
    image_generation_retry_backoff_seconds: float = 2.0
    image_generation_retry_respect_retry_after: bool = True

    # ===========================================
    # CIRCUIT BREAKER
    # ===========================================
    cb_failure_threshold: int = 5
    cb_open_seconds: int = 30
    cb_storage: str = "redis"  # redis | memory

    # ===========================================
    # LOGGING
    # ===========================================
    log_level: str = "INFO"
    log_file: str | None = None
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    # ===========================================
    # STATE MANAGEMENT
    # ===========================================
    idempotency_ttl: int = 300  # 5 minutes

    @field_validator("cb_storage")
    @classmethod
    def validate_cb_storage(cls, v: str) -> str:
        v = (v or "redis").strip().lower()
        if v not in ("redis", "memory"):
            raise ValueError("cb_storage must be 'redis' or 'memory'")
        return v

    @field_validator("generation_chunk_size", "generation_max_concurrent_chunks", "generation_max_photos")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be >= 1")
        return v

    @property
    def has_queue(self) -> bool:
        """Queue integration is configured (Celery broker set)."""
        return bool(self.celery_broker_url.strip())

    @property
    def has_payment_gateway(self) -> bool:
        return bool(self.tbank_terminal_key and self.tbank_password)

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
