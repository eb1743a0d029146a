from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    # Application settings
    app_name: str = "Consent Wallet Coordinator"
    app_version: str = "1.0.0"
    debug: bool = False
    environment: str = "development"

    # Persistent store settings
    database_url: str = "sqlite+aiosqlite:///./consent_wallet.db"
    store_namespace: str = "consent_wallet"

    # Durable job store for deadlines (synchronous SQLAlchemy URL, used by APScheduler)
    scheduler_jobstore_url: str = "sqlite:///./consent_wallet_jobs.db"

    # Issuance hand-off (presentation layer that calls the contract client)
    issuance_base_url: str = "http://localhost:5173/issue"

    # Pages that are never scanned for consent prompts
    scan_skip_prefixes: list[str] = [
        "chrome://",
        "chrome-extension://",
        "moz-extension://",
        "about:",
        "http://localhost:5173",
    ]

    # Real-time notification stream
    sse_keepalive_interval: int = 15

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    # CORS settings
    allowed_origins: list[str] = ["http://localhost:5173", "http://localhost:8000"]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


settings = Settings()
