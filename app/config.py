"""ADLENS: Central Configuration via Pydantic Settings."""

import os
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # ── Database ──
    database_url: str = ""

    # ── App ──
    log_level: str = "INFO"
    scheduler_enabled: bool = True
    classification_hour: int = 3  # Daily classification at 3 AM
    findings_hour: int = 4  # Daily findings run at 4 AM

    # ── Analysis ──
    analysis_schema_version: str = "1.0.0"
    default_target_roas: float = 2.0  # Used when a client has no target ROAS

    # ── Engine config cache ──
    engine_config_cache_ttl_seconds: float = 300.0
    engine_config_cache_max_entries: int = 256

    # Findings read per-client thresholds only when explicitly enabled
    findings_use_client_config: bool = False

    @property
    def effective_database_url(self) -> str:
        """Return PostgreSQL URL if set, otherwise fall back to SQLite."""
        if self.database_url:
            return self.database_url
        # Vercel has a read-only filesystem; use /tmp for SQLite
        if os.environ.get("VERCEL"):
            return "sqlite:////tmp/adlens.db"
        return "sqlite:///./adlens.db"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
