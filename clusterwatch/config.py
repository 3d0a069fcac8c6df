from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    # Cluster definitions + status database
    clusters_file: str = "clusters.yaml"
    db_path: str = "data/clusterwatch.db"

    # Node health endpoint (GET http://<node>:<port><path>)
    health_port: int = 5705
    health_path: str = "/v1/health"
    probe_timeout_seconds: float = 1.0

    # Reconciliation cadence
    reconcile_interval_seconds: int = 30
    reconcile_deadline_seconds: float | None = None  # pass-level cap, unset = none

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Logging
    log_level: str = "INFO"

    # Notifications (optional — Slack / Telegram)
    slack_webhook_url: str = ""
    telegram_bot_token: str = ""
    telegram_chat_id: str = ""


settings = Settings()
