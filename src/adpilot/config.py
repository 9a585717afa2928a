"""
AdPilot Configuration
pydantic-settings + structlog + FastAPI
"""
from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── Scheduler ──
    cycle_interval_seconds: float = 900.0  # 15 minutes
    run_on_start: bool = False
    automation_autostart: bool = False

    # ── Action execution ──
    action_concurrency: int = 4
    action_timeout_seconds: float = 30.0

    # ── Rules ──
    load_default_rules: bool = True
    eq_tolerance: float = 1e-6
    performance_optimization_enabled: bool = False

    # ── History ──
    history_limit: int = 50
    anomaly_history_size: int = 500

    # ── Ad platform ──
    ad_platform_base_url: str = ""  # empty -> in-memory platform
    ad_platform_token: str = ""
    ad_platform_version: str = "202309"
    ad_platform_timeout_seconds: float = 10.0
    campaigns_file: str = ""

    # ── Alerts ──
    alert_webhook_url: str = ""  # empty -> log-only sink
    alert_log_size: int = 100  # recent alerts kept by the log-only sink

    # ── JWT ──
    secret_key: str = "change-me-in-production"
    admin_password: str = "admin123"

    # ── Logging ──
    log_level: str = "info"
    log_json: bool = False

    # ── Server ──
    host: str = "0.0.0.0"
    port: int = 8000

    model_config = {"env_file": ".env", "env_prefix": "ADPILOT_", "extra": "ignore"}

    @property
    def uses_remote_platform(self) -> bool:
        """True when campaigns are read from and mutated on a real ad platform."""
        return bool(self.ad_platform_base_url)


settings = Settings()
