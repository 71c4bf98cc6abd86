"""Runtime configuration, overridable through HUBROTA_* environment variables."""
import os
from dataclasses import dataclass
from typing import Mapping, Optional


@dataclass
class HubConfig:
    """Configuration shared by the engine, the signup workflow and the CLI."""

    # Storage
    data_dir: str = "data"

    # Signup rate limiting (per source identity, rolling window)
    rate_limit_max_requests: int = 5
    rate_limit_window_seconds: float = 60.0

    # Optimistic write retries when a rota changed under us
    max_write_retries: int = 3

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None
    json_logs: bool = False

    def __post_init__(self):
        if self.rate_limit_max_requests < 1:
            self.rate_limit_max_requests = 1
        if self.rate_limit_window_seconds <= 0:
            self.rate_limit_window_seconds = 60.0
        if self.max_write_retries < 1:
            self.max_write_retries = 1

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "HubConfig":
        """Build a config from the environment, falling back to defaults."""
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            data_dir=env.get("HUBROTA_DATA_DIR", defaults.data_dir),
            rate_limit_max_requests=int(env.get("HUBROTA_RATE_LIMIT_MAX", defaults.rate_limit_max_requests)),
            rate_limit_window_seconds=float(env.get("HUBROTA_RATE_LIMIT_WINDOW", defaults.rate_limit_window_seconds)),
            max_write_retries=int(env.get("HUBROTA_MAX_WRITE_RETRIES", defaults.max_write_retries)),
            log_level=env.get("HUBROTA_LOG_LEVEL", defaults.log_level),
            log_file=env.get("HUBROTA_LOG_FILE") or None,
            json_logs=env.get("HUBROTA_JSON_LOGS", "false").strip().lower() in ("1", "true", "yes"),
        )
