import os
from datetime import timedelta

from dotenv import load_dotenv


class Config:
    """Application configuration."""
    def __init__(self, load_env=True):
        if load_env:
            load_dotenv()
        self.database_url = os.getenv("DATABASE_URL", "sqlite:///goodfirst.db")
        self.github_token = os.getenv("GITHUB_TOKEN") or None

        # Cache policy
        self.repo_ttl_days = int(os.getenv("REPO_TTL_DAYS", "7"))
        self.cleanup_interval_hours = float(os.getenv("CLEANUP_INTERVAL_HOURS", "1"))
        self.health_refresh_hours = float(os.getenv("HEALTH_REFRESH_HOURS", "12"))
        self.activity_window_days = int(os.getenv("ACTIVITY_WINDOW_DAYS", "30"))
        self.activity_max_items = int(os.getenv("ACTIVITY_MAX_ITEMS", "300"))
        self.activity_windows_kept = int(os.getenv("ACTIVITY_WINDOWS_KEPT", "30"))

        # Job queue
        self.job_poll_seconds = float(os.getenv("JOB_POLL_SECONDS", "10"))
        self.job_max_attempts = int(os.getenv("JOB_MAX_ATTEMPTS", "3"))

        # GitHub client
        self.github_timeout_seconds = int(os.getenv("GITHUB_TIMEOUT_SECONDS", "10"))
        self.github_max_attempts = int(os.getenv("GITHUB_MAX_ATTEMPTS", "3"))

        # Search throttling per caller
        self.search_rate_limit = int(os.getenv("SEARCH_RATE_LIMIT", "20"))
        self.search_rate_interval_seconds = float(os.getenv("SEARCH_RATE_INTERVAL_SECONDS", "60"))

        self.log_level = os.getenv("LOG_LEVEL", "INFO")
        self.log_dir = os.getenv("LOG_DIR", "logs")

    @property
    def repo_ttl(self) -> timedelta:
        return timedelta(days=self.repo_ttl_days)

    @property
    def cleanup_interval_seconds(self) -> float:
        return self.cleanup_interval_hours * 3600

    @property
    def health_refresh_interval(self) -> timedelta:
        return timedelta(hours=self.health_refresh_hours)

def get_config(load_env=True):
    return Config(load_env=load_env)
