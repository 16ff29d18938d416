"""
Configuration management using Pydantic BaseSettings.
All values can be overridden via environment variables or a .env file.
"""
from dataclasses import dataclass
from typing import Optional

from pydantic_settings import BaseSettings


@dataclass(frozen=True)
class TableNames:
    main: str
    content: str
    social: str
    feed: str


class Settings(BaseSettings):
    app_name: str = "DayByDay"

    # ── DynamoDB ───────────────────────────────────────────────────────────
    aws_region: str = "us-west-1"
    dynamodb_endpoint_url: Optional[str] = None   # e.g. http://localhost:8000
    dynamodb_connect_timeout: float = 2.0
    dynamodb_read_timeout: float = 5.0
    dynamodb_max_attempts: int = 3

    @property
    def tables(self) -> TableNames:
        return TableNames(
            main=f"{self.app_name}-Main",
            content=f"{self.app_name}-Content",
            social=f"{self.app_name}-Social",
            feed=f"{self.app_name}-Feed",
        )

    # ── ElastiCache (Redis) ────────────────────────────────────────────────
    cache_enabled: bool = False
    cache_host: str = "localhost"
    cache_port: int = 6379
    cache_connect_timeout: float = 5.0
    cache_command_timeout: float = 2.0
    cache_reconnect_interval: float = 30.0   # seconds between failed connects

    # TTLs in seconds
    cache_ttl_user_profile: int = 3600
    cache_ttl_friend_list: int = 1800
    cache_ttl_entry_counts: int = 300
    cache_ttl_discover_users: int = 1800
    cache_ttl_reaction_counts: int = 300
    cache_ttl_comment_counts: int = 300
    cache_ttl_streak: int = 600
    cache_ttl_entry: int = 300
    cache_ttl_feed: int = 120

    # ── Stream processor ───────────────────────────────────────────────────
    stream_dedup_ttl: int = 86400            # lifetime of EVENT# markers
    feed_preview_length: int = 100

    # ── Observability ──────────────────────────────────────────────────────
    otel_enabled: bool = True
    otel_exporter_otlp_endpoint: str = "http://jaeger:4317"
    service_name: str = "daybyday-journal"
    environment: str = "development"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
