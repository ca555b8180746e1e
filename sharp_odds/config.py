from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # SportsGameOdds API
    sgo_api_key: str
    sgo_base_url: str = "https://api.sportsgameodds.com/v2"

    # Leagues to ingest (JSON array in .env)
    leagues: list[str] = Field(
        default=[
            "NFL",
            "NBA",
            "WNBA",
            "MLB",
            "NHL",
            "NCAAF",
            "NCAAB",
            "MLS",
            "UEFA_CHAMPIONS_LEAGUE",
        ]
    )

    # Bookmaker allow-list (JSON array in .env); empty means keep every book
    bookmakers: list[str] = Field(default_factory=list)

    # Fetch window and pagination
    lookahead_days: int = 7
    page_size: int = 50
    max_pages: int = 20

    # HTTP behaviour
    request_timeout_seconds: float = 30.0
    max_retries: int = 3
    retry_base_delay_seconds: float = 1.0
    retry_max_delay_seconds: float = 30.0

    # Batching and writes
    batch_size: int = 500
    write_chunk_size: int = 100

    # Row counts that have silently capped ingestion before
    known_row_ceilings: list[int] = Field(default=[1000])

    # Skip events that started more than this many minutes ago
    started_game_buffer_minutes: int = 10

    # Scheduling
    poll_interval_minutes: int = 30
    reconcile_interval_minutes: int = 120
    reconcile_sample_size: int = 20

    # Database
    db_path: str = "sharp_odds.db"

    # Logging
    log_level: str = "INFO"
