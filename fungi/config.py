"""Global configuration — loaded from environment variables."""

from pathlib import Path

from pydantic_settings import BaseSettings


class FungiSettings(BaseSettings):
    mastodon_url: str = ""
    mastodon_api_key: str = ""
    account_name: str = ""
    mycelial_hashtag: str = "fungi"
    log_level: str = "INFO"
    api_host: str = "127.0.0.1"
    api_port: int = 8420

    # Schedules
    answer_interval_seconds: float = 180  # every 3 minutes
    cycle_interval_seconds: float = 3600  # hourly
    feed_timeout_seconds: float = 15.0
    run_cycle_on_start: bool = True

    # Evolution settings
    top_k: int = 3
    crossover_rate: float = 0.3
    mutation_rate: float = 0.2
    new_rule_rate: float = 0.3
    drop_rule_rate: float = 0.05
    evolution_seed: int | None = None

    # Local history is kept in memory unless a JSONL path is given
    history_path: Path | None = None

    model_config = {"env_prefix": "FUNGI_"}


settings = FungiSettings()
