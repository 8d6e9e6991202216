"""Engine configuration derived from environment."""
from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Engine settings with portal defaults."""

    model_config = ConfigDict(env_prefix="REWARD_")

    # Server
    debug: bool = False
    redis_url: str = "redis://localhost:6379/0"
    report_store_enabled: bool = True
    admin_token: str | None = None

    # Protocol
    protocol_version: str = "1.0"

    # Draw model
    reel_count: int = 4
    citation_symbol: str = "lsh"

    # Probability engines
    monte_carlo_samples: int = 1_000_000
    monte_carlo_workers: int = 4
    monte_carlo_max_samples: int = 10_000_000
    exact_max_sequences: int = 1_000_000
    probability_epsilon: float = 1e-9

    # Cache warm-up
    warm_up_on_startup: bool = True

    # Cross-process compute lock (Redis)
    compute_lock_ttl_seconds: int = 120  # Auto-expire if the computing process dies
    compute_lock_poll_seconds: float = 0.25


settings = Settings()
