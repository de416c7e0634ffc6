from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Database
    database_url: str = "postgresql://localhost:5432/arena"

    # Identity provider
    # Bearer tokens are verified against the provider's JWKS endpoint,
    # so no shared secret is stored here
    jwks_url: str = ""  # e.g. https://idp.example.com/.well-known/jwks.json
    jwt_audience: str = "authenticated"
    jwt_algorithms: list[str] = ["ES256", "RS256"]

    # Emails that are granted admin rights on first login
    admin_emails: list[str] = []

    # CORS
    cors_origins: list[str] = ["http://localhost:3000"]

    # Logging
    log_level: str = "INFO"

    # Simulation defaults
    default_initial_equity: float = 100000.0
    default_num_ticks: int = 1000
    default_initial_price: float = 100.0

    # Orchestrator
    simulation_max_workers: int = 8  # Agents simulated concurrently per round
    progress_flush_seconds: float = 0.5  # How often progress is written while running
    force_stop_timeout_seconds: float = 5.0  # How long stop waits for the job to drain

    class Config:
        env_file = ".env"
        env_prefix = "ARENA_"
        extra = "allow"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
