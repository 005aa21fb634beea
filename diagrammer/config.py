"""
Runtime settings.

Every value can be overridden through an environment variable prefixed with
`DIAGRAMMER_` (e.g. `DIAGRAMMER_TICK_INTERVAL_SECONDS=1`) or a `.env` file.
"""

from enum import Enum

from pydantic_settings import BaseSettings, SettingsConfigDict


class PhasePolicy(str, Enum):
    """What happens when a node is moved from the Source to the Target canvas."""
    AUTO_KICKOFF = "auto_kickoff"    # Start a migration job for the node right away
    CONFIRM_FIRST = "confirm_first"  # Target actions wait for an explicit Source confirmation


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(env_prefix="DIAGRAMMER_", env_file=".env", extra="ignore")

    # Document / workflow
    app_id: str = "default-app-id"
    document_id: str = "current_diagram"
    phase_policy: PhasePolicy = PhasePolicy.CONFIRM_FIRST

    # Node footprint as percentage of the canvas (0 disables the right/bottom clamp)
    node_width_pct: float = 0.0
    node_height_pct: float = 0.0

    # Migration simulation
    tick_interval_seconds: float = 3.0
    failure_probability: float = 0.1

    # Outbound saves are coalesced over this window
    save_debounce_seconds: float = 0.5

    # HTTP server
    host: str = "127.0.0.1"
    port: int = 8765
    cors_origins: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
    ]
    log_level: str = "INFO"


settings = Settings()
