"""
Application Settings

Simulation tunables and environment configuration.
"""

import os
from dataclasses import dataclass


@dataclass
class Settings:
    """Application settings from environment."""

    # Batch engine
    seed: int = 42
    tick_horizon: int = 60
    latency_samples: int = 2000
    max_hops: int = 32

    # Utilization bands
    high_utilization: float = 0.8
    overload: float = 1.0

    # Live engine
    tick_interval_ms: float = 1000.0 / 60.0
    ema_alpha: float = 0.2
    breaker_cooldown_ticks: int = 30

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings from environment variables."""
        return cls(
            seed=int(os.getenv("TRAFFICSIM_SEED", "42")),
            tick_horizon=int(os.getenv("TRAFFICSIM_TICK_HORIZON", "60")),
            latency_samples=int(os.getenv("TRAFFICSIM_LATENCY_SAMPLES", "2000")),
            max_hops=int(os.getenv("TRAFFICSIM_MAX_HOPS", "32")),
            high_utilization=float(os.getenv("TRAFFICSIM_HIGH_UTILIZATION", "0.8")),
            overload=float(os.getenv("TRAFFICSIM_OVERLOAD", "1.0")),
            tick_interval_ms=float(os.getenv("TRAFFICSIM_TICK_INTERVAL_MS", str(1000.0 / 60.0))),
            ema_alpha=float(os.getenv("TRAFFICSIM_EMA_ALPHA", "0.2")),
            breaker_cooldown_ticks=int(os.getenv("TRAFFICSIM_BREAKER_COOLDOWN_TICKS", "30")),
            log_level=os.getenv("TRAFFICSIM_LOG_LEVEL", "INFO"),
        )
