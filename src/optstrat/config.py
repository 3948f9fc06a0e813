"""Engine settings.

Defaults can be overridden through ``OPTSTRAT_*`` environment variables
(e.g. ``OPTSTRAT_BINOMIAL_STEPS=1000``).  Every function that reads a
setting also takes an explicit keyword argument that wins over it.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Numerical defaults for pricing, Greeks and simulation."""

    model_config = SettingsConfigDict(
        env_prefix="OPTSTRAT_",
        case_sensitive=False,
    )

    # Decimal outputs
    decimal_places: int = Field(
        default=8, ge=0, le=20,
        description="Digits kept after the decimal point in premiums and Greeks",
    )

    # Pricing
    binomial_steps: int = Field(
        default=500, ge=1,
        description="Time steps of the CRR lattice used for American exercise",
    )
    iv_tol: float = Field(default=1e-10, gt=0, description="Implied-vol root tolerance")
    iv_max_iter: int = Field(default=200, ge=1, description="Implied-vol iteration cap")

    # Finite-difference Greeks
    bump_pct: float = Field(
        default=0.01, gt=0, lt=1,
        description="Relative spot/vol bump; absolute rate bump",
    )
    theta_bump_days: float = Field(default=1.0, gt=0, description="Theta bump in days")

    # Strategy payoff grid
    payoff_points: int = Field(
        default=401, ge=2,
        description="Grid size of the default payoff-curve price range",
    )

    # Monte Carlo
    n_workers: int | None = Field(
        default=None, ge=1,
        description="Worker processes for simulation (None = CPU count)",
    )
    chunk_size: int = Field(default=2048, ge=1, description="Paths per worker task")


@lru_cache
def get_settings() -> Settings:
    """Return the cached process-wide settings."""
    return Settings()
