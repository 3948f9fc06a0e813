# processes.py
# Underlying price processes for strategy simulation.
# Each process draws ONE path's terminal price from the generator it is
# handed, so a path's outcome depends only on that generator's stream.
# `sign=-1.0` negates every normal draw (antithetic partner); Poisson jump
# counts are shared between partners.

from __future__ import annotations
import math
import numpy as np
from dataclasses import dataclass

from .core import MarketState
from .errors import ValidationError

__all__ = [
    "GBMProcess",
    "MertonJumpProcess",
    "HestonProcess",
]


def _check_common(spot: float, rate: float, steps: int) -> None:
    if not spot > 0:
        raise ValidationError(f"spot must be positive, got {spot}")
    if not math.isfinite(rate):
        raise ValidationError(f"rate must be finite, got {rate}")
    if int(steps) != steps or steps <= 0:
        raise ValidationError(f"steps must be a positive integer, got {steps}")


# -----------------------------
# 1) Geometric Brownian Motion
# -----------------------------
@dataclass(frozen=True)
class GBMProcess:
    """
    Exact-discretization GBM under Q:
        dS/S = (r - q) dt + sigma dW
        S_{t+dt} = S_t * exp((r - q - 0.5*sigma^2) dt + sigma * sqrt(dt) * Z)
    With no jumps the terminal law does not depend on `steps`; it only
    changes how many normals a path consumes.
    """
    spot: float
    rate: float
    volatility: float
    dividend_yield: float = 0.0
    steps: int = 1

    def __post_init__(self):
        _check_common(self.spot, self.rate, self.steps)
        if not self.volatility >= 0:
            raise ValidationError(f"volatility must be >= 0, got {self.volatility}")

    @classmethod
    def from_market(cls, market: MarketState, horizon: float, **kwargs) -> GBMProcess:
        """GBM at the market's at-the-money vol for *horizon*."""
        vol = market.iv(market.spot, horizon)
        return cls(market.spot, market.rate, vol, market.dividend_yield, **kwargs)

    def terminal(self, rng: np.random.Generator, horizon: float, sign: float = 1.0) -> float:
        if horizon <= 0:
            return float(self.spot)
        dt = horizon / self.steps
        drift = (self.rate - self.dividend_yield - 0.5 * self.volatility ** 2) * horizon
        Z = sign * rng.standard_normal(self.steps)
        return float(self.spot * np.exp(drift + self.volatility * math.sqrt(dt) * Z.sum()))


# ------------------------------------
# 2) Merton Jump-Diffusion (lognormal)
# ------------------------------------
@dataclass(frozen=True)
class MertonJumpProcess:
    """
    Merton model under Q:
        dS/S = (r - q - λκ) dt + σ dW + (e^Y - 1) dN,
    where N is Poisson(λ t), Y ~ N(mJ, sJ^2), κ = E[e^Y - 1] = exp(mJ + 0.5 sJ^2) - 1.
    Exact GBM step plus compound Poisson jump in log space.
    """
    spot: float
    rate: float
    volatility: float
    lam: float                 # jump intensity λ (per year)
    mJ: float                  # mean of jump log-size
    sJ: float                  # std of jump log-size
    dividend_yield: float = 0.0
    steps: int = 1

    def __post_init__(self):
        _check_common(self.spot, self.rate, self.steps)
        if not self.volatility >= 0:
            raise ValidationError(f"volatility must be >= 0, got {self.volatility}")
        if self.lam < 0 or self.sJ < 0:
            raise ValidationError("lam and sJ must be non-negative")

    def terminal(self, rng: np.random.Generator, horizon: float, sign: float = 1.0) -> float:
        if horizon <= 0:
            return float(self.spot)
        dt = horizon / self.steps
        kappa = math.exp(self.mJ + 0.5 * self.sJ ** 2) - 1.0
        drift = (self.rate - self.dividend_yield - 0.5 * self.volatility ** 2
                 - self.lam * kappa) * horizon

        # draw order is fixed so antithetic partners see matching streams
        Z = sign * rng.standard_normal(self.steps)
        K = rng.poisson(self.lam * dt, size=self.steps)
        ZJ = sign * rng.standard_normal(self.steps)

        # sum of K normal jump sizes ~ Normal(K*mJ, sqrt(K)*sJ)
        jumps = self.mJ * K + self.sJ * np.sqrt(K) * ZJ
        log_ret = drift + self.volatility * math.sqrt(dt) * Z.sum() + jumps.sum()
        return float(self.spot * math.exp(log_ret))


# -------------------------------
# 3) Heston (CIR variance process)
# -------------------------------
@dataclass(frozen=True)
class HestonProcess:
    """
    Heston under Q:
        dS = (r - q) S dt + sqrt(v) S dW1
        dv = kappa (theta - v) dt + xi sqrt(v) dW2,   corr(dW1, dW2) = rho
    Full-Truncation Euler for v (keeps v >= 0), log-Euler for S using v_t.
    """
    spot: float
    rate: float
    v0: float
    kappa: float
    theta: float
    xi: float
    rho: float
    dividend_yield: float = 0.0
    steps: int = 100

    def __post_init__(self):
        _check_common(self.spot, self.rate, self.steps)
        if not (-1.0 <= self.rho <= 1.0):
            raise ValidationError(f"rho must be in [-1, 1], got {self.rho}")
        if self.v0 < 0 or self.kappa < 0 or self.theta < 0 or self.xi < 0:
            raise ValidationError("v0, kappa, theta and xi must be non-negative")

    def terminal(self, rng: np.random.Generator, horizon: float, sign: float = 1.0) -> float:
        if horizon <= 0:
            return float(self.spot)
        n = self.steps
        dt = horizon / n
        sqrt_dt = math.sqrt(dt)

        Z2 = sign * rng.standard_normal(n)
        Zp = sign * rng.standard_normal(n)
        Z1 = self.rho * Z2 + math.sqrt(max(0.0, 1.0 - self.rho ** 2)) * Zp

        log_s = math.log(self.spot)
        v_t = max(self.v0, 0.0)
        for t in range(n):
            v_eff = max(v_t, 0.0)
            log_s += (self.rate - self.dividend_yield - 0.5 * v_eff) * dt \
                + math.sqrt(v_eff) * sqrt_dt * Z1[t]
            v_t = v_t + self.kappa * (self.theta - v_eff) * dt \
                + self.xi * math.sqrt(v_eff) * sqrt_dt * Z2[t]
            v_t = max(v_t, 0.0)
        return float(math.exp(log_s))
