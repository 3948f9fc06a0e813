# risk.py
# Model-agnostic risk: finite-difference Greeks on any pricer closure,
# (spot, vol) scenario grids, and historical tail measures on P&L samples.

from __future__ import annotations

import numpy as np
from typing import Callable

from .errors import ValidationError

__all__ = [
    "numerical_greeks",
    "scenario_grid",
    "var_historical",
    "cvar_historical",
]

Pricer = Callable[[float, float, float, float, float], float]

# positional slots of (S, T, r, q, sigma)
_SPOT, _EXPIRY, _RATE, _VOL = 0, 1, 2, 4


# ---------------------------------------------------------------------------
# Finite-difference Greeks
# ---------------------------------------------------------------------------
def _shifted(pricer: Pricer, args: tuple, slot: int, shift: float) -> float:
    moved = list(args)
    moved[slot] += shift
    return float(pricer(*moved))


def _two_sided(pricer: Pricer, args: tuple, slot: int, h: float) -> tuple[float, float]:
    return _shifted(pricer, args, slot, -h), _shifted(pricer, args, slot, h)


def numerical_greeks(
    pricer_func: Pricer,
    S: float,
    T: float,
    r: float,
    q: float,
    sigma: float,
    *,
    bump_pct: float = 0.01,
    theta_days: float = 1.0,
) -> dict[str, float]:
    """Bump-and-reprice sensitivities of ``pricer_func(S, T, r, q, sigma)``.

    Spot and vol are bumped relatively by *bump_pct*, the rate absolutely.
    Theta is the one-sided change over *theta_days* of calendar decay
    (clipped to the remaining life, zero once expired).  When the vol down
    bump would cross zero, vega falls back to a forward difference.

    Returns a dict keyed ``delta``, ``gamma``, ``vega``, ``theta``, ``rho``.
    """
    args = (S, T, r, q, sigma)
    base = float(pricer_func(*args))
    out: dict[str, float] = {}

    h = bump_pct * S
    lo, hi = _two_sided(pricer_func, args, _SPOT, h)
    out["delta"] = (hi - lo) / (2.0 * h)
    out["gamma"] = (hi + lo - 2.0 * base) / (h * h)

    h = max(bump_pct * sigma, 1e-4)
    if sigma > h:
        lo, hi = _two_sided(pricer_func, args, _VOL, h)
        out["vega"] = (hi - lo) / (2.0 * h)
    else:
        out["vega"] = (_shifted(pricer_func, args, _VOL, h) - base) / h

    decay = min(theta_days / 365.0, T)
    out["theta"] = ((_shifted(pricer_func, args, _EXPIRY, -decay) - base) / decay
                    if decay > 0 else 0.0)

    lo, hi = _two_sided(pricer_func, args, _RATE, bump_pct)
    out["rho"] = (hi - lo) / (2.0 * bump_pct)
    return out


# ---------------------------------------------------------------------------
# Scenario grid
# ---------------------------------------------------------------------------
def scenario_grid(
    value_func: Callable[[float, float], float],
    spot_range,
    vol_range,
) -> dict:
    """Tabulate ``value_func(spot, vol)``; rows are spots, columns vols."""
    spots = np.array(spot_range, dtype=float, ndmin=1)
    vols = np.array(vol_range, dtype=float, ndmin=1)
    table = np.array([[value_func(float(s), float(v)) for v in vols] for s in spots],
                     dtype=float).reshape(spots.size, vols.size)
    return {"spot_values": spots, "vol_values": vols, "values": table}


# ---------------------------------------------------------------------------
# Historical VaR / CVaR
# ---------------------------------------------------------------------------
def _tail_cut(pnl, confidence: float) -> tuple[np.ndarray, float]:
    """Finite P&L sample and its ``1 - confidence`` quantile."""
    if not 0.0 < confidence < 1.0:
        raise ValidationError(f"confidence must be in (0, 1), got {confidence}")
    sample = np.asarray(pnl, dtype=float).ravel()
    sample = sample[~np.isnan(sample)]
    if not sample.size:
        raise ValidationError("empty P&L sample")
    return sample, float(np.percentile(sample, 100.0 * (1.0 - confidence)))


def var_historical(pnl, confidence: float = 0.95) -> float:
    """Value-at-Risk: the loss at the ``1 - confidence`` quantile.

    Positive when that quantile is a loss.  NaN entries are skipped.
    """
    _, cut = _tail_cut(pnl, confidence)
    return -cut


def cvar_historical(pnl, confidence: float = 0.95) -> float:
    """Expected shortfall: average loss at or beyond the VaR quantile."""
    sample, cut = _tail_cut(pnl, confidence)
    tail = sample[sample <= cut]
    return -float(tail.mean()) if tail.size else -cut
