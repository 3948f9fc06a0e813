# black_scholes.py
# Closed-form Black-Scholes-Merton on floats.  Inputs broadcast as NumPy
# arrays, so one call can value a whole strike ladder.  A zero
# ``sigma * sqrt(T)`` collapses to the discounted forward intrinsic value.

from __future__ import annotations
import numpy as np
from scipy.stats import norm

__all__ = ["bs_price", "bs_greeks", "d1_d2"]


def _phi(kind) -> np.ndarray:
    """+1.0 for calls, -1.0 for puts, shaped like *kind*."""
    labels = np.asarray(kind, dtype=str)
    return np.where(labels == "call", 1.0, -1.0)


def d1_d2(S, K, T, r, q, sigma):
    """The d1 / d2 pair; NaN wherever ``sigma * sqrt(T) == 0``."""
    S, K, T, r, q, sigma = np.broadcast_arrays(*(np.asarray(x, dtype=float)
                                                 for x in (S, K, T, r, q, sigma)))
    spread = sigma * np.sqrt(T)
    with np.errstate(divide="ignore", invalid="ignore"):
        d1 = np.where(spread > 0,
                      (np.log(S / K) + (r - q) * T) / spread + 0.5 * spread,
                      np.nan)
    return d1, d1 - spread


def bs_price(S, K, T, r, q, sigma, kind) -> np.ndarray:
    """European price ``phi * (S e^{-qT} N(phi d1) - K e^{-rT} N(phi d2))``.

    ``phi`` is +1 for calls and -1 for puts.  Degenerate entries (no time or
    no vol) return ``max(phi * (S e^{-qT} - K e^{-rT}), 0)``.
    """
    S, K, T, r, q = (np.asarray(x, dtype=float) for x in (S, K, T, r, q))
    phi = _phi(kind)
    d1, d2 = d1_d2(S, K, T, r, q, sigma)
    carried = S * np.exp(-q * T)
    strike_pv = K * np.exp(-r * T)

    value = phi * (carried * norm.cdf(phi * d1) - strike_pv * norm.cdf(phi * d2))
    floor = np.maximum(phi * (carried - strike_pv), 0.0)
    return np.where(np.isnan(d1), floor, value)


def bs_greeks(S, K, T, r, q, sigma, kind) -> dict[str, np.ndarray]:
    """Analytic sensitivities; needs ``sigma * sqrt(T) > 0``.

    Keys are ``delta``, ``gamma``, ``vega``, ``theta`` and ``rho``.  Vega and
    rho are per unit change (not per 1%), theta per year of calendar time.
    """
    S, K, T, r, q, sigma = (np.asarray(x, dtype=float) for x in (S, K, T, r, q, sigma))
    phi = _phi(kind)
    d1, d2 = d1_d2(S, K, T, r, q, sigma)
    root_t = np.sqrt(T)
    carry = np.exp(-q * T)
    strike_pv = K * np.exp(-r * T)
    density = carry * norm.pdf(d1)
    itm1 = norm.cdf(phi * d1)
    itm2 = norm.cdf(phi * d2)

    return {
        "delta": phi * carry * itm1,
        "gamma": density / (S * sigma * root_t),
        "theta": (-S * density * sigma / (2.0 * root_t)
                  - phi * r * strike_pv * itm2
                  + phi * q * S * carry * itm1),
        "vega": S * density * root_t,
        "rho": phi * T * strike_pv * itm2,
    }
