# binomial.py
# Cox-Ross-Rubinstein lattice on floats.  Used for American exercise and as
# a cross-check of the closed form.

from __future__ import annotations
import numpy as np
from math import exp, sqrt

from .errors import NumericalError

__all__ = ["crr"]


def crr(
    S: float, K: float, T: float, r: float, q: float, sigma: float,
    kind: str = "call", N: int = 500, *, american: bool = False,
) -> float:
    """Cox-Ross-Rubinstein tree, European or American exercise.

    The dividend yield enters through the risk-neutral up probability.
    With ``american=True`` every node compares continuation against
    immediate exercise, so the free boundary is resolved on the lattice.
    """
    if N <= 0:
        raise ValueError(f"lattice needs at least one step, got N={N}")
    if T <= 0 or sigma <= 0:
        raise ValueError("crr needs T > 0 and sigma > 0; use the degenerate pricer.")

    dt = T / N
    up = exp(sigma * sqrt(dt))
    growth = exp((r - q) * dt)
    p_up = (growth - 1.0 / up) / (up - 1.0 / up)
    if not 0.0 < p_up < 1.0:
        raise NumericalError(
            f"risk-neutral probability {p_up:.6f} outside (0, 1); increase N "
            "or check rate / volatility"
        )
    w_up = exp(-r * dt) * p_up
    w_dn = exp(-r * dt) - w_up
    payoff_sign = 1.0 if kind == "call" else -1.0

    # node i at step n sits at S * up**(2i - n)
    ladder = S * up ** np.arange(-N, N + 1, dtype=float)
    values = np.maximum(payoff_sign * (ladder[::2] - K), 0.0)

    for n in range(N - 1, -1, -1):
        values = w_dn * values[:-1] + w_up * values[1:]
        if american:
            spots = ladder[N - n:N + n + 1:2]
            np.maximum(values, payoff_sign * (spots - K), out=values)
    return float(values[0])
