# calibration.py
# Raw-SVI smile calibration.  A fitted slice can be sampled into a strike
# Curve, and a whole chain into a (strike, expiry) Surface.

from __future__ import annotations
import logging
import numpy as np
from dataclasses import astuple, dataclass
from typing import Mapping, Optional, Sequence

from scipy.optimize import least_squares

from .chain import OptionChain
from .core import to_decimal
from .curves import CLAMP, CUBIC, Curve
from .errors import NoConvergence, ValidationError
from .surfaces import Surface

__all__ = ["SVIParams", "fit_svi", "fit_chain_surface"]

logger = logging.getLogger(__name__)

#                    a      b      rho     m     sigma
_LOWER_BOUNDS = (-0.5,  1e-6, -0.999, -2.0,  1e-4)
_UPPER_BOUNDS = ( 2.0,  5.0,   0.999,  2.0,  5.0)


# ---------------------------------------------------------------------------
# One SVI slice
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class SVIParams:
    """Raw SVI slice at a fixed expiry.

    Total variance as a function of log-moneyness ``k = ln(K / F)``::

        w(k) = a + b * (rho * (k - m) + sqrt((k - m)**2 + sigma**2))
    """
    a: float
    b: float
    rho: float
    m: float
    sigma: float
    expiry: float

    @classmethod
    def from_vector(cls, x, expiry: float) -> "SVIParams":
        a, b, rho, m, sigma = (float(v) for v in x)
        return cls(a, b, rho, m, sigma, expiry)

    @property
    def vector(self) -> tuple[float, ...]:
        return astuple(self)[:5]

    @property
    def min_total_var(self) -> float:
        """Smallest total variance on the real line."""
        return self.a + self.b * self.sigma * np.sqrt(1.0 - self.rho ** 2)

    @property
    def admissible(self) -> bool:
        """True when the slice never produces negative variance."""
        return self.b >= 0 and abs(self.rho) < 1 and self.min_total_var >= 0

    def total_var(self, k) -> np.ndarray:
        shifted = np.asarray(k, dtype=float) - self.m
        return self.a + self.b * (self.rho * shifted + np.hypot(shifted, self.sigma))

    def iv(self, k) -> np.ndarray:
        """Annualised vol at log-moneyness *k*; negative variance floors at zero."""
        return np.sqrt(np.clip(self.total_var(k), 0.0, None) / self.expiry)

    def smile(
        self,
        strikes: Sequence[float],
        forward: float,
        *,
        method: str = CUBIC,
        extrapolation: str = CLAMP,
    ) -> Curve:
        """Sample the slice at *strikes* into a strike -> vol curve."""
        xs = np.asarray(strikes, dtype=float)
        return Curve(xs, self.iv(np.log(xs / forward)),
                     method=method, extrapolation=extrapolation)


# ---------------------------------------------------------------------------
# Fitting
# ---------------------------------------------------------------------------
def fit_svi(
    strikes,
    forward: float,
    expiry: float,
    market_ivs,
    *,
    initial_guess: Optional[tuple] = None,
    bounds: Optional[tuple] = None,
) -> SVIParams:
    """Least-squares SVI fit of one expiry's quoted vols.

    Residuals are taken in total variance.  *strikes* and *market_ivs*
    are aligned 1-D arrays holding at least five quotes.  *initial_guess*
    is an ``(a, b, rho, m, sigma)`` start vector and *bounds* a
    ``(lower, upper)`` pair for it; both have workable defaults.

    Raises
    ------
    ValidationError
        Misaligned or too few quotes, or non-positive forward / expiry.
    NoConvergence
        The solver stopped without success.
    """
    K = np.asarray(strikes, dtype=float)
    vols = np.asarray(market_ivs, dtype=float)
    if K.ndim != 1 or K.shape != vols.shape:
        raise ValidationError("strikes and market_ivs must be 1-D and aligned")
    if K.size < 5:
        raise ValidationError(f"SVI has 5 parameters; got {K.size} quotes")
    if forward <= 0 or expiry <= 0:
        raise ValidationError("expiry and forward must be positive")

    log_m = np.log(K / forward)
    target = expiry * vols * vols

    x0 = initial_guess or (float(target.mean()), 0.1, 0.0, 0.0, 0.1)
    fit = least_squares(
        lambda x: SVIParams.from_vector(x, expiry).total_var(log_m) - target,
        x0=x0,
        bounds=bounds or (_LOWER_BOUNDS, _UPPER_BOUNDS),
        method="trf",
        max_nfev=2000,
    )
    if not fit.success:
        raise NoConvergence(f"SVI fit at T={expiry} failed: {fit.message}")

    params = SVIParams.from_vector(fit.x, expiry)
    logger.debug("SVI slice T=%s: rmse(w)=%.3g, params=%s", expiry,
                 float(np.sqrt(np.mean(fit.fun ** 2))), params.vector)
    if not params.admissible:
        logger.warning("SVI slice T=%s has negative minimum variance %.3g",
                       expiry, params.min_total_var)
    return params


def fit_chain_surface(
    chain: OptionChain,
    forwards: Mapping[float, float],
    *,
    strikes: Sequence[float] | None = None,
    method: str = CUBIC,
    extrapolation: str = CLAMP,
) -> tuple[Surface, dict[float, SVIParams]]:
    """Calibrate every expiry of *chain* and stitch the slices into a Surface.

    *forwards* maps each chain expiry to its forward price.  The surface is
    sampled on *strikes*, by default every strike quoted anywhere in the
    chain.  Returns the surface together with ``{expiry: SVIParams}``.
    """
    by_expiry = {to_decimal(t): float(f) for t, f in forwards.items()}
    missing = [t for t in chain.expirations if t not in by_expiry]
    if missing:
        raise ValidationError(f"no forward given for expiries {missing}")

    slices: dict[float, SVIParams] = {}
    for t in chain.expirations:
        quoted = chain.smile(t)
        slices[float(t)] = fit_svi(quoted.xs, by_expiry[t], float(t), quoted.ys)

    grid = np.asarray(
        strikes if strikes is not None
        else sorted({float(k) for t in chain.expirations for k in chain.strikes(t)}),
        dtype=float,
    )
    expiries = sorted(slices)
    vols = np.stack(
        [slices[t].iv(np.log(grid / by_expiry[to_decimal(t)])) for t in expiries],
        axis=1,
    )
    logger.info("fitted SVI surface for %s: %d expiries x %d strikes",
                chain.symbol, len(expiries), grid.size)
    return Surface(grid, expiries, vols, method=method, extrapolation=extrapolation), slices
