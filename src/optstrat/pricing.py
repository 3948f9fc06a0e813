"""Pricing and Greeks façade.

Model selection follows the contract's exercise style:

* European contracts -- Black-Scholes-Merton closed form.
* American contracts -- Cox-Ross-Rubinstein lattice with early exercise.
  An American call on an underlying with zero dividend yield is never
  exercised early and is priced with the closed form.

Degenerate inputs are resolved before any model runs: at ``expiry == 0``
the premium is the intrinsic value, at ``volatility == 0`` it is the
discounted intrinsic value of the deterministic forward.

Premiums and Greeks are returned as ``Decimal`` rounded to
``Settings.decimal_places``; the float kernels stay internal.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from math import exp, isfinite

import numpy as np
from scipy.optimize import brentq

from .binomial import crr
from .black_scholes import bs_greeks, bs_price
from .config import get_settings
from .core import AMERICAN, EUROPEAN, Greeks, MarketState, OptionContract, quantize
from .errors import (
    DomainError, NegativeRate, NegativeVolatility, NoConvergence,
    UnsupportedModel, ValidationError,
)
from .risk import numerical_greeks

__all__ = [
    "BLACK_SCHOLES",
    "BINOMIAL",
    "MODELS",
    "select_model",
    "price",
    "price_in",
    "model_value",
    "greeks",
    "implied_vol",
]

logger = logging.getLogger(__name__)

BLACK_SCHOLES = "black_scholes"
BINOMIAL = "binomial"
MODELS = (BLACK_SCHOLES, BINOMIAL)


# ---------------------------------------------------------------------------
# Validation and model selection
# ---------------------------------------------------------------------------
def _check_inputs(spot, volatility, rate, dividend_yield) -> tuple[float, float, float, float]:
    S, sigma, r, q = float(spot), float(volatility), float(rate), float(dividend_yield)
    if not isfinite(S) or S <= 0:
        raise ValidationError(f"spot must be positive, got {spot}")
    if not isfinite(sigma):
        raise ValidationError(f"volatility must be finite, got {volatility}")
    if sigma < 0:
        raise NegativeVolatility(f"volatility must be >= 0, got {volatility}")
    if not isfinite(r):
        raise ValidationError(f"rate must be finite, got {rate}")
    if r < 0:
        raise NegativeRate(f"rate must be >= 0, got {rate}")
    if not isfinite(q):
        raise ValidationError(f"dividend yield must be finite, got {dividend_yield}")
    return S, sigma, r, q


def select_model(contract: OptionContract, dividend_yield: float = 0.0,
                 model: str | None = None) -> str:
    """Resolve the pricing model for *contract*.

    Raises :class:`UnsupportedModel` for an unknown model name, or when the
    closed form is forced on an American contract whose early-exercise
    right has value.
    """
    no_early_exercise = contract.style == EUROPEAN or (
        contract.is_call and float(dividend_yield) <= 0.0
    )
    if model is None:
        return BLACK_SCHOLES if no_early_exercise else BINOMIAL
    if model not in MODELS:
        raise UnsupportedModel(f"unknown model {model!r}; expected one of {MODELS}")
    if model == BLACK_SCHOLES and not no_early_exercise:
        raise UnsupportedModel(
            f"no closed form for an American {contract.kind} "
            f"with dividend yield {dividend_yield}"
        )
    return model


# ---------------------------------------------------------------------------
# Float kernel
# ---------------------------------------------------------------------------
def _value(contract: OptionContract, S: float, T: float, sigma: float,
           r: float, q: float, model: str, steps: int) -> float:
    K = float(contract.strike)
    sign = 1.0 if contract.is_call else -1.0
    if T <= 0:
        return max(sign * (S - K), 0.0)

    american = contract.style == AMERICAN and model == BINOMIAL
    if sigma <= 0:
        if not american:
            return max(sign * (S * exp(-q * T) - K * exp(-r * T)), 0.0)
        # deterministic path: best exercise date on the lattice time grid
        ts = np.linspace(0.0, T, steps + 1)
        exercise = sign * (S * np.exp(-q * ts) - K * np.exp(-r * ts))
        return float(max(exercise.max(), 0.0))

    if model == BLACK_SCHOLES:
        return float(bs_price(S, K, T, r, q, sigma, contract.kind))
    return crr(S, K, T, r, q, sigma, contract.kind, N=steps, american=american)


def model_value(contract: OptionContract, market: MarketState, *,
                model: str | None = None, steps: int | None = None) -> float:
    """Unrounded float premium under *market* -- for curves and simulation."""
    sigma = market.iv(contract.strike, contract.expiry)
    S, sigma, r, q = _check_inputs(market.spot, sigma, market.rate, market.dividend_yield)
    name = select_model(contract, q, model)
    steps = steps or get_settings().binomial_steps
    return _value(contract, S, float(contract.expiry), sigma, r, q, name, steps)


# ---------------------------------------------------------------------------
# Public pricing API
# ---------------------------------------------------------------------------
def price(
    contract: OptionContract,
    spot,
    volatility,
    rate,
    dividend_yield=0.0,
    *,
    model: str | None = None,
    steps: int | None = None,
    places: int | None = None,
) -> Decimal:
    """Premium of *contract* as a fixed-precision ``Decimal``.

    Parameters
    ----------
    contract : OptionContract
    spot, volatility, rate, dividend_yield : number
        Market inputs; volatility and rate must be non-negative.
    model : str, optional
        Force ``"black_scholes"`` or ``"binomial"``.  Default: chosen from
        the exercise style.
    steps : int, optional
        Lattice steps for the binomial model (default from settings).
    places : int, optional
        Decimal places of the result (default from settings).
    """
    S, sigma, r, q = _check_inputs(spot, volatility, rate, dividend_yield)
    name = select_model(contract, q, model)
    if contract.expiry == 0:
        return quantize(contract.intrinsic(spot), places)
    steps = steps or get_settings().binomial_steps
    return quantize(_value(contract, S, float(contract.expiry), sigma, r, q, name, steps), places)


def price_in(contract: OptionContract, market: MarketState, **kwargs) -> Decimal:
    """Price with the volatility looked up from *market* (flat, smile or surface)."""
    sigma = market.iv(contract.strike, contract.expiry)
    return price(contract, market.spot, sigma, market.rate, market.dividend_yield, **kwargs)


def greeks(
    contract: OptionContract,
    market: MarketState,
    *,
    model: str | None = None,
    steps: int | None = None,
    places: int | None = None,
    bump_pct: float | None = None,
) -> Greeks:
    """Sensitivities of *contract* under *market*.

    Analytic Black-Scholes-Merton Greeks when the closed form applies and
    both time and volatility are positive; otherwise finite differences on
    the selected pricer (lattice for American exercise, the degenerate
    pricer at zero time or zero volatility).
    """
    settings = get_settings()
    sigma = market.iv(contract.strike, contract.expiry)
    S, sigma, r, q = _check_inputs(market.spot, sigma, market.rate, market.dividend_yield)
    name = select_model(contract, q, model)
    T = float(contract.expiry)
    K = float(contract.strike)

    if name == BLACK_SCHOLES and T > 0 and sigma > 0:
        values = {k: float(v) for k, v in bs_greeks(S, K, T, r, q, sigma, contract.kind).items()}
        method = "analytic"
    else:
        steps = steps or settings.binomial_steps

        def _pricer(S_, T_, r_, q_, sig_):
            return _value(contract, S_, T_, sig_, r_, q_, name, steps)

        values = numerical_greeks(
            _pricer, S, T, r, q, sigma,
            bump_pct=bump_pct or settings.bump_pct,
            theta_days=settings.theta_bump_days,
        )
        method = "finite-difference"
    logger.debug("greeks for %s via %s (%s)", contract, method, name)
    return Greeks.from_floats(values, places)


def implied_vol(
    contract: OptionContract,
    premium,
    spot,
    rate,
    dividend_yield=0.0,
    *,
    model: str | None = None,
    steps: int | None = None,
    tol: float | None = None,
    max_iter: int | None = None,
    bracket: tuple[float, float] = (1e-6, 5.0),
) -> float:
    """Volatility that reproduces *premium* -- Brent root find on sigma.

    Raises :class:`NoConvergence` when the premium lies outside the range
    of model prices spanned by *bracket* (e.g. below intrinsic value).
    """
    settings = get_settings()
    S, _, r, q = _check_inputs(spot, 0.0, rate, dividend_yield)
    name = select_model(contract, q, model)
    if contract.expiry == 0:
        raise DomainError("implied volatility is undefined at expiry")
    T = float(contract.expiry)
    steps = steps or settings.binomial_steps
    target = float(premium)

    def f(sig):
        return _value(contract, S, T, sig, r, q, name, steps) - target

    a, b = bracket
    if name == BINOMIAL:
        # below this vol the lattice's up probability leaves (0, 1)
        a = max(a, 1.01 * abs(r - q) * (T / steps) ** 0.5)
    fa, fb = f(a), f(b)
    if fa == 0.0:
        return float(a)
    if fa * fb > 0:
        raise NoConvergence(
            f"premium {premium} not bracketed by vols {bracket} "
            f"(model prices {fa + target:.6g} .. {fb + target:.6g})"
        )
    try:
        return float(brentq(f, a, b, xtol=tol or settings.iv_tol,
                            maxiter=max_iter or settings.iv_max_iter))
    except RuntimeError as exc:
        raise NoConvergence(str(exc)) from exc
