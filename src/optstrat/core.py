from __future__ import annotations
from dataclasses import dataclass, field, fields, replace
from decimal import Decimal, InvalidOperation, ROUND_HALF_EVEN
from typing import TYPE_CHECKING

import numpy as np

from .config import get_settings
from .errors import (
    InvalidExpiry, InvalidStrike, NegativeRate, NegativeVolatility,
    ValidationError,
)

if TYPE_CHECKING:
    from .curves import Curve
    from .surfaces import Surface


CALL = "call"
PUT  = "put"

EUROPEAN = "european"
AMERICAN = "american"

STICKY_STRIKE = "strike"
STICKY_MONEYNESS = "moneyness"


# ---------------------------------------------------------------------------
# Decimal helpers
# ---------------------------------------------------------------------------
def to_decimal(value) -> Decimal:
    """Coerce ints, floats, strings and numpy scalars to ``Decimal``.

    Floats go through their shortest ``str`` form so ``0.1`` becomes
    ``Decimal("0.1")`` rather than its binary expansion.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (bool, np.bool_)):
        raise ValidationError(f"expected a number, got {value!r}")
    if isinstance(value, (int, np.integer)):
        return Decimal(int(value))
    if isinstance(value, (float, np.floating)):
        return Decimal(str(float(value)))
    try:
        return Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(f"not a number: {value!r}") from None


def quantize(value, places: int | None = None) -> Decimal:
    """Round *value* to a fixed number of decimal places (banker's rounding)."""
    if places is None:
        places = get_settings().decimal_places
    d = to_decimal(value)
    if not d.is_finite():
        return d
    return d.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_EVEN)


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class OptionContract:
    """A single listed option -- static, does not move with the market.

    Parameters
    ----------
    symbol : str
        Underlying symbol.
    strike : Decimal
        Strike price, strictly positive.
    expiry : Decimal
        Time to expiry in years, ``>= 0``.
    kind : str
        ``"call"`` or ``"put"``.
    style : str
        ``"european"`` (default) or ``"american"``.
    multiplier : int
        Units of underlying per contract (default 1).
    """
    symbol: str
    strike: Decimal
    expiry: Decimal
    kind: str = CALL
    style: str = EUROPEAN
    multiplier: int = 1

    def __post_init__(self):
        strike = to_decimal(self.strike)
        expiry = to_decimal(self.expiry)
        if not strike.is_finite() or strike <= 0:
            raise InvalidStrike(f"strike must be positive, got {self.strike}")
        if not expiry.is_finite() or expiry < 0:
            raise InvalidExpiry(f"expiry must be >= 0, got {self.expiry}")
        if self.kind not in (CALL, PUT):
            raise ValidationError(f"kind must be 'call' or 'put', got {self.kind!r}")
        if self.style not in (EUROPEAN, AMERICAN):
            raise ValidationError(
                f"style must be 'european' or 'american', got {self.style!r}"
            )
        if int(self.multiplier) != self.multiplier or self.multiplier <= 0:
            raise ValidationError(f"multiplier must be a positive integer, got {self.multiplier}")
        object.__setattr__(self, "strike", strike)
        object.__setattr__(self, "expiry", expiry)
        object.__setattr__(self, "multiplier", int(self.multiplier))

    @property
    def is_call(self) -> bool:
        return self.kind == CALL

    def intrinsic(self, spot) -> Decimal:
        """Exercise value at *spot*: max(S-K, 0) for calls, max(K-S, 0) for puts."""
        s = to_decimal(spot)
        diff = s - self.strike if self.is_call else self.strike - s
        return max(diff, Decimal(0))

    def moneyness(self, spot) -> Decimal:
        """Strike relative to *spot* (``K / S``)."""
        s = to_decimal(spot)
        if s <= 0:
            raise ValidationError(f"spot must be positive, got {spot}")
        return self.strike / s

    def is_itm(self, spot) -> bool:
        return self.intrinsic(spot) > 0

    def with_expiry(self, expiry) -> OptionContract:
        """Same contract with a different time to expiry."""
        return replace(self, expiry=to_decimal(expiry))

    def __str__(self):
        return (f"{self.symbol} {self.style[:2].upper()} {self.kind.upper()} "
                f"K={self.strike} T={self.expiry}")


# ---------------------------------------------------------------------------
# Market snapshot
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class MarketState:
    """What is *moving* -- one snapshot of the market.

    Parameters
    ----------
    spot : float
        Underlying price.
    rate : float
        Continuously-compounded risk-free rate.
    dividend_yield : float
        Continuous dividend / funding yield (default 0).
    volatility : float | None
        Flat volatility used when no curve or surface is given.
    smile : Curve | None
        Strike (or moneyness) -> implied vol, ignoring expiry.
    surface : Surface | None
        (strike or moneyness, expiry) -> implied vol.  Takes precedence
        over ``smile``.
    sticky : str
        ``"strike"`` (default) looks vol up by absolute strike,
        ``"moneyness"`` by ``strike / spot`` so the smile moves with spot.
    """
    spot: float
    rate: float = 0.0
    dividend_yield: float = 0.0
    volatility: float | None = None
    smile: Curve | None = field(default=None, repr=False)
    surface: Surface | None = field(default=None, repr=False)
    sticky: str = STICKY_STRIKE

    def __post_init__(self):
        if not self.spot > 0:
            raise ValidationError(f"spot must be positive, got {self.spot}")
        if self.rate < 0:
            raise NegativeRate(f"rate must be >= 0, got {self.rate}")
        if self.volatility is not None and self.volatility < 0:
            raise NegativeVolatility(f"volatility must be >= 0, got {self.volatility}")
        if self.sticky not in (STICKY_STRIKE, STICKY_MONEYNESS):
            raise ValidationError(f"sticky must be 'strike' or 'moneyness', got {self.sticky!r}")

    def iv(self, strike, expiry) -> float:
        """Look up implied vol -- surface first, then smile, then flat."""
        x = float(strike)
        if self.sticky == STICKY_MONEYNESS:
            x = x / self.spot
        if self.surface is not None:
            vol = float(self.surface.value(x, float(expiry)))
        elif self.smile is not None:
            vol = float(self.smile.value(x))
        elif self.volatility is not None:
            vol = float(self.volatility)
        else:
            raise ValidationError("market state has no volatility source")
        if vol < 0:
            raise NegativeVolatility(f"volatility lookup returned {vol} at strike {strike}")
        return vol

    def with_spot(self, spot: float) -> MarketState:
        return replace(self, spot=spot)


# ---------------------------------------------------------------------------
# Greeks
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class Greeks:
    """Price sensitivities as fixed-precision decimals.

    Theta is dV/dt per year (calendar time moving forward), vega is per
    unit of volatility and rho per unit of rate.
    """
    delta: Decimal
    gamma: Decimal
    theta: Decimal
    vega: Decimal
    rho: Decimal

    @classmethod
    def zero(cls) -> Greeks:
        return cls(*(Decimal(0) for _ in range(5)))

    @classmethod
    def from_floats(cls, values: dict, places: int | None = None) -> Greeks:
        return cls(**{f.name: quantize(float(values[f.name]), places) for f in fields(cls)})

    def __add__(self, other: Greeks) -> Greeks:
        if not isinstance(other, Greeks):
            return NotImplemented
        return Greeks(*(getattr(self, f.name) + getattr(other, f.name) for f in fields(self)))

    def scaled(self, factor) -> Greeks:
        k = to_decimal(factor)
        return Greeks(*(getattr(self, f.name) * k for f in fields(self)))

    def __mul__(self, factor) -> Greeks:
        if isinstance(factor, Greeks):
            return NotImplemented
        return self.scaled(factor)

    __rmul__ = __mul__

    def as_dict(self) -> dict[str, Decimal]:
        return {f.name: getattr(self, f.name) for f in fields(self)}
