"""Multi-leg option strategies.

A :class:`Strategy` is a named, ordered list of legs.  Each leg is a
contract, a signed quantity (positive long, negative short) and optionally
the premium actually paid or received per unit; legs without a premium are
priced from the strategy's :class:`~optstrat.core.MarketState`.

Aggregates follow the signed-quantity convention throughout:

* ``net_premium = sum(q_i * premium_i)`` -- positive is a net debit.
* ``net_greeks  = sum(q_i * greeks_i)``.
* ``P&L(S)      = sum(q_i * (value_i(S) - premium_i))``.

All figures are per unit of underlying; multiply by the contract
multiplier for cash amounts.

Net Greeks and leg premiums are cached and invalidated on every mutation
(``add_leg``, ``remove_leg``, ``set_market``).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from math import log, sqrt
from typing import Iterable, Sequence

import numpy as np
from scipy.stats import norm

from .config import get_settings
from .core import CALL, PUT, Greeks, MarketState, OptionContract, quantize, to_decimal
from .curves import EXTEND, LINEAR, Curve
from .errors import ValidationError
from .pricing import greeks as leg_greeks, model_value, price_in
from .risk import scenario_grid

__all__ = [
    "LONG", "SHORT",
    "Leg", "ProfitRange", "Strategy",
    "long_call", "long_put", "vertical_spread", "straddle", "strangle",
    "butterfly", "iron_condor",
]

logger = logging.getLogger(__name__)

LONG = "long"
SHORT = "short"

# end slopes below this are treated as flat
_FLAT = 1e-12


def _end_slope(curve: Curve) -> float:
    xs, ys = curve.xs, curve.ys
    return float((ys[-1] - ys[-2]) / (xs[-1] - xs[-2]))


def _tail_root(curve: Curve) -> float | None:
    """Zero of the linear payoff beyond the curve's last point, if any."""
    slope = _end_slope(curve)
    last = float(curve.ys[-1])
    if last == 0.0 or abs(slope) <= _FLAT or last * slope > 0:
        return None
    return float(curve.xs[-1]) - last / slope


@dataclass(frozen=True)
class Leg:
    """One position of a strategy: contract, signed quantity, premium."""
    contract: OptionContract
    quantity: Decimal
    premium: Decimal | None = None

    @property
    def side(self) -> str:
        return LONG if self.quantity > 0 else SHORT


@dataclass(frozen=True)
class ProfitRange:
    """Underlying price interval on which the strategy makes money at expiry.

    ``None`` bounds are open: no lower bound (down to zero) or no upper
    bound (to infinity).
    """
    lower: Decimal | None
    upper: Decimal | None

    def contains(self, price) -> bool:
        p = to_decimal(price)
        return ((self.lower is None or p >= self.lower)
                and (self.upper is None or p <= self.upper))

    def probability(self, market: MarketState, horizon) -> float:
        """Risk-neutral probability that the spot ends inside the range.

        Lognormal terminal distribution with drift ``r - q`` and the
        market's at-the-money volatility.
        """
        T = float(horizon)
        S = market.spot
        if T <= 0:
            return 1.0 if self.contains(S) else 0.0
        sigma = market.iv(S, T)
        if sigma <= 0:
            return 1.0 if self.contains(S * np.exp((market.rate - market.dividend_yield) * T)) else 0.0
        mu = (market.rate - market.dividend_yield - 0.5 * sigma * sigma) * T
        sd = sigma * sqrt(T)

        def _cdf(bound):
            return float(norm.cdf((log(float(bound) / S) - mu) / sd))

        p_hi = 1.0 if self.upper is None else _cdf(self.upper)
        p_lo = 0.0 if self.lower is None or self.lower <= 0 else _cdf(self.lower)
        return max(p_hi - p_lo, 0.0)


class Strategy:
    """Named collection of weighted option legs.

    Parameters
    ----------
    name : str
    legs : iterable of Leg, optional
        Initial legs; quantities are already signed.
    market : MarketState, optional
        Used to price legs without an explicit premium, for Greeks, and to
        value legs that are still alive at the evaluation horizon.
    """

    def __init__(self, name: str, legs: Iterable[Leg] = (),
                 market: MarketState | None = None):
        self.name = name
        self._legs: list[Leg] = []
        self._market = market
        self._net_greeks: Greeks | None = None
        self._premiums: list[Decimal] | None = None
        self._dirty = True
        for leg in legs:
            side = LONG if leg.quantity > 0 else SHORT
            self.add_leg(leg.contract, abs(leg.quantity), side, leg.premium)

    def __repr__(self):
        return f"Strategy({self.name!r}, legs={len(self._legs)})"

    # --- mutation -------------------------------------------------------------
    def _invalidate(self) -> None:
        self._dirty = True
        self._net_greeks = None
        self._premiums = None

    def add_leg(self, contract: OptionContract, quantity=1, side: str = LONG,
                premium=None) -> Strategy:
        """Append a leg; *quantity* is positive, *side* gives the sign."""
        if not isinstance(contract, OptionContract):
            raise ValidationError(f"expected an OptionContract, got {type(contract).__name__}")
        qty = to_decimal(quantity)
        if not qty.is_finite() or qty <= 0:
            raise ValidationError(f"quantity must be positive, got {quantity}")
        if side not in (LONG, SHORT):
            raise ValidationError(f"side must be 'long' or 'short', got {side!r}")
        prem = None
        if premium is not None:
            prem = to_decimal(premium)
            if not prem.is_finite() or prem < 0:
                raise ValidationError(f"premium must be >= 0, got {premium}")
        self._legs.append(Leg(contract, qty if side == LONG else -qty, prem))
        self._invalidate()
        return self

    def remove_leg(self, index: int) -> Leg:
        leg = self._legs.pop(index)
        self._invalidate()
        return leg

    def set_market(self, market: MarketState | None) -> None:
        self._market = market
        self._invalidate()

    # --- views ----------------------------------------------------------------
    @property
    def market(self) -> MarketState | None:
        return self._market

    @property
    def legs(self) -> tuple[Leg, ...]:
        return tuple(self._legs)

    @property
    def net_quantity(self) -> Decimal:
        return sum((leg.quantity for leg in self._legs), Decimal(0))

    @property
    def strikes(self) -> list[Decimal]:
        return sorted({leg.contract.strike for leg in self._legs})

    @property
    def expiry(self) -> Decimal:
        """Earliest leg expiry -- the default evaluation horizon."""
        self._require_legs()
        return min(leg.contract.expiry for leg in self._legs)

    def _require_legs(self) -> None:
        if not self._legs:
            raise ValidationError(f"strategy {self.name!r} has no legs")

    def _require_market(self, what: str) -> MarketState:
        if self._market is None:
            raise ValidationError(f"{what} needs a market state; call set_market()")
        return self._market

    # --- premiums and Greeks ------------------------------------------------------
    def leg_premiums(self) -> list[Decimal]:
        """Per-unit premium of every leg (explicit or model price)."""
        if self._premiums is None:
            premiums = []
            for leg in self._legs:
                if leg.premium is not None:
                    premiums.append(leg.premium)
                else:
                    market = self._require_market("pricing a leg without premium")
                    premiums.append(price_in(leg.contract, market))
            self._premiums = premiums
        return list(self._premiums)

    def net_premium(self) -> Decimal:
        """Signed sum of leg premiums (positive = net debit)."""
        self._require_legs()
        return sum((leg.quantity * p for leg, p in zip(self._legs, self.leg_premiums())),
                   Decimal(0))

    def net_greeks(self) -> Greeks:
        """Quantity-weighted sum of leg Greeks; recomputed only after a mutation."""
        if self._dirty or self._net_greeks is None:
            self._require_legs()
            market = self._require_market("net_greeks")
            total = Greeks.zero()
            for leg in self._legs:
                total = total + leg_greeks(leg.contract, market).scaled(leg.quantity)
            self._net_greeks = total
            self._dirty = False
            logger.debug("recomputed net greeks for %s", self.name)
        return self._net_greeks

    # --- P&L ----------------------------------------------------------------------
    def _horizon(self, horizon) -> Decimal:
        if horizon is None:
            return self.expiry
        h = to_decimal(horizon)
        if h < 0:
            raise ValidationError(f"horizon must be >= 0, got {horizon}")
        return h

    def _alive(self, horizon: Decimal) -> list[bool]:
        return [leg.contract.expiry > horizon for leg in self._legs]

    def pnl_at(self, spot, horizon=None) -> Decimal:
        """P&L per unit at underlying price *spot* and time *horizon*.

        Legs expiring by *horizon* pay intrinsic value; legs still alive
        are valued by the pricing model under the strategy's market with
        the spot replaced and the remaining time to expiry.
        """
        self._require_legs()
        h = self._horizon(horizon)
        total = Decimal(0)
        market = None
        for leg, prem, alive in zip(self._legs, self.leg_premiums(), self._alive(h)):
            if alive:
                if market is None:
                    market = self._require_market("valuing a leg before expiry").with_spot(float(spot))
                value = price_in(leg.contract.with_expiry(leg.contract.expiry - h), market)
            else:
                value = leg.contract.intrinsic(spot)
            total += leg.quantity * (value - prem)
        return quantize(total)

    def pnl_values(self, spots, horizon=None, *, market: MarketState | None = None) -> np.ndarray:
        """Vectorised float P&L at an array of spots (see :meth:`pnl_at`).

        *market* overrides the strategy's market for valuing live legs;
        premiums are unaffected.
        """
        self._require_legs()
        spots = np.asarray(spots, dtype=float)
        h = self._horizon(horizon)
        total = np.zeros_like(spots)
        for leg, prem, alive in zip(self._legs, self.leg_premiums(), self._alive(h)):
            c = leg.contract
            if alive:
                base = market or self._require_market("valuing a leg before expiry")
                remaining = c.with_expiry(c.expiry - h)
                value = np.array([model_value(remaining, base.with_spot(float(s)))
                                  for s in spots.ravel()]).reshape(spots.shape)
            elif c.kind == CALL:
                value = np.maximum(spots - float(c.strike), 0.0)
            else:
                value = np.maximum(float(c.strike) - spots, 0.0)
            total = total + float(leg.quantity) * (value - float(prem))
        return total

    def _price_grid(self, price_range) -> np.ndarray:
        strikes = [float(k) for k in self.strikes]
        if price_range is None:
            lo, hi = 0.5 * strikes[0], 1.5 * strikes[-1]
            grid = np.linspace(lo, hi, get_settings().payoff_points)
        elif isinstance(price_range, tuple) and len(price_range) in (2, 3):
            lo, hi = float(price_range[0]), float(price_range[1])
            n = int(price_range[2]) if len(price_range) == 3 else get_settings().payoff_points
            if not (0 <= lo < hi) or n < 2:
                raise ValidationError(f"invalid price range {price_range!r}")
            grid = np.linspace(lo, hi, n)
        else:
            grid = np.asarray(price_range, dtype=float)
            if grid.ndim != 1 or grid.size < 2 or np.any(grid < 0):
                raise ValidationError("price range must hold at least two non-negative prices")
        lo, hi = grid.min(), grid.max()
        # strikes are the kinks of the expiry payoff; keep them on the grid
        kinks = [k for k in strikes if lo <= k <= hi]
        return np.unique(np.concatenate([grid, kinks]))

    def payoff_curve(self, price_range=None, *, horizon=None) -> Curve:
        """P&L versus underlying price at *horizon* (default: first expiry).

        Parameters
        ----------
        price_range : sequence of float or tuple, optional
            Explicit prices, ``(low, high)`` or ``(low, high, n)``.  Default
            spans half the lowest to 1.5x the highest strike.  Leg strikes
            inside the range are always added to the grid.
        """
        self._require_legs()
        grid = self._price_grid(price_range)
        return Curve(grid, self.pnl_values(grid, horizon), method=LINEAR, extrapolation=EXTEND)

    def breakeven_points(self, price_range=None) -> list[Decimal]:
        """Underlying prices where the expiry P&L crosses zero, ascending.

        With no *price_range* the whole half-line ``[0, inf)`` is searched:
        the payoff is linear past the highest strike, so a crossing out
        there is solved in closed form.  An explicit range restricts the
        search to that range.
        """
        self._require_legs()
        if price_range is not None:
            roots = self.payoff_curve(price_range).zero_crossings()
        else:
            curve = self._analysis_curve()
            roots = curve.zero_crossings()
            tail = _tail_root(curve)
            if tail is not None:
                roots.append(tail)
        return [quantize(r) for r in roots]

    def _analysis_curve(self) -> Curve:
        strikes = [float(k) for k in self.strikes]
        grid = np.concatenate([[0.0], self._price_grid(None), [2.0 * strikes[-1]]])
        grid = np.unique(grid)
        return Curve(grid, self.pnl_values(grid), method=LINEAR, extrapolation=EXTEND)

    def max_profit(self) -> Decimal:
        """Largest expiry P&L; ``Decimal('Infinity')`` when unbounded above."""
        self._require_legs()
        curve = self._analysis_curve()
        if _end_slope(curve) > _FLAT:
            return Decimal("Infinity")
        return quantize(curve.extrema()[1][1])

    def max_loss(self) -> Decimal:
        """Largest expiry loss as a positive number; infinite when unbounded."""
        self._require_legs()
        curve = self._analysis_curve()
        if _end_slope(curve) < -_FLAT:
            return Decimal("Infinity")
        return quantize(max(-curve.extrema()[0][1], 0.0))

    def profit_ranges(self) -> list[ProfitRange]:
        """Price intervals with positive expiry P&L."""
        self._require_legs()
        curve = self._analysis_curve()
        roots = curve.zero_crossings()
        xs = curve.xs
        edges = [float(xs[0])] + roots + [float(xs[-1])]
        ranges = []
        for lo, hi in zip(edges[:-1], edges[1:]):
            if hi <= lo or curve.value(0.5 * (lo + hi)) <= 0:
                continue
            lower = None if lo == xs[0] else quantize(lo)
            if hi < xs[-1]:
                upper = quantize(hi)
            else:
                tail = _tail_root(curve)
                upper = None if tail is None else quantize(tail)
            ranges.append(ProfitRange(lower, upper))
        return ranges

    def probability_of_profit(self, market: MarketState | None = None) -> float:
        """Analytic probability of ending in a profit range at the first expiry."""
        market = market or self._require_market("probability_of_profit")
        return sum(r.probability(market, self.expiry) for r in self.profit_ranges())

    def scenario_grid(self, spots, vols, horizon=None) -> dict:
        """P&L across a spot x flat-vol grid at *horizon* (default: today)."""
        self._require_legs()
        base = self._require_market("scenario_grid")
        h = Decimal(0) if horizon is None else to_decimal(horizon)

        def _value(s, v):
            shocked = MarketState(s, base.rate, base.dividend_yield, volatility=v)
            return float(self.pnl_values(np.array([s]), h, market=shocked)[0])

        return scenario_grid(_value, spots, vols)


# ---------------------------------------------------------------------------
# Preset builders
# ---------------------------------------------------------------------------
def _premium(premiums, i):
    return None if premiums is None else premiums[i]


def _expect(contract: OptionContract, kind: str, role: str) -> None:
    if contract.kind != kind:
        raise ValidationError(f"{role} must be a {kind}, got a {contract.kind}")


def long_call(call: OptionContract, *, quantity=1, premium=None,
              market: MarketState | None = None) -> Strategy:
    _expect(call, CALL, "call")
    return Strategy("Long Call", market=market).add_leg(call, quantity, LONG, premium)


def long_put(put: OptionContract, *, quantity=1, premium=None,
             market: MarketState | None = None) -> Strategy:
    _expect(put, PUT, "put")
    return Strategy("Long Put", market=market).add_leg(put, quantity, LONG, premium)


def vertical_spread(long_leg: OptionContract, short_leg: OptionContract, *,
                    quantity=1, premiums: Sequence | None = None,
                    market: MarketState | None = None) -> Strategy:
    """Buy one strike, sell another of the same kind and expiry.

    Named bull/bear call/put spread from the strike order.
    """
    if long_leg.kind != short_leg.kind or long_leg.expiry != short_leg.expiry:
        raise ValidationError("vertical spread legs need the same kind and expiry")
    if long_leg.strike == short_leg.strike:
        raise ValidationError("vertical spread legs need different strikes")
    bull = long_leg.strike < short_leg.strike
    name = f"{'Bull' if bull else 'Bear'} {long_leg.kind.title()} Spread"
    s = Strategy(name, market=market)
    s.add_leg(long_leg, quantity, LONG, _premium(premiums, 0))
    s.add_leg(short_leg, quantity, SHORT, _premium(premiums, 1))
    return s


def straddle(call: OptionContract, put: OptionContract, *, side: str = LONG,
             quantity=1, premiums: Sequence | None = None,
             market: MarketState | None = None) -> Strategy:
    """Call and put at the same strike and expiry, both long or both short."""
    _expect(call, CALL, "call")
    _expect(put, PUT, "put")
    if call.strike != put.strike or call.expiry != put.expiry:
        raise ValidationError("straddle legs need the same strike and expiry")
    s = Strategy(f"{side.title()} Straddle", market=market)
    s.add_leg(call, quantity, side, _premium(premiums, 0))
    s.add_leg(put, quantity, side, _premium(premiums, 1))
    return s


def strangle(put: OptionContract, call: OptionContract, *, side: str = LONG,
             quantity=1, premiums: Sequence | None = None,
             market: MarketState | None = None) -> Strategy:
    """Lower-strike put and higher-strike call, both long or both short."""
    _expect(call, CALL, "call")
    _expect(put, PUT, "put")
    if put.strike >= call.strike:
        raise ValidationError("strangle needs the put strike below the call strike")
    s = Strategy(f"{side.title()} Strangle", market=market)
    s.add_leg(put, quantity, side, _premium(premiums, 0))
    s.add_leg(call, quantity, side, _premium(premiums, 1))
    return s


def butterfly(lower: OptionContract, middle: OptionContract, upper: OptionContract, *,
              side: str = LONG, quantity=1, premiums: Sequence | None = None,
              market: MarketState | None = None) -> Strategy:
    """Wings ``side`` one each, body the opposite side twice."""
    if not (lower.kind == middle.kind == upper.kind):
        raise ValidationError("butterfly legs must share one option kind")
    if not (lower.strike < middle.strike < upper.strike):
        raise ValidationError("butterfly strikes must be strictly increasing")
    body = SHORT if side == LONG else LONG
    qty = to_decimal(quantity)
    s = Strategy(f"{side.title()} {lower.kind.title()} Butterfly", market=market)
    s.add_leg(lower, qty, side, _premium(premiums, 0))
    s.add_leg(middle, 2 * qty, body, _premium(premiums, 1))
    s.add_leg(upper, qty, side, _premium(premiums, 2))
    return s


def iron_condor(long_put: OptionContract, short_put: OptionContract,
                short_call: OptionContract, long_call_: OptionContract, *,
                quantity=1, premiums: Sequence | None = None,
                market: MarketState | None = None) -> Strategy:
    """Short put spread plus short call spread, strikes ascending."""
    for c, kind, role in ((long_put, PUT, "long_put"), (short_put, PUT, "short_put"),
                          (short_call, CALL, "short_call"), (long_call_, CALL, "long_call")):
        _expect(c, kind, role)
    if not (long_put.strike < short_put.strike <= short_call.strike < long_call_.strike):
        raise ValidationError("iron condor strikes must be ascending put-put-call-call")
    s = Strategy("Iron Condor", market=market)
    s.add_leg(long_put, quantity, LONG, _premium(premiums, 0))
    s.add_leg(short_put, quantity, SHORT, _premium(premiums, 1))
    s.add_leg(short_call, quantity, SHORT, _premium(premiums, 2))
    s.add_leg(long_call_, quantity, LONG, _premium(premiums, 3))
    return s
