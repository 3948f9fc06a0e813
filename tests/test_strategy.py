"""Tests for the multi-leg strategy composer."""

from decimal import Decimal
from math import log, sqrt

import numpy as np
import pytest
from scipy.stats import norm
from optstrat import (
    CALL, PUT, LONG, SHORT, OptionContract, MarketState, Greeks, Leg, Strategy,
    ProfitRange, greeks, price_in,
    long_call, long_put, vertical_spread, straddle, strangle, butterfly, iron_condor,
    ValidationError,
)


def _c(strike, kind=CALL, expiry=0.5):
    return OptionContract("XYZ", strike, expiry, kind)


@pytest.fixture
def market():
    return MarketState(100.0, rate=0.05, volatility=0.2)


# ---------------------------------------------------------------------------
# Legs and aggregates
# ---------------------------------------------------------------------------
class TestLegs:
    def test_signed_quantity(self):
        s = Strategy("test")
        s.add_leg(_c(100), 2, LONG, premium=5)
        s.add_leg(_c(110), 1, SHORT, premium=2)
        assert [leg.quantity for leg in s.legs] == [2, -1]
        assert s.net_quantity == 1
        assert s.legs[1].side == SHORT

    def test_initial_legs(self):
        s = Strategy("test", legs=[Leg(_c(100), Decimal(-3), Decimal(4))])
        assert s.net_quantity == -3
        assert s.legs[0].premium == 4

    @pytest.mark.parametrize("qty", [0, -1])
    def test_quantity_must_be_positive(self, qty):
        with pytest.raises(ValidationError):
            Strategy("test").add_leg(_c(100), qty)

    def test_bad_side(self):
        with pytest.raises(ValidationError):
            Strategy("test").add_leg(_c(100), 1, "flat")

    def test_remove_leg(self):
        s = Strategy("test").add_leg(_c(100), 1, premium=5).add_leg(_c(110), 1, premium=2)
        removed = s.remove_leg(0)
        assert removed.contract.strike == 100
        assert s.strikes == [110]

    def test_expiry_is_first_leg_expiry(self):
        s = Strategy("calendar").add_leg(_c(100, expiry=1.0), 1).add_leg(_c(100, expiry=0.25), 1, SHORT)
        assert s.expiry == Decimal("0.25")

    def test_empty_strategy(self):
        with pytest.raises(ValidationError):
            Strategy("empty").breakeven_points()


class TestNetPremium:
    def test_debit_spread(self):
        s = vertical_spread(_c(100), _c(110), premiums=(5, 2))
        assert s.net_premium() == Decimal(3)

    def test_model_priced_legs(self, market):
        s = Strategy("test", market=market).add_leg(_c(100), 1).add_leg(_c(110), 1, SHORT)
        expected = price_in(_c(100), market) - price_in(_c(110), market)
        assert s.net_premium() == expected

    def test_missing_market(self):
        s = Strategy("test").add_leg(_c(100), 1)
        with pytest.raises(ValidationError):
            s.net_premium()


class TestNetGreeks:
    def test_sum_of_scaled_leg_greeks(self, market):
        s = Strategy("test", market=market)
        s.add_leg(_c(95), 2, LONG).add_leg(_c(105), 3, SHORT).add_leg(_c(100, PUT), 1, LONG)
        expected = (greeks(_c(95), market) * 2
                    + greeks(_c(105), market) * -3
                    + greeks(_c(100, PUT), market))
        assert s.net_greeks() == expected

    def test_cached_until_mutation(self, market):
        s = Strategy("test", market=market).add_leg(_c(100), 1)
        first = s.net_greeks()
        assert s.net_greeks() is first
        s.add_leg(_c(110), 1, SHORT)
        second = s.net_greeks()
        assert second is not first
        assert second.delta < first.delta

    def test_set_market_invalidates(self, market):
        s = Strategy("test", market=market).add_leg(_c(100), 1)
        before = s.net_greeks()
        s.set_market(market.with_spot(120.0))
        assert s.net_greeks().delta > before.delta

    def test_straddle_near_delta_neutral(self, market):
        s = straddle(_c(100), _c(100, PUT), market=market)
        assert abs(s.net_greeks().delta) < Decimal("0.25")
        assert isinstance(s.net_greeks(), Greeks)


# ---------------------------------------------------------------------------
# Payoff and breakevens
# ---------------------------------------------------------------------------
class TestPayoff:
    def test_long_call_breakeven(self):
        s = long_call(_c(100), premium=5)
        curve = s.payoff_curve()
        assert curve.value(100.0) == -5.0
        assert curve.value(105.0) == 0.0
        assert curve.value(104.0) < 0 < curve.value(106.0)
        assert s.breakeven_points() == [Decimal(105)]

    def test_explicit_range_inserts_strikes(self):
        s = long_call(_c(100), premium=5)
        curve = s.payoff_curve((90.0, 120.0, 4))
        assert 100.0 in curve.xs
        assert s.breakeven_points((90.0, 120.0, 4)) == [Decimal(105)]

    def test_sequence_range(self):
        s = long_put(_c(100, PUT), premium=5)
        assert s.breakeven_points([50.0, 80.0, 120.0]) == [Decimal(95)]

    def test_bad_range(self):
        with pytest.raises(ValidationError):
            long_call(_c(100), premium=5).payoff_curve((120.0, 90.0))

    def test_straddle_breakevens(self):
        s = straddle(_c(100), _c(100, PUT), premiums=(5, 4))
        assert s.breakeven_points() == [Decimal(91), Decimal(109)]

    def test_butterfly(self):
        s = butterfly(_c(90), _c(100), _c(110), premiums=(12, 5, "1.5"))
        assert s.net_premium() == Decimal("3.5")
        assert s.breakeven_points() == [Decimal("93.5"), Decimal("106.5")]
        assert s.max_profit() == Decimal("6.5")
        assert s.max_loss() == Decimal("3.5")

    def test_iron_condor(self):
        s = iron_condor(_c(90, PUT), _c(95, PUT), _c(105), _c(110), premiums=(1, 2, 2, 1))
        assert s.net_premium() == Decimal(-2)
        assert s.breakeven_points() == [Decimal(93), Decimal(107)]
        assert s.max_profit() == Decimal(2)
        assert s.max_loss() == Decimal(3)
        assert s.profit_ranges() == [ProfitRange(Decimal(93), Decimal(107))]

    def test_expensive_long_put_breakeven_below_grid(self):
        s = long_put(_c(100, PUT), premium=60)
        assert s.breakeven_points() == [Decimal(40)]
        assert s.profit_ranges() == [ProfitRange(None, Decimal(40))]

    def test_expensive_straddle_breakevens(self):
        s = straddle(_c(100), _c(100, PUT), premiums=(30, 30))
        assert s.breakeven_points() == [Decimal(40), Decimal(160)]
        assert s.profit_ranges() == [ProfitRange(None, Decimal(40)),
                                     ProfitRange(Decimal(160), None)]

    def test_breakeven_past_highest_strike(self):
        # short call collecting 150: loses only above 250
        s = Strategy("short call").add_leg(_c(100), 1, SHORT, premium=150)
        assert s.breakeven_points() == [Decimal(250)]
        assert s.profit_ranges() == [ProfitRange(None, Decimal(250))]

    def test_zero_cost_spread_has_one_breakeven(self):
        s = vertical_spread(_c(100), _c(110), premiums=(5, 5))
        assert s.breakeven_points() == [Decimal(100)]
        assert s.profit_ranges() == [ProfitRange(Decimal(100), None)]
        assert s.max_loss() == Decimal(0)

    def test_breakevens_agree_with_profit_ranges(self):
        s = iron_condor(_c(90, PUT), _c(95, PUT), _c(105), _c(110), premiums=(1, 2, 2, 1))
        bounds = [b for r in s.profit_ranges() for b in (r.lower, r.upper) if b is not None]
        assert s.breakeven_points() == bounds

    def test_negative_horizon_rejected(self, market):
        s = long_call(_c(100), premium=5, market=market)
        with pytest.raises(ValidationError):
            s.pnl_at(100, horizon=-0.1)
        with pytest.raises(ValidationError):
            s.pnl_values([100.0], horizon=-0.1)
        with pytest.raises(ValidationError):
            s.payoff_curve(horizon=-0.1)

    def test_pnl_at_expiry(self):
        s = long_call(_c(100), premium=5)
        assert s.pnl_at(110) == Decimal(5)
        assert s.pnl_at(90) == Decimal(-5)

    def test_pnl_before_expiry_uses_model(self, market):
        s = long_call(_c(100), premium=5, market=market)
        expected = price_in(_c(100, expiry=0.25), market.with_spot(100.0)) - 5
        assert s.pnl_at(100, horizon=0.25) == expected

    def test_pnl_values_matches_pnl_at(self):
        s = vertical_spread(_c(100), _c(110), premiums=(5, 2))
        spots = np.array([95.0, 105.0, 115.0])
        np.testing.assert_allclose(s.pnl_values(spots), [float(s.pnl_at(x)) for x in spots])


# ---------------------------------------------------------------------------
# Profit / loss analysis
# ---------------------------------------------------------------------------
class TestProfitAnalysis:
    def test_long_call_unbounded_profit(self):
        s = long_call(_c(100), premium=5)
        assert s.max_profit() == Decimal("Infinity")
        assert s.max_loss() == Decimal(5)
        assert s.profit_ranges() == [ProfitRange(Decimal(105), None)]

    def test_short_call_unbounded_loss(self):
        s = Strategy("short call").add_leg(_c(100), 1, SHORT, premium=5)
        assert s.max_loss() == Decimal("Infinity")
        assert s.max_profit() == Decimal(5)
        assert s.profit_ranges() == [ProfitRange(None, Decimal(105))]

    def test_long_put(self):
        s = long_put(_c(100, PUT), premium=5)
        assert s.max_profit() == Decimal(95)
        assert s.profit_ranges() == [ProfitRange(None, Decimal(95))]

    def test_long_strangle_two_ranges(self):
        s = strangle(_c(95, PUT), _c(105), premiums=(2, 2))
        assert s.profit_ranges() == [ProfitRange(None, Decimal(91)),
                                     ProfitRange(Decimal(109), None)]

    def test_probability_of_profit_long_call(self, market):
        s = long_call(_c(100), premium=5, market=market)
        T, sigma = 0.5, 0.2
        d2 = (log(100 / 105) + (0.05 - 0.5 * sigma ** 2) * T) / (sigma * sqrt(T))
        assert s.probability_of_profit() == pytest.approx(norm.cdf(d2), abs=1e-9)

    def test_profit_range_contains(self):
        r = ProfitRange(Decimal(93), None)
        assert r.contains(100) and not r.contains(90)

    def test_scenario_grid(self, market):
        s = long_call(_c(100), premium=5, market=market)
        grid = s.scenario_grid([90.0, 100.0, 110.0], [0.1, 0.3])
        assert grid["values"].shape == (3, 2)
        assert grid["values"][1, 1] > grid["values"][1, 0]


# ---------------------------------------------------------------------------
# Presets
# ---------------------------------------------------------------------------
class TestPresets:
    def test_names(self):
        assert vertical_spread(_c(100), _c(110)).name == "Bull Call Spread"
        assert vertical_spread(_c(110, PUT), _c(100, PUT)).name == "Bear Put Spread"
        assert straddle(_c(100), _c(100, PUT), side=SHORT).name == "Short Straddle"

    def test_validation(self):
        with pytest.raises(ValidationError):
            long_call(_c(100, PUT))
        with pytest.raises(ValidationError):
            vertical_spread(_c(100), _c(100))
        with pytest.raises(ValidationError):
            straddle(_c(100), _c(105, PUT))
        with pytest.raises(ValidationError):
            strangle(_c(105, PUT), _c(95))
        with pytest.raises(ValidationError):
            butterfly(_c(100), _c(90), _c(110))
        with pytest.raises(ValidationError):
            iron_condor(_c(95, PUT), _c(90, PUT), _c(105), _c(110))

    def test_butterfly_quantities(self):
        s = butterfly(_c(90), _c(100), _c(110), quantity=2)
        assert [leg.quantity for leg in s.legs] == [2, -4, 2]
        assert s.net_quantity == 0
