"""Tests for the risk engine."""

import numpy as np
import pytest
from optstrat import bs_price, bs_greeks, ValidationError
from optstrat.risk import numerical_greeks, scenario_grid, var_historical, cvar_historical


def _bs_pricer(kind, K=100.0):
    """Close the contract terms over the vectorised BS kernel."""
    def pricer(S, T, r, q, sigma):
        return float(bs_price(S, K, T, r, q, sigma, kind))
    return pricer


class TestNumericalGreeks:
    def test_vs_analytical_bs(self):
        ng = numerical_greeks(_bs_pricer("call"), 100, 1.0, 0.05, 0.0, 0.2)
        ag = {k: float(v) for k, v in bs_greeks(100, 100, 1.0, 0.05, 0.0, 0.2, "call").items()}
        assert abs(ng["delta"] - ag["delta"]) < 0.005
        assert abs(ng["gamma"] - ag["gamma"]) < 0.002
        assert abs(ng["vega"] - ag["vega"]) < 0.5
        assert abs(ng["theta"] - ag["theta"]) < 0.1
        assert abs(ng["rho"] - ag["rho"]) < 0.5

    def test_all_keys(self):
        ng = numerical_greeks(_bs_pricer("call"), 100, 1.0, 0.05, 0.0, 0.2)
        assert set(ng.keys()) == {"delta", "gamma", "vega", "theta", "rho"}

    def test_put_delta_negative(self):
        ng = numerical_greeks(_bs_pricer("put"), 100, 1.0, 0.05, 0.0, 0.2)
        assert ng["delta"] < 0

    def test_zero_vol_uses_forward_difference(self):
        ng = numerical_greeks(_bs_pricer("call"), 100, 1.0, 0.05, 0.0, 0.0)
        assert np.isfinite(ng["vega"]) and ng["vega"] >= 0

    def test_expired_theta_zero(self):
        ng = numerical_greeks(_bs_pricer("call"), 110, 0.0, 0.05, 0.0, 0.2)
        assert ng["theta"] == 0.0
        assert ng["delta"] == pytest.approx(1.0)


class TestScenarioGrid:
    def test_output_shape(self):
        spots = np.array([90.0, 100.0, 110.0])
        vols = np.array([0.15, 0.20, 0.25, 0.30])
        result = scenario_grid(lambda s, v: s * v, spots, vols)
        assert result["values"].shape == (3, 4)
        assert result["values"][2, 3] == pytest.approx(33.0)

    def test_call_monotone_in_spot(self):
        pricer = _bs_pricer("call")
        spots = np.linspace(80, 120, 5)
        result = scenario_grid(lambda s, v: pricer(s, 1.0, 0.05, 0.0, v), spots, [0.2])
        assert np.all(np.diff(result["values"][:, 0]) > 0)


class TestVaR:
    def test_var_positive_for_losses(self):
        pnl = np.random.default_rng(42).normal(0, 100, 10_000)
        var = var_historical(pnl, 0.95)
        assert var > 0
        assert var == pytest.approx(164.5, rel=0.05)

    def test_cvar_exceeds_var(self):
        pnl = np.random.default_rng(7).normal(0, 100, 10_000)
        assert cvar_historical(pnl, 0.95) >= var_historical(pnl, 0.95)

    def test_nan_ignored(self):
        pnl = np.array([-10.0, np.nan, 5.0, 20.0, np.nan])
        assert var_historical(pnl, 0.5) == var_historical(pnl[~np.isnan(pnl)], 0.5)

    def test_empty_sample(self):
        with pytest.raises(ValidationError):
            var_historical(np.array([np.nan]))

    def test_bad_confidence(self):
        with pytest.raises(ValidationError):
            cvar_historical(np.ones(10), 1.5)
