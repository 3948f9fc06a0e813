"""Tests for SVI calibration into curves and surfaces."""

import numpy as np
import pytest
from optstrat import (
    OptionContract, OptionChain, MarketState, Curve, Surface, CUBIC, REJECT,
    build_chain, price_in, ValidationError,
)
from optstrat.calibration import SVIParams, fit_svi, fit_chain_surface


# ---------------------------------------------------------------------------
# SVIParams evaluation
# ---------------------------------------------------------------------------
class TestSVIParams:
    def test_total_var_at_money(self):
        p = SVIParams(a=0.04, b=0.1, rho=0.0, m=0.0, sigma=0.1, expiry=1.0)
        # w(0) = a + b * sqrt(sigma^2) = 0.04 + 0.1 * 0.1 = 0.05
        assert abs(float(p.total_var(0.0)) - 0.05) < 1e-10

    def test_wings_increase(self):
        p = SVIParams(a=0.04, b=0.2, rho=0.0, m=0.0, sigma=0.1, expiry=1.0)
        assert float(p.total_var(-1.0)) > float(p.total_var(0.0))
        assert float(p.total_var(1.0)) > float(p.total_var(0.0))

    def test_admissibility(self):
        ok = SVIParams(a=0.04, b=0.1, rho=-0.5, m=0.0, sigma=0.1, expiry=1.0)
        assert ok.admissible
        assert ok.min_total_var == pytest.approx(0.04 + 0.1 * 0.1 * np.sqrt(0.75))
        bad = SVIParams(a=-0.1, b=0.1, rho=0.0, m=0.0, sigma=0.1, expiry=1.0)
        assert not bad.admissible
        # negative variance floors the vol at zero
        assert float(bad.iv(0.0)) == 0.0

    def test_vector_round_trip(self):
        p = SVIParams(a=0.04, b=0.1, rho=-0.3, m=0.02, sigma=0.15, expiry=0.5)
        assert SVIParams.from_vector(p.vector, 0.5) == p

    def test_smile_curve(self):
        p = SVIParams(a=0.04, b=0.1, rho=-0.3, m=0.0, sigma=0.15, expiry=0.5)
        strikes = [80.0, 90.0, 100.0, 110.0, 120.0]
        smile = p.smile(strikes, forward=100.0, extrapolation=REJECT)
        assert isinstance(smile, Curve)
        assert smile.method == CUBIC
        assert smile.value(100.0) == pytest.approx(float(p.iv(0.0)))


# ---------------------------------------------------------------------------
# SVI fitting
# ---------------------------------------------------------------------------
class TestFitSVI:
    def test_zero_noise_recovery(self):
        true = SVIParams(a=0.04, b=0.15, rho=-0.2, m=0.05, sigma=0.10, expiry=0.5)
        k = np.linspace(-0.4, 0.4, 30)
        strikes = 100.0 * np.exp(k)

        fitted = fit_svi(strikes, forward=100.0, expiry=0.5, market_ivs=true.iv(k))

        assert abs(fitted.a - true.a) < 0.005
        assert abs(fitted.b - true.b) < 0.01
        assert abs(fitted.rho - true.rho) < 0.05
        assert abs(fitted.m - true.m) < 0.05
        assert abs(fitted.sigma - true.sigma) < 0.01

    def test_noisy_fit_residuals(self):
        true = SVIParams(a=0.05, b=0.12, rho=-0.15, m=0.0, sigma=0.12, expiry=1.0)
        k = np.linspace(-0.3, 0.3, 20)
        ivs = true.iv(k) + np.random.default_rng(42).normal(0, 0.002, size=k.shape)

        fitted = fit_svi(100.0 * np.exp(k), forward=100.0, expiry=1.0, market_ivs=ivs)

        rmse = float(np.sqrt(np.mean((fitted.iv(k) - ivs) ** 2)))
        assert rmse < 0.005, f"RMSE too large: {rmse:.6f}"

    def test_too_few_quotes(self):
        with pytest.raises(ValidationError):
            fit_svi([90.0, 100.0, 110.0], 100.0, 0.5, [0.2, 0.2, 0.2])

    def test_misaligned(self):
        with pytest.raises(ValidationError):
            fit_svi(np.linspace(80, 120, 6), 100.0, 0.5, [0.2] * 5)


# ---------------------------------------------------------------------------
# Chain -> surface
# ---------------------------------------------------------------------------
class TestFitChainSurface:
    @pytest.fixture
    def chain(self):
        return build_chain("XYZ", 100.0, [0.25, 1.0], strike_interval=5, n_strikes=6,
                           volatility=0.2, skew=-0.15, smile=0.4)

    def test_surface_tracks_quotes(self, chain):
        surface, slices = fit_chain_surface(chain, {0.25: 100.0, 1.0: 100.0})
        assert isinstance(surface, Surface)
        assert sorted(slices) == [0.25, 1.0]
        for t in chain.expirations:
            for k in chain.strikes(t):
                assert surface.value(float(k), float(t)) == pytest.approx(
                    chain.implied_vol(t, k), abs=0.01)

    def test_missing_forward(self, chain):
        with pytest.raises(ValidationError):
            fit_chain_surface(chain, {0.25: 100.0})

    def test_surface_prices_through_market(self, chain):
        surface, _ = fit_chain_surface(chain, {0.25: 100.0, 1.0: 100.0})
        m = MarketState(100.0, rate=0.0, surface=surface)
        otm_put = OptionContract("XYZ", 85, 0.25, "put")
        assert price_in(otm_put, m) > 0
        # skewed smile: the low strike carries more vol than the money
        assert m.iv(85, 0.25) > m.iv(100, 0.25)

    def test_needs_vols(self):
        ch = OptionChain.from_contracts([OptionContract("XYZ", k, 0.5) for k in range(80, 125, 5)])
        with pytest.raises(ValidationError):
            fit_chain_surface(ch, {0.5: 100.0})
