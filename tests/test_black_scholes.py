"""Tests for the float Black-Scholes kernels and the CRR lattice."""

import numpy as np
import pytest
from optstrat.black_scholes import bs_price, bs_greeks, d1_d2
from optstrat.binomial import crr
from optstrat.errors import NumericalError


class TestBSPrice:
    def test_known_values(self):
        assert abs(float(bs_price(100, 100, 1.0, 0.05, 0.0, 0.2, "call")) - 10.4506) < 1e-3
        assert abs(float(bs_price(100, 100, 1.0, 0.05, 0.0, 0.2, "put")) - 5.5735) < 1e-3

    def test_vectorised_matches_scalar(self):
        K = np.array([90.0, 100.0, 110.0])
        vec = bs_price(100.0, K, 0.5, 0.03, 0.01, 0.25, "call")
        for i, k in enumerate(K):
            assert vec[i] == pytest.approx(float(bs_price(100.0, k, 0.5, 0.03, 0.01, 0.25, "call")))

    def test_mixed_kinds(self):
        out = bs_price(100.0, 100.0, 1.0, 0.05, 0.0, 0.2, np.array(["call", "put"]))
        assert out[0] > out[1]

    def test_zero_time_is_intrinsic(self):
        assert float(bs_price(110.0, 100.0, 0.0, 0.05, 0.0, 0.2, "call")) == pytest.approx(10.0)
        assert float(bs_price(110.0, 100.0, 0.0, 0.05, 0.0, 0.2, "put")) == 0.0

    def test_zero_vol_is_discounted_forward(self):
        expected = 100.0 - 90.0 * np.exp(-0.05)
        assert float(bs_price(100.0, 90.0, 1.0, 0.05, 0.0, 0.0, "call")) == pytest.approx(expected)

    def test_d1_nan_when_degenerate(self):
        d1, d2 = d1_d2(100.0, 100.0, 0.0, 0.05, 0.0, 0.2)
        assert np.isnan(d1) and np.isnan(d2)


class TestBSGreeks:
    def test_call_put_delta(self):
        gc = bs_greeks(100.0, 100.0, 1.0, 0.05, 0.0, 0.2, "call")
        gp = bs_greeks(100.0, 100.0, 1.0, 0.05, 0.0, 0.2, "put")
        assert 0.0 < gc["delta"] < 1.0
        assert -1.0 < gp["delta"] < 0.0
        assert float(gc["delta"] - gp["delta"]) == pytest.approx(1.0)
        assert float(gc["gamma"]) == pytest.approx(float(gp["gamma"]))

    def test_theta_negative_for_long_call(self):
        assert bs_greeks(100.0, 100.0, 1.0, 0.05, 0.0, 0.2, "call")["theta"] < 0


class TestCRR:
    def test_converges_to_bs(self):
        bs = float(bs_price(100.0, 100.0, 1.0, 0.05, 0.02, 0.2, "put"))
        assert crr(100.0, 100.0, 1.0, 0.05, 0.02, 0.2, "put", N=1000) == pytest.approx(bs, abs=0.01)

    def test_american_put_premium(self):
        euro = crr(100.0, 110.0, 1.0, 0.08, 0.0, 0.2, "put", N=400)
        amer = crr(100.0, 110.0, 1.0, 0.08, 0.0, 0.2, "put", N=400, american=True)
        assert amer > euro
        assert amer >= 10.0

    def test_american_call_no_dividend_equals_european(self):
        euro = crr(100.0, 100.0, 1.0, 0.05, 0.0, 0.2, "call", N=300)
        amer = crr(100.0, 100.0, 1.0, 0.05, 0.0, 0.2, "call", N=300, american=True)
        assert amer == pytest.approx(euro, abs=1e-10)

    def test_degenerate_inputs_rejected(self):
        with pytest.raises(ValueError):
            crr(100.0, 100.0, 0.0, 0.05, 0.0, 0.2)
        with pytest.raises(ValueError):
            crr(100.0, 100.0, 1.0, 0.05, 0.0, 0.0)

    def test_bad_probability(self):
        # drift per step exceeds the up move
        with pytest.raises(NumericalError):
            crr(100.0, 100.0, 1.0, 5.0, 0.0, 0.01, N=2)
