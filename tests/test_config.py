"""Tests for environment-driven settings."""

import pytest
from pydantic import ValidationError as SettingsError
from optstrat import OptionContract, Settings, get_settings, price


@pytest.fixture
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestSettings:
    def test_defaults(self):
        s = Settings()
        assert s.decimal_places == 8
        assert s.binomial_steps == 500
        assert s.n_workers is None

    def test_env_override(self, monkeypatch, fresh_settings):
        monkeypatch.setenv("OPTSTRAT_DECIMAL_PLACES", "4")
        assert get_settings().decimal_places == 4
        p = price(OptionContract("XYZ", 100, 1), 100, 0.2, 0.05)
        assert p.as_tuple().exponent == -4

    def test_explicit_argument_wins(self, monkeypatch, fresh_settings):
        monkeypatch.setenv("OPTSTRAT_DECIMAL_PLACES", "4")
        p = price(OptionContract("XYZ", 100, 1), 100, 0.2, 0.05, places=6)
        assert p.as_tuple().exponent == -6

    def test_invalid_value_rejected(self, monkeypatch):
        monkeypatch.setenv("OPTSTRAT_BINOMIAL_STEPS", "0")
        with pytest.raises(SettingsError):
            Settings()
