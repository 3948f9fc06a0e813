# optstrat: options analytics engine
# Public API

# Errors & settings
from .errors import (
    OptStratError, ValidationError, InvalidStrike, InvalidExpiry,
    DuplicateStrike, NegativeVolatility, NegativeRate, InvalidPathCount,
    DomainError, UnsupportedModel, NumericalError, OutOfDomain, NoConvergence,
)
from .config import Settings, get_settings

# Data model
from .core import (
    CALL, PUT, EUROPEAN, AMERICAN, STICKY_STRIKE, STICKY_MONEYNESS,
    OptionContract, MarketState, Greeks,
)
from .chain import OptionChain, build_chain

# Curves & surfaces
from .curves import Curve, LINEAR, CUBIC, CLAMP, EXTEND, REJECT
from .surfaces import Surface
from .calibration import SVIParams, fit_svi, fit_chain_surface

# Pricing & Greeks
from .pricing import price, price_in, greeks, implied_vol, select_model
from .black_scholes import bs_price, bs_greeks
from .binomial import crr

# Risk engine
from .risk import numerical_greeks, scenario_grid, var_historical, cvar_historical

# Strategies
from .strategy import (
    LONG, SHORT, Leg, ProfitRange, Strategy,
    long_call, long_put, vertical_spread, straddle, strangle,
    butterfly, iron_condor,
)

# Monte Carlo
from .processes import GBMProcess, MertonJumpProcess, HestonProcess
from .simulation import SimulationResult, simulate

__all__ = [
    # Errors & settings
    "OptStratError", "ValidationError", "InvalidStrike", "InvalidExpiry",
    "DuplicateStrike", "NegativeVolatility", "NegativeRate", "InvalidPathCount",
    "DomainError", "UnsupportedModel", "NumericalError", "OutOfDomain",
    "NoConvergence",
    "Settings", "get_settings",
    # Data model
    "CALL", "PUT", "EUROPEAN", "AMERICAN", "STICKY_STRIKE", "STICKY_MONEYNESS",
    "OptionContract", "MarketState", "Greeks",
    "OptionChain", "build_chain",
    # Curves & surfaces
    "Curve", "LINEAR", "CUBIC", "CLAMP", "EXTEND", "REJECT", "Surface",
    "SVIParams", "fit_svi", "fit_chain_surface",
    # Pricing
    "price", "price_in", "greeks", "implied_vol", "select_model",
    "bs_price", "bs_greeks", "crr",
    # Risk
    "numerical_greeks", "scenario_grid", "var_historical", "cvar_historical",
    # Strategies
    "LONG", "SHORT", "Leg", "ProfitRange", "Strategy",
    "long_call", "long_put", "vertical_spread", "straddle", "strangle",
    "butterfly", "iron_condor",
    # Monte Carlo
    "GBMProcess", "MertonJumpProcess", "HestonProcess",
    "SimulationResult", "simulate",
]

__version__ = "0.1.0"
