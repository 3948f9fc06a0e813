"""Exception hierarchy.

Every error raised by the engine derives from :class:`OptStratError`.  The
three families mirror where a problem is detected:

* :class:`ValidationError` -- an input outside its legal domain, raised
  eagerly by the constructor or function that received it.
* :class:`DomainError` -- the inputs are valid but no method applies to
  them (e.g. an analytic model forced on an early-exercise contract).
* :class:`NumericalError` -- a numeric procedure could not produce a
  value (lookup outside a curve with the ``reject`` policy, a root finder
  that does not converge).

``ValidationError`` is also a ``ValueError`` and ``NumericalError`` an
``ArithmeticError`` so callers catching the builtins keep working.
"""

from __future__ import annotations

__all__ = [
    "OptStratError",
    "ValidationError",
    "InvalidStrike",
    "InvalidExpiry",
    "DuplicateStrike",
    "NegativeVolatility",
    "NegativeRate",
    "InvalidPathCount",
    "DomainError",
    "UnsupportedModel",
    "NumericalError",
    "OutOfDomain",
    "NoConvergence",
]


class OptStratError(Exception):
    """Base class for all engine errors."""


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------
class ValidationError(OptStratError, ValueError):
    """An input value lies outside its legal domain."""


class InvalidStrike(ValidationError):
    """Strike is zero or negative."""


class InvalidExpiry(ValidationError):
    """Time to expiry is negative."""


class DuplicateStrike(ValidationError):
    """Two contracts in a chain share the same (expiry, strike)."""

    def __init__(self, expiry, strike):
        self.expiry = expiry
        self.strike = strike
        super().__init__(f"duplicate strike {strike} for expiry {expiry}")


class NegativeVolatility(ValidationError):
    pass


class NegativeRate(ValidationError):
    pass


class InvalidPathCount(ValidationError):
    """Monte Carlo path count must be a positive integer."""


# ---------------------------------------------------------------------------
# Domain
# ---------------------------------------------------------------------------
class DomainError(OptStratError):
    """No pricing or Greeks method applies to the given configuration."""


class UnsupportedModel(DomainError):
    pass


# ---------------------------------------------------------------------------
# Numerical
# ---------------------------------------------------------------------------
class NumericalError(OptStratError, ArithmeticError):
    """A numeric procedure failed to produce a value."""


class OutOfDomain(NumericalError):
    """Query outside an interpolant's domain under the ``reject`` policy."""

    def __init__(self, value, domain):
        self.value = value
        self.domain = domain
        super().__init__(f"{value!r} is outside the domain {domain!r}")


class NoConvergence(NumericalError):
    """Root finding failed to bracket or converge."""
