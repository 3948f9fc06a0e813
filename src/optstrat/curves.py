# curves.py
# One-dimensional interpolants (volatility smiles, payoff curves, Greek
# profiles) built from discrete calibration points.

from __future__ import annotations
import numpy as np
from typing import Callable, Iterable

from scipy.interpolate import CubicSpline
from scipy.optimize import brentq

from .errors import NoConvergence, OutOfDomain, ValidationError

__all__ = [
    "LINEAR", "CUBIC",
    "CLAMP", "EXTEND", "REJECT",
    "Curve",
]

LINEAR = "linear"
CUBIC = "cubic"
METHODS = (LINEAR, CUBIC)

CLAMP = "clamp"
EXTEND = "linear"
REJECT = "reject"
POLICIES = (CLAMP, EXTEND, REJECT)


def _check_axis(values: np.ndarray, name: str) -> None:
    if values.ndim != 1:
        raise ValidationError(f"{name} must be one-dimensional.")
    if not np.all(np.isfinite(values)):
        raise ValidationError(f"{name} contains non-finite values.")
    if np.any(np.diff(values) <= 0):
        raise ValidationError(f"{name} must be strictly increasing (no duplicates).")


def _frozen(a: np.ndarray) -> np.ndarray:
    a = np.array(a, dtype=float)
    a.setflags(write=False)
    return a


class Curve:
    """Immutable ``y = f(x)`` interpolant.

    Parameters
    ----------
    xs, ys : array-like, shape (N,)
        Calibration points; ``xs`` strictly increasing, ``N >= 2``.
    method : str
        ``"linear"`` (default) or ``"cubic"`` (natural cubic spline; needs
        at least 3 points, otherwise linear is used).
    extrapolation : str
        Behaviour outside ``[xs[0], xs[-1]]``: ``"clamp"`` to the boundary
        value (default), ``"linear"`` extension of the end segment, or
        ``"reject"`` (raises :class:`OutOfDomain`).

    Queries at a stored ``x`` return the stored ``y`` exactly.
    """

    def __init__(
        self,
        xs,
        ys,
        *,
        method: str = LINEAR,
        extrapolation: str = CLAMP,
    ):
        if method not in METHODS:
            raise ValidationError(f"method must be one of {METHODS}, got {method!r}")
        if extrapolation not in POLICIES:
            raise ValidationError(
                f"extrapolation must be one of {POLICIES}, got {extrapolation!r}"
            )
        xs = _frozen(xs)
        ys = _frozen(ys)
        if xs.shape != ys.shape:
            raise ValidationError(f"xs and ys differ in shape: {xs.shape} vs {ys.shape}")
        if xs.size < 2:
            raise ValidationError("A curve needs at least two points.")
        _check_axis(xs, "xs")
        if not np.all(np.isfinite(ys)):
            raise ValidationError("ys contains non-finite values.")

        self._xs = xs
        self._ys = ys
        self._method = method
        self._extrapolation = extrapolation
        self._spline = (
            CubicSpline(xs, ys, bc_type="natural")
            if method == CUBIC and xs.size >= 3 else None
        )

    # --- construction helpers ---------------------------------------------
    @classmethod
    def from_points(cls, points: Iterable[tuple[float, float]], **kwargs) -> Curve:
        """Build from ``(x, y)`` pairs (sorted by x, duplicates rejected)."""
        pts = sorted((float(x), float(y)) for x, y in points)
        if not pts:
            raise ValidationError("A curve needs at least two points.")
        xs, ys = zip(*pts)
        return cls(xs, ys, **kwargs)

    @classmethod
    def from_function(cls, func: Callable[[float], float], xs, **kwargs) -> Curve:
        """Sample ``func`` at ``xs``."""
        xs = np.asarray(xs, dtype=float)
        ys = np.array([float(func(float(x))) for x in xs])
        return cls(xs, ys, **kwargs)

    def rebuild(self, *, method: str | None = None, extrapolation: str | None = None) -> Curve:
        """Same points, different interpolation method or policy."""
        return Curve(
            self._xs, self._ys,
            method=method or self._method,
            extrapolation=extrapolation or self._extrapolation,
        )

    # --- read-only views ----------------------------------------------------
    @property
    def xs(self) -> np.ndarray:
        return self._xs

    @property
    def ys(self) -> np.ndarray:
        return self._ys

    @property
    def points(self) -> list[tuple[float, float]]:
        return list(zip(self._xs.tolist(), self._ys.tolist()))

    @property
    def domain(self) -> tuple[float, float]:
        return float(self._xs[0]), float(self._xs[-1])

    @property
    def method(self) -> str:
        return self._method

    @property
    def extrapolation(self) -> str:
        return self._extrapolation

    def __len__(self):
        return self._xs.size

    def __repr__(self):
        lo, hi = self.domain
        return (f"Curve(n={len(self)}, domain=[{lo:g}, {hi:g}], "
                f"method={self._method!r}, extrapolation={self._extrapolation!r})")

    # --- queries --------------------------------------------------------------
    def values(self, x) -> np.ndarray:
        """Evaluate the curve at an array of points."""
        x = np.asarray(x, dtype=float)
        xs, ys = self._xs, self._ys
        lo, hi = xs[0], xs[-1]

        outside = (x < lo) | (x > hi)
        if self._extrapolation == REJECT and np.any(outside):
            bad = x[outside].flat[0]
            raise OutOfDomain(float(bad), self.domain)

        xc = np.clip(x, lo, hi)
        if self._spline is not None:
            y = np.asarray(self._spline(xc), dtype=float)
        else:
            y = np.interp(xc, xs, ys)

        # Stored coordinates return stored values bit-for-bit
        idx = np.clip(np.searchsorted(xs, xc), 0, xs.size - 1)
        hit = xs[idx] == xc
        y = np.where(hit, ys[idx], y)

        if self._extrapolation == EXTEND:
            if self._spline is not None:
                slope_lo = float(self._spline(lo, 1))
                slope_hi = float(self._spline(hi, 1))
            else:
                slope_lo = (ys[1] - ys[0]) / (xs[1] - xs[0])
                slope_hi = (ys[-1] - ys[-2]) / (xs[-1] - xs[-2])
            y = np.where(x < lo, ys[0] + slope_lo * (x - lo), y)
            y = np.where(x > hi, ys[-1] + slope_hi * (x - hi), y)
        return y

    def value(self, x: float) -> float:
        return float(self.values(x))

    def __call__(self, x):
        result = self.values(x)
        if result.ndim == 0:
            return float(result)
        return result

    # --- analysis -------------------------------------------------------------
    def zero_crossings(self, *, xtol: float = 1e-12) -> list[float]:
        """Roots of the curve over its stored segments, ascending.

        Linear segments are solved in closed form; cubic segments with a
        sign change are solved with Brent's method.

        A run of stored zeros counts once, and only where the sign changes
        across it: the run end next to the positive side is reported (next
        to the non-zero side when the run touches the domain boundary).
        Zeros touched from the same side on both ends are not roots, and a
        curve that is zero everywhere has none.
        """
        xs, ys = self._xs, self._ys
        sign = np.sign(ys)
        n = xs.size
        roots: list[float] = []

        i = 0
        while i < n:
            if sign[i] == 0:
                j = i
                while j + 1 < n and sign[j + 1] == 0:
                    j += 1
                left = sign[i - 1] if i > 0 else 0.0
                right = sign[j + 1] if j + 1 < n else 0.0
                if left == 0 and right != 0:
                    roots.append(float(xs[j]))
                elif right == 0 and left != 0:
                    roots.append(float(xs[i]))
                elif left * right < 0:
                    roots.append(float(xs[i] if left > 0 else xs[j]))
                i = j + 1
                continue
            if i + 1 < n and sign[i] * sign[i + 1] < 0:
                roots.append(self._segment_root(i, xtol))
            i += 1
        return roots

    def _segment_root(self, i: int, xtol: float) -> float:
        x0, x1, y0, y1 = self._xs[i], self._xs[i + 1], self._ys[i], self._ys[i + 1]
        if self._spline is None:
            return float(x0 - y0 * (x1 - x0) / (y1 - y0))
        try:
            return float(brentq(self._spline, x0, x1, xtol=xtol, maxiter=200))
        except (ValueError, RuntimeError) as exc:
            raise NoConvergence(f"no root found on segment [{x0}, {x1}]: {exc}") from exc

    def extrema(self) -> tuple[tuple[float, float], tuple[float, float]]:
        """``((x_min, y_min), (x_max, y_max))`` over the stored points."""
        i_min = int(np.argmin(self._ys))
        i_max = int(np.argmax(self._ys))
        return ((float(self._xs[i_min]), float(self._ys[i_min])),
                (float(self._xs[i_max]), float(self._ys[i_max])))
