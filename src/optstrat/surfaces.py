# surfaces.py
# Two-dimensional interpolants over a rectangular grid, e.g. implied vol
# as a function of (strike, expiry).

from __future__ import annotations
import numpy as np
from typing import Iterable

from scipy.interpolate import RectBivariateSpline

from .curves import (
    CLAMP, CUBIC, EXTEND, LINEAR, METHODS, POLICIES, REJECT,
    Curve, _check_axis, _frozen,
)
from .errors import OutOfDomain, ValidationError

__all__ = ["Surface"]


class Surface:
    """Immutable ``z = f(x, y)`` interpolant on a full grid.

    Parameters
    ----------
    xs : array-like, shape (nx,)
        First axis (e.g. strike), strictly increasing, ``nx >= 2``.
    ys : array-like, shape (ny,)
        Second axis (e.g. expiry), strictly increasing, ``ny >= 2``.
    zs : array-like, shape (nx, ny)
        Grid values, ``zs[i, j] = f(xs[i], ys[j])``.
    method : str
        ``"linear"`` (bilinear, default) or ``"cubic"`` (bicubic spline;
        degree drops on an axis with fewer than 4 points).
    extrapolation : str
        ``"clamp"``, ``"linear"`` or ``"reject"`` -- applied per axis.
    """

    def __init__(self, xs, ys, zs, *, method: str = LINEAR, extrapolation: str = CLAMP):
        if method not in METHODS:
            raise ValidationError(f"method must be one of {METHODS}, got {method!r}")
        if extrapolation not in POLICIES:
            raise ValidationError(
                f"extrapolation must be one of {POLICIES}, got {extrapolation!r}"
            )
        xs, ys, zs = _frozen(xs), _frozen(ys), _frozen(zs)
        _check_axis(xs, "xs")
        _check_axis(ys, "ys")
        if xs.size < 2 or ys.size < 2:
            raise ValidationError("A surface needs at least two points on each axis.")
        if zs.shape != (xs.size, ys.size):
            raise ValidationError(
                f"zs must have shape {(xs.size, ys.size)}, got {zs.shape}"
            )
        if not np.all(np.isfinite(zs)):
            raise ValidationError("zs contains non-finite values.")

        self._xs, self._ys, self._zs = xs, ys, zs
        self._method = method
        self._extrapolation = extrapolation
        self._spline = None
        if method == CUBIC:
            self._spline = RectBivariateSpline(
                xs, ys, zs, kx=min(3, xs.size - 1), ky=min(3, ys.size - 1), s=0,
            )

    @classmethod
    def from_grid(cls, xs, ys, zs, **kwargs) -> Surface:
        return cls(xs, ys, zs, **kwargs)

    @classmethod
    def from_points(cls, points: Iterable[tuple[float, float, float]], **kwargs) -> Surface:
        """Build from scattered ``(x, y, z)`` triples that cover a full grid.

        Raises :class:`ValidationError` on a repeated ``(x, y)`` or a hole
        in the grid.
        """
        pts = [(float(x), float(y), float(z)) for x, y, z in points]
        xs = sorted({p[0] for p in pts})
        ys = sorted({p[1] for p in pts})
        xi = {x: i for i, x in enumerate(xs)}
        yi = {y: j for j, y in enumerate(ys)}
        zs = np.full((len(xs), len(ys)), np.nan)
        for x, y, z in pts:
            i, j = xi[x], yi[y]
            if not np.isnan(zs[i, j]):
                raise ValidationError(f"duplicate point at ({x}, {y})")
            zs[i, j] = z
        if np.isnan(zs).any():
            i, j = np.argwhere(np.isnan(zs))[0]
            raise ValidationError(f"grid has no value at ({xs[i]}, {ys[j]})")
        return cls(xs, ys, zs, **kwargs)

    # --- read-only views ----------------------------------------------------
    @property
    def xs(self) -> np.ndarray:
        return self._xs

    @property
    def ys(self) -> np.ndarray:
        return self._ys

    @property
    def zs(self) -> np.ndarray:
        return self._zs

    @property
    def domain(self) -> tuple[tuple[float, float], tuple[float, float]]:
        return ((float(self._xs[0]), float(self._xs[-1])),
                (float(self._ys[0]), float(self._ys[-1])))

    @property
    def method(self) -> str:
        return self._method

    @property
    def extrapolation(self) -> str:
        return self._extrapolation

    def points(self) -> list[tuple[float, float, float]]:
        return [(float(x), float(y), float(self._zs[i, j]))
                for i, x in enumerate(self._xs) for j, y in enumerate(self._ys)]

    def __repr__(self):
        (x0, x1), (y0, y1) = self.domain
        return (f"Surface({self._xs.size}x{self._ys.size}, x=[{x0:g}, {x1:g}], "
                f"y=[{y0:g}, {y1:g}], method={self._method!r}, "
                f"extrapolation={self._extrapolation!r})")

    # --- interpolation kernels -----------------------------------------------
    def _bilinear(self, x: np.ndarray, y: np.ndarray) -> np.ndarray:
        xs, ys, zs = self._xs, self._ys, self._zs
        i = np.clip(np.searchsorted(xs, x, side="right") - 1, 0, xs.size - 2)
        j = np.clip(np.searchsorted(ys, y, side="right") - 1, 0, ys.size - 2)
        tx = (x - xs[i]) / (xs[i + 1] - xs[i])
        ty = (y - ys[j]) / (ys[j + 1] - ys[j])
        return ((1 - tx) * (1 - ty) * zs[i, j]
                + tx * (1 - ty) * zs[i + 1, j]
                + (1 - tx) * ty * zs[i, j + 1]
                + tx * ty * zs[i + 1, j + 1])

    def values(self, x, y) -> np.ndarray:
        """Evaluate at broadcast arrays of ``x`` and ``y``."""
        x, y = np.broadcast_arrays(np.asarray(x, dtype=float), np.asarray(y, dtype=float))
        shape = x.shape
        x, y = x.ravel(), y.ravel()
        xs, ys, zs = self._xs, self._ys, self._zs

        outside = (x < xs[0]) | (x > xs[-1]) | (y < ys[0]) | (y > ys[-1])
        if self._extrapolation == REJECT and np.any(outside):
            k = int(np.argmax(outside))
            raise OutOfDomain((float(x[k]), float(y[k])), self.domain)

        xc = np.clip(x, xs[0], xs[-1])
        yc = np.clip(y, ys[0], ys[-1])
        extend = self._extrapolation == EXTEND

        if self._spline is None:
            # bilinear extends linearly by itself when fed unclipped coords
            z = self._bilinear(x, y) if extend else self._bilinear(xc, yc)
        else:
            z = self._spline.ev(xc, yc)
            if extend:
                z = (z + self._spline.ev(xc, yc, dx=1) * (x - xc)
                       + self._spline.ev(xc, yc, dy=1) * (y - yc))
        z = np.asarray(z, dtype=float)

        # Grid nodes return stored values bit-for-bit
        qx, qy = (x, y) if extend else (xc, yc)
        ix = np.clip(np.searchsorted(xs, qx), 0, xs.size - 1)
        iy = np.clip(np.searchsorted(ys, qy), 0, ys.size - 1)
        node = (xs[ix] == qx) & (ys[iy] == qy)
        return np.where(node, zs[ix, iy], z).reshape(shape)

    def value(self, x: float, y: float) -> float:
        return float(self.values(x, y))

    def __call__(self, x, y):
        result = self.values(x, y)
        if result.ndim == 0:
            return float(result)
        return result

    # --- slicing ----------------------------------------------------------------
    def curve_at_y(self, y: float, *, extrapolation: str | None = None) -> Curve:
        """Slice at fixed ``y`` -- e.g. the smile for one expiry."""
        zs = self.values(self._xs, np.full(self._xs.shape, float(y)))
        return Curve(self._xs, zs, method=self._method,
                     extrapolation=extrapolation or self._extrapolation)

    def curve_at_x(self, x: float, *, extrapolation: str | None = None) -> Curve:
        """Slice at fixed ``x`` -- e.g. the term structure for one strike."""
        zs = self.values(np.full(self._ys.shape, float(x)), self._ys)
        return Curve(self._ys, zs, method=self._method,
                     extrapolation=extrapolation or self._extrapolation)
