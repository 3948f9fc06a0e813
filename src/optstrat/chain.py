"""Option chains.

An :class:`OptionChain` is an immutable snapshot of the contracts listed on
one underlying, partitioned by expiry.  Within an expiry each strike
appears once: a chain holds one quote per ``(expiry, strike)`` -- for vol
work that is usually the out-of-the-money side (puts below spot, calls at
and above), which is what :func:`build_chain` produces.

Chains optionally carry an implied volatility per contract; those quotes
are the calibration points for smiles (:meth:`OptionChain.smile`) and
surfaces (:meth:`OptionChain.vol_surface`).
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable, Iterator, Sequence

import numpy as np

from .core import AMERICAN, CALL, EUROPEAN, PUT, OptionContract, to_decimal
from .curves import CLAMP, LINEAR, Curve
from .errors import DuplicateStrike, ValidationError
from .surfaces import Surface

__all__ = ["OptionChain", "build_chain"]

logger = logging.getLogger(__name__)


class OptionChain:
    """Contracts for one underlying, grouped by expiry, strikes ascending.

    Build with :meth:`from_contracts`; the constructor is internal.
    """

    def __init__(
        self,
        symbol: str,
        groups: dict[Decimal, tuple[OptionContract, ...]],
        vols: dict[tuple[Decimal, Decimal], float],
    ):
        self._symbol = symbol
        self._groups = groups
        self._vols = vols
        self._index = {
            (c.expiry, c.strike): c for group in groups.values() for c in group
        }

    @classmethod
    def from_contracts(
        cls,
        contracts: Iterable[OptionContract],
        implied_vols: Sequence[float] | None = None,
    ) -> OptionChain:
        """Group *contracts* by expiry.

        Parameters
        ----------
        contracts : iterable of OptionContract
            All on the same underlying symbol.
        implied_vols : sequence of float, optional
            Quoted implied volatility per contract, aligned with *contracts*.

        Raises
        ------
        DuplicateStrike
            Two contracts share ``(expiry, strike)``.
        ValidationError
            Empty input, mixed symbols, or misaligned / negative vols.
        """
        contracts = list(contracts)
        if not contracts:
            raise ValidationError("a chain needs at least one contract")
        symbols = {c.symbol for c in contracts}
        if len(symbols) > 1:
            raise ValidationError(f"contracts span several underlyings: {sorted(symbols)}")
        if implied_vols is not None:
            implied_vols = [float(v) for v in implied_vols]
            if len(implied_vols) != len(contracts):
                raise ValidationError(
                    f"{len(implied_vols)} implied vols for {len(contracts)} contracts"
                )
            if any(not np.isfinite(v) or v <= 0 for v in implied_vols):
                raise ValidationError("implied vols must be positive and finite")

        seen: dict[tuple[Decimal, Decimal], OptionContract] = {}
        vols: dict[tuple[Decimal, Decimal], float] = {}
        for i, c in enumerate(contracts):
            key = (c.expiry, c.strike)
            if key in seen:
                raise DuplicateStrike(c.expiry, c.strike)
            seen[key] = c
            if implied_vols is not None:
                vols[key] = implied_vols[i]

        groups: dict[Decimal, list[OptionContract]] = {}
        for c in seen.values():
            groups.setdefault(c.expiry, []).append(c)
        frozen = {
            t: tuple(sorted(groups[t], key=lambda c: c.strike)) for t in sorted(groups)
        }
        logger.debug("built chain %s: %d contracts over %d expiries",
                     contracts[0].symbol, len(seen), len(frozen))
        return cls(contracts[0].symbol, frozen, vols)

    # --- views ------------------------------------------------------------------
    @property
    def symbol(self) -> str:
        return self._symbol

    @property
    def expirations(self) -> list[Decimal]:
        return list(self._groups)

    @property
    def has_vols(self) -> bool:
        return bool(self._vols) and len(self._vols) == len(self._index)

    def strikes(self, expiry) -> list[Decimal]:
        return [c.strike for c in self._group(expiry)]

    def contracts(self, expiry=None) -> list[OptionContract]:
        if expiry is not None:
            return list(self._group(expiry))
        return [c for group in self._groups.values() for c in group]

    def __len__(self):
        return len(self._index)

    def __iter__(self) -> Iterator[OptionContract]:
        return iter(self.contracts())

    def __contains__(self, contract) -> bool:
        return self._index.get((contract.expiry, contract.strike)) == contract

    def __repr__(self):
        return (f"OptionChain({self._symbol!r}, contracts={len(self)}, "
                f"expirations={[str(t) for t in self._groups]})")

    def _group(self, expiry) -> tuple[OptionContract, ...]:
        t = to_decimal(expiry)
        try:
            return self._groups[t]
        except KeyError:
            raise KeyError(f"no expiry {t} in chain {self._symbol}") from None

    # --- lookup -------------------------------------------------------------------
    def get(self, expiry, strike) -> OptionContract:
        """Contract at ``(expiry, strike)``; ``KeyError`` when absent."""
        key = (to_decimal(expiry), to_decimal(strike))
        try:
            return self._index[key]
        except KeyError:
            raise KeyError(f"no contract at expiry {key[0]}, strike {key[1]}") from None

    def find(self, expiry, strike) -> OptionContract | None:
        return self._index.get((to_decimal(expiry), to_decimal(strike)))

    def implied_vol(self, expiry, strike) -> float | None:
        return self._vols.get((to_decimal(expiry), to_decimal(strike)))

    def atm_strike(self, expiry, spot) -> Decimal:
        """Listed strike closest to *spot* (lower strike on a tie)."""
        s = to_decimal(spot)
        return min(self.strikes(expiry), key=lambda k: (abs(k - s), k))

    def filter_moneyness(self, reference_price, low, high) -> OptionChain:
        """Sub-chain of contracts with ``low <= strike / reference_price <= high``."""
        ref = to_decimal(reference_price)
        lo, hi = to_decimal(low), to_decimal(high)
        if ref <= 0:
            raise ValidationError(f"reference price must be positive, got {reference_price}")
        if lo > hi:
            raise ValidationError(f"empty moneyness range [{low}, {high}]")
        groups = {}
        for t, group in self._groups.items():
            kept = tuple(c for c in group if lo <= c.strike / ref <= hi)
            if kept:
                groups[t] = kept
        vols = {
            (c.expiry, c.strike): self._vols[(c.expiry, c.strike)]
            for kept in groups.values() for c in kept
            if (c.expiry, c.strike) in self._vols
        }
        return OptionChain(self._symbol, groups, vols)

    # --- calibration views ----------------------------------------------------------
    def _require_vols(self, contracts) -> list[float]:
        missing = [c for c in contracts if (c.expiry, c.strike) not in self._vols]
        if missing:
            raise ValidationError(f"no implied vol quoted for {missing[0]}")
        return [self._vols[(c.expiry, c.strike)] for c in contracts]

    def smile(self, expiry, *, method: str = LINEAR, extrapolation: str = CLAMP) -> Curve:
        """Quoted implied vols at one expiry as a strike -> vol :class:`Curve`."""
        group = self._group(expiry)
        vols = self._require_vols(group)
        return Curve([float(c.strike) for c in group], vols,
                     method=method, extrapolation=extrapolation)

    def vol_surface(self, *, method: str = LINEAR, extrapolation: str = CLAMP) -> Surface:
        """(strike, expiry) -> vol :class:`Surface` from the quoted vols.

        Every expiry must list the same strikes.
        """
        expiries = self.expirations
        strikes = self.strikes(expiries[0])
        for t in expiries[1:]:
            if self.strikes(t) != strikes:
                raise ValidationError(
                    f"expiry {t} lists different strikes than {expiries[0]}; "
                    "a surface needs a common strike grid"
                )
        zs = np.empty((len(strikes), len(expiries)))
        for j, t in enumerate(expiries):
            zs[:, j] = self._require_vols(self._groups[t])
        return Surface([float(k) for k in strikes], [float(t) for t in expiries], zs,
                       method=method, extrapolation=extrapolation)


# ---------------------------------------------------------------------------
# Synthetic chain
# ---------------------------------------------------------------------------
def build_chain(
    symbol: str,
    spot: float,
    expiries: Sequence[float],
    *,
    strike_interval: float = 1.0,
    n_strikes: int = 10,
    volatility: float = 0.2,
    skew: float = 0.0,
    smile: float = 0.0,
    side: str = "otm",
    style: str = EUROPEAN,
    multiplier: int = 1,
) -> OptionChain:
    """Generate a chain around *spot* with a parabolic smile.

    Strikes are ``atm + i * strike_interval`` for ``i`` in
    ``[-n_strikes, n_strikes]`` (non-positive strikes dropped), with
    ``atm`` the multiple of *strike_interval* nearest to *spot*.  Each
    contract gets the implied vol

        vol(K) = volatility + skew * m + smile * m**2,   m = ln(K / spot)

    floored at 1%.

    Parameters
    ----------
    side : str
        ``"otm"`` (puts below spot, calls at and above), ``"call"`` or
        ``"put"``.
    """
    if spot <= 0:
        raise ValidationError(f"spot must be positive, got {spot}")
    if strike_interval <= 0 or n_strikes < 0:
        raise ValidationError("strike_interval must be > 0 and n_strikes >= 0")
    if side not in ("otm", CALL, PUT):
        raise ValidationError(f"side must be 'otm', 'call' or 'put', got {side!r}")
    if style not in (EUROPEAN, AMERICAN):
        raise ValidationError(f"unknown style {style!r}")

    step = to_decimal(strike_interval)
    atm = (to_decimal(spot) / step).to_integral_value() * step
    contracts, vols = [], []
    for t in expiries:
        for i in range(-n_strikes, n_strikes + 1):
            strike = atm + i * step
            if strike <= 0:
                continue
            kind = side if side != "otm" else (PUT if strike < to_decimal(spot) else CALL)
            m = float(np.log(float(strike) / spot))
            vols.append(max(volatility + skew * m + smile * m * m, 0.01))
            contracts.append(OptionContract(symbol, strike, t, kind, style, multiplier))
    return OptionChain.from_contracts(contracts, implied_vols=vols)
