# optstrat/simulation.py
# Monte Carlo distribution of a strategy's P&L.
#
# Every path owns a generator seeded from (master entropy, path index), so
# a path's draws never depend on chunking, worker count or completion
# order.  Chunks of contiguous indices run in a process pool and write into
# a pre-sized buffer at their own offsets.

from __future__ import annotations
import logging
import os
import numpy as np
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass
from decimal import Decimal

from .config import get_settings
from .core import CALL, MarketState, OptionContract, quantize, to_decimal
from .errors import InvalidPathCount, NumericalError, OptStratError, ValidationError
from .pricing import model_value
from .risk import cvar_historical, var_historical
from .strategy import Strategy

__all__ = ["SimulationResult", "simulate"]

logger = logging.getLogger(__name__)

_ENTROPY_MOD = 1 << 128


@dataclass(frozen=True)
class _Position:
    contract: OptionContract
    quantity: float
    premium: float
    remaining: OptionContract | None     # None when expired by the horizon


# ---- helper: one chunk of path indices ----

def _path_rng(entropy: int, index: int) -> np.random.Generator:
    return np.random.default_rng(np.random.SeedSequence(entropy, spawn_key=(index,)))


def _run_chunk(
    start: int,
    stop: int,
    *,
    entropy: int,
    antithetic: bool,
    process,
    horizon: float,
    positions: tuple[_Position, ...],
    market: MarketState | None,
):
    """Terminal prices and P&L for paths ``start .. stop-1``; NaN P&L marks an excluded path."""
    n = stop - start
    terminals = np.empty(n)
    for j, i in enumerate(range(start, stop)):
        if antithetic:
            rng, sign = _path_rng(entropy, i // 2), (-1.0 if i % 2 else 1.0)
        else:
            rng, sign = _path_rng(entropy, i), 1.0
        terminals[j] = process.terminal(rng, horizon, sign)

    finite = np.isfinite(terminals) & (terminals > 0)
    if all(p.remaining is None for p in positions):
        # every leg settles at the horizon: intrinsic values, vectorised
        pnl = np.zeros(n)
        for p in positions:
            K = float(p.contract.strike)
            if p.contract.kind == CALL:
                value = np.maximum(terminals - K, 0.0)
            else:
                value = np.maximum(K - terminals, 0.0)
            pnl += p.quantity * (value - p.premium)
        pnl[~finite] = np.nan
        return start, terminals, pnl

    pnl = np.full(n, np.nan)
    for j in range(n):
        if not finite[j]:
            continue
        s = float(terminals[j])
        try:
            total = 0.0
            for p in positions:
                if p.remaining is None:
                    K = float(p.contract.strike)
                    value = max(s - K, 0.0) if p.contract.kind == CALL else max(K - s, 0.0)
                else:
                    value = model_value(p.remaining, market.with_spot(s))
                total += p.quantity * (value - p.premium)
        except OptStratError:
            continue
        pnl[j] = total
    return start, terminals, pnl


def _chunks(n_paths: int, chunk_size: int) -> list[tuple[int, int]]:
    return [(s, min(s + chunk_size, n_paths)) for s in range(0, n_paths, chunk_size)]


# ---- public API ----

@dataclass(frozen=True, eq=False)
class SimulationResult:
    """Outcome distribution of one :func:`simulate` call.

    ``pnl`` and ``terminal_prices`` are in path-index order and read-only.
    Excluded paths carry ``NaN`` P&L and are ignored by every statistic.
    """
    pnl: np.ndarray
    terminal_prices: np.ndarray
    n_paths: int
    seed: int
    horizon: Decimal
    excluded_paths: int
    antithetic: bool = False

    @property
    def valid_pnl(self) -> np.ndarray:
        return self.pnl[~np.isnan(self.pnl)]

    @property
    def n_valid(self) -> int:
        return self.n_paths - self.excluded_paths

    def _sample(self) -> np.ndarray:
        sample = self.valid_pnl
        if sample.size == 0:
            raise NumericalError(f"all {self.n_paths} paths were excluded")
        return sample

    @property
    def expected_pnl(self) -> Decimal:
        return quantize(float(self._sample().mean()))

    @property
    def std_pnl(self) -> float:
        sample = self._sample()
        return float(sample.std(ddof=1)) if sample.size > 1 else 0.0

    @property
    def standard_error(self) -> float:
        return self.std_pnl / np.sqrt(self.n_valid)

    @property
    def probability_of_profit(self) -> float:
        sample = self._sample()
        return float(np.count_nonzero(sample > 0.0) / sample.size)

    def percentile(self, q: float) -> Decimal:
        if not 0.0 <= q <= 100.0:
            raise ValidationError(f"percentile must be in [0, 100], got {q}")
        return quantize(float(np.percentile(self._sample(), q)))

    def percentiles(self, qs=(5, 25, 50, 75, 95)) -> dict[float, Decimal]:
        return {q: self.percentile(q) for q in qs}

    def value_at_risk(self, confidence: float = 0.95) -> float:
        return var_historical(self._sample(), confidence)

    def expected_shortfall(self, confidence: float = 0.95) -> float:
        return cvar_historical(self._sample(), confidence)

    def histogram(self, bins: int = 50) -> tuple[np.ndarray, np.ndarray]:
        """``(counts, edges)`` of the valid P&L sample."""
        return np.histogram(self._sample(), bins=bins)

    def summary(self) -> dict:
        return {
            "n_paths": self.n_paths,
            "excluded_paths": self.excluded_paths,
            "seed": self.seed,
            "horizon": str(self.horizon),
            "expected_pnl": str(self.expected_pnl),
            "std_pnl": self.std_pnl,
            "probability_of_profit": self.probability_of_profit,
            "percentiles": {str(q): str(v) for q, v in self.percentiles().items()},
            "var_95": self.value_at_risk(0.95),
            "cvar_95": self.expected_shortfall(0.95),
        }


def simulate(
    strategy: Strategy,
    process,
    n_paths: int,
    seed: int | None = None,
    *,
    horizon=None,
    n_workers: int | None = None,
    chunk_size: int | None = None,
    antithetic: bool = False,
) -> SimulationResult:
    """
    Simulate the P&L of *strategy* at *horizon* over *n_paths* paths.

    Parameters
    ----------
    strategy : Strategy
        Premiums are fixed once up front (explicit or model prices); legs
        still alive at the horizon are revalued on each path with the
        strategy's market at the simulated spot.
    process : GBMProcess | MertonJumpProcess | HestonProcess
        Anything with ``terminal(rng, horizon, sign) -> float``.
    n_paths : int
        Number of paths, > 0.
    seed : int, optional
        Master seed; any integer.  ``None`` draws fresh entropy, recorded
        in ``result.seed`` so the run can be replayed.
    horizon : number, optional
        Evaluation time in years (default: the strategy's first expiry).
    n_workers : int, optional
        Worker processes (default from settings, else ``os.cpu_count()``);
        1 runs in-process.
    chunk_size : int, optional
        Paths per task (default from settings).
    antithetic : bool
        Pair path ``2k+1`` with path ``2k`` using negated normal draws.

    Notes
    -----
    The result is bit-identical for a fixed ``(seed, n_paths, antithetic)``
    whatever ``n_workers`` and ``chunk_size`` are.
    """
    if isinstance(n_paths, bool) or int(n_paths) != n_paths or n_paths <= 0:
        raise InvalidPathCount(f"path count must be a positive integer, got {n_paths}")
    n_paths = int(n_paths)
    if not strategy.legs:
        raise ValidationError(f"strategy {strategy.name!r} has no legs")

    settings = get_settings()
    h = strategy.expiry if horizon is None else to_decimal(horizon)
    if h < 0:
        raise ValidationError(f"horizon must be >= 0, got {horizon}")
    market = strategy.market
    positions = []
    for leg, prem in zip(strategy.legs, strategy.leg_premiums()):
        c = leg.contract
        remaining = c.with_expiry(c.expiry - h) if c.expiry > h else None
        if remaining is not None and market is None:
            raise ValidationError(f"leg {c} outlives the horizon; strategy needs a market")
        positions.append(_Position(c, float(leg.quantity), float(prem), remaining))
    positions = tuple(positions)

    if seed is None:
        entropy = int(np.random.SeedSequence().entropy)
    else:
        entropy = int(seed)
        if entropy < 0:
            entropy %= _ENTROPY_MOD

    chunk_size = int(chunk_size or settings.chunk_size)
    if chunk_size <= 0:
        raise ValidationError(f"chunk_size must be positive, got {chunk_size}")
    n_workers = int(n_workers or settings.n_workers or os.cpu_count() or 1)
    chunks = _chunks(n_paths, chunk_size)
    kwargs = dict(entropy=entropy, antithetic=antithetic, process=process,
                  horizon=float(h), positions=positions, market=market)

    logger.info("simulating %d paths of %s to T=%s on %d worker(s), %d chunk(s)",
                n_paths, strategy.name, h, min(n_workers, len(chunks)), len(chunks))

    terminals = np.empty(n_paths)
    pnl = np.empty(n_paths)
    if n_workers <= 1 or len(chunks) == 1:
        for start, stop in chunks:
            _, t_chunk, p_chunk = _run_chunk(start, stop, **kwargs)
            terminals[start:stop] = t_chunk
            pnl[start:stop] = p_chunk
    else:
        with ProcessPoolExecutor(max_workers=min(n_workers, len(chunks))) as ex:
            futs = [ex.submit(_run_chunk, start, stop, **kwargs) for start, stop in chunks]
            for f in as_completed(futs):
                start, t_chunk, p_chunk = f.result()
                terminals[start:start + t_chunk.size] = t_chunk
                pnl[start:start + p_chunk.size] = p_chunk

    excluded = int(np.count_nonzero(np.isnan(pnl)))
    if excluded:
        logger.warning("%d of %d paths excluded from %s", excluded, n_paths, strategy.name)
    terminals.flags.writeable = False
    pnl.flags.writeable = False
    return SimulationResult(pnl, terminals, n_paths, entropy, h, excluded, antithetic)
