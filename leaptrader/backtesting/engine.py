"""Day-by-day LEAPS backtester.

For each calendar day in the requested range the engine first realizes
positions whose simulated exit has arrived, then looks for one new position
per symbol while capacity remains. Each entry is walked forward on a seeded
random path until it hits the stop, the target or the maximum hold.
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from pydantic import BaseModel, Field, model_validator

from leaptrader.features import FeatureBuilder
from leaptrader.ml.engine import MLEngine
from leaptrader.models.ml import (
    EntryExitRequest,
    Side,
    StrikeCandidate,
    StrikeScoringRequest,
    StrikeSelectionContext,
)
from leaptrader.models.option import OptionContract, UnderlyingSnapshot

from .market import ChainSource, SyntheticChainSource
from .metrics import max_consecutive_losses, max_drawdown, sharpe_ratio, sortino_ratio

logger = logging.getLogger(__name__)

SELECTION_DELTA_RANGE = (0.5, 0.8)
SELECTION_DTE_RANGE = (90, 730)
TARGET_DELTA = 0.65
DEFAULT_IV_RANK = 50.0

STOP_LOSS_MULTIPLE = 0.65
TAKE_PROFIT_MULTIPLE = 2.0
MAX_HOLD_DAYS = 365
DAILY_DRIFT = 0.0001
DAILY_VOLATILITY = 0.02
PRICE_FLOOR = 0.01
CONTRACT_MULTIPLIER = 100

TRADE_COLUMNS = [
    "entry_date",
    "exit_date",
    "symbol",
    "underlying",
    "side",
    "entry_price",
    "exit_price",
    "quantity",
    "pnl",
    "hold_days",
    "exit_reason",
    "ml_score",
    "ml_confidence",
]
EQUITY_COLUMNS = ["date", "value", "drawdown"]


class BacktestParams(BaseModel):
    """Inputs for :meth:`Backtester.run`. ``start`` and ``end`` are inclusive."""

    symbols: List[str] = Field(min_length=1)
    start: date
    end: date
    side: Side = "long_call"
    use_ml: bool = False
    iv_rank_gate: Optional[Tuple[float, float]] = None
    initial_capital: float = Field(default=100_000.0, gt=0)
    max_positions: int = Field(default=5, ge=1)
    position_size_percent: float = Field(default=5.0, gt=0, le=100)
    seed: Optional[int] = Field(default=None, ge=0)
    model: str = "leaps-v1.2"
    entry_exit_model: str = "entry-exit-v1.0"

    @model_validator(mode="after")
    def _check_dates(self) -> "BacktestParams":
        if self.end < self.start:
            raise ValueError(f"Backtest end {self.end} is before start {self.start}")
        if self.iv_rank_gate and self.iv_rank_gate[0] > self.iv_rank_gate[1]:
            raise ValueError(f"Invalid IV rank gate: {self.iv_rank_gate}")
        return self


@dataclass(frozen=True)
class Trade:
    entry_date: date
    exit_date: date
    symbol: str
    underlying: str
    side: str
    entry_price: float
    exit_price: float
    quantity: int
    pnl: float
    hold_days: int
    exit_reason: str
    ml_score: Optional[float] = None
    ml_confidence: Optional[float] = None

    @property
    def return_pct(self) -> float:
        cost = self.entry_price * self.quantity * CONTRACT_MULTIPLIER
        return self.pnl / cost if cost else 0.0


@dataclass(frozen=True)
class EquityPoint:
    date: date
    value: float
    drawdown: float


@dataclass(frozen=True)
class BacktestSummary:
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    win_rate: float = 0.0
    total_pnl: float = 0.0
    max_drawdown: float = 0.0
    sharpe_ratio: float = 0.0
    sortino_ratio: float = 0.0
    avg_return_per_trade: float = 0.0
    max_consecutive_losses: int = 0


@dataclass(frozen=True)
class SymbolPerformance:
    symbol: str
    trades: int
    win_rate: float
    pnl: float
    avg_return: float


@dataclass(frozen=True)
class BacktestResult:
    params: BacktestParams
    summary: BacktestSummary
    trades: List[Trade] = field(default_factory=list)
    equity: List[EquityPoint] = field(default_factory=list)
    by_symbol: List[SymbolPerformance] = field(default_factory=list)

    def trades_frame(self) -> pd.DataFrame:
        return pd.DataFrame([asdict(trade) for trade in self.trades], columns=TRADE_COLUMNS)

    def equity_frame(self) -> pd.DataFrame:
        return pd.DataFrame([asdict(point) for point in self.equity], columns=EQUITY_COLUMNS)


@dataclass(frozen=True)
class _Opportunity:
    contract: OptionContract
    ml_score: Optional[float] = None
    ml_confidence: Optional[float] = None


@dataclass
class _RunState:
    capital: float
    peak: float
    open_trades: List[Trade] = field(default_factory=list)
    closed_trades: List[Trade] = field(default_factory=list)
    equity: List[EquityPoint] = field(default_factory=list)


class Backtester:
    """Simulate a LEAPS strategy over a date range.

    ``chain_source`` supplies chains, spot and IV rank per date (synthetic by
    default). With ``params.use_ml`` and an ``ml`` engine, strikes are picked
    by the engine's top score; otherwise the rule-based pick is the contract
    whose delta is closest to 0.65.
    """

    def __init__(
        self,
        chain_source: Optional[ChainSource] = None,
        ml: Optional[MLEngine] = None,
        *,
        stop_loss_multiple: float = STOP_LOSS_MULTIPLE,
        take_profit_multiple: float = TAKE_PROFIT_MULTIPLE,
        max_hold_days: int = MAX_HOLD_DAYS,
        seed: int = 0,
        feature_builder: Optional[FeatureBuilder] = None,
    ) -> None:
        if not 0 < stop_loss_multiple < 1 < take_profit_multiple:
            raise ValueError("Stop multiple must be in (0, 1) and target multiple above 1")
        self._source = chain_source or SyntheticChainSource(seed=seed)
        self._ml = ml
        self._stop_multiple = stop_loss_multiple
        self._target_multiple = take_profit_multiple
        self._max_hold_days = max_hold_days
        self._seed = seed
        self._features = feature_builder or FeatureBuilder()

    async def run(self, params: BacktestParams) -> BacktestResult:
        use_ml = params.use_ml and self._ml is not None
        if params.use_ml and self._ml is None:
            logger.warning("ML selection requested without an ML engine; using rule-based selection")

        logger.info(
            f"Starting backtest for {', '.join(params.symbols)} from {params.start} to {params.end} "
            f"(side={params.side}, ml={use_ml})"
        )
        rng = np.random.default_rng(params.seed if params.seed is not None else self._seed)
        state = _RunState(capital=params.initial_capital, peak=params.initial_capital)

        current = params.start
        while current <= params.end:
            self._realize(state, lambda trade: trade.exit_date <= current)
            for symbol in params.symbols:
                if len(state.open_trades) >= params.max_positions:
                    break
                try:
                    trade = await self._open_trade(symbol, current, params, state.capital, rng, use_ml)
                except Exception as exc:
                    logger.warning(f"Skipping {symbol} on {current}: {exc}")
                    continue
                if trade is not None:
                    state.open_trades.append(trade)
            current += timedelta(days=1)

        self._realize(state, lambda trade: True)

        summary = self.calculate_summary(state.closed_trades, params.initial_capital)
        result = BacktestResult(
            params=params,
            summary=summary,
            trades=list(state.closed_trades),
            equity=list(state.equity),
            by_symbol=self.calculate_by_symbol(state.closed_trades),
        )
        logger.info(
            f"Backtest completed: trades={summary.total_trades} win_rate={summary.win_rate:.2f} "
            f"pnl={summary.total_pnl:.2f} sharpe={summary.sharpe_ratio:.2f}"
        )
        return result

    def _realize(self, state: _RunState, due) -> None:
        ready = sorted((trade for trade in state.open_trades if due(trade)), key=lambda trade: trade.exit_date)
        if not ready:
            return
        realized = {id(trade) for trade in ready}
        state.open_trades = [trade for trade in state.open_trades if id(trade) not in realized]
        for trade in ready:
            state.capital += trade.pnl
            state.peak = max(state.peak, state.capital)
            drawdown = (state.peak - state.capital) / state.peak if state.peak > 0 else 0.0
            state.closed_trades.append(trade)
            state.equity.append(EquityPoint(date=trade.exit_date, value=state.capital, drawdown=drawdown))

    async def _open_trade(
        self,
        symbol: str,
        entry_date: date,
        params: BacktestParams,
        capital: float,
        rng: np.random.Generator,
        use_ml: bool,
    ) -> Optional[Trade]:
        opportunity = await self.find_opportunity(symbol, entry_date, params, use_ml)
        if opportunity is None:
            return None

        contract = opportunity.contract
        entry_price = contract.mid_price
        position_size = params.position_size_percent / 100 * capital
        quantity = math.floor(position_size / (entry_price * CONTRACT_MULTIPLIER))
        if quantity <= 0:
            logger.debug(f"Position size {position_size:.2f} too small for {contract.symbol} at {entry_price:.2f}")
            return None

        hold_days, exit_price, reason = self.simulate_exit(
            entry_price, params.side, contract.days_to_expiration(entry_date), rng
        )
        return Trade(
            entry_date=entry_date,
            exit_date=entry_date + timedelta(days=hold_days),
            symbol=contract.symbol,
            underlying=symbol,
            side=params.side,
            entry_price=entry_price,
            exit_price=exit_price,
            quantity=quantity,
            pnl=(exit_price - entry_price) * quantity * CONTRACT_MULTIPLIER,
            hold_days=hold_days,
            exit_reason=reason,
            ml_score=opportunity.ml_score,
            ml_confidence=opportunity.ml_confidence,
        )

    async def find_opportunity(
        self,
        symbol: str,
        as_of: date,
        params: BacktestParams,
        use_ml: bool = False,
    ) -> Optional[_Opportunity]:
        iv_rank = await self._source.get_iv_rank(symbol, as_of)
        if params.iv_rank_gate:
            gate_rank = iv_rank if iv_rank is not None else DEFAULT_IV_RANK
            low, high = params.iv_rank_gate
            if not low <= gate_rank <= high:
                logger.debug(f"{symbol} IV rank {gate_rank:.1f} outside gate {low}-{high} on {as_of}")
                return None

        chain = await self._source.get_chain(symbol, as_of)
        candidates = self.eligible_contracts(chain, params.side, as_of)
        if not candidates:
            return None

        if not use_ml:
            best = min(candidates, key=lambda c: (abs(abs(c.delta or 0.0) - TARGET_DELTA), -(c.open_interest or 0)))
            return _Opportunity(contract=best)

        spot = await self._source.get_spot(symbol, as_of)
        scored_at = datetime.combine(as_of, time.min, tzinfo=timezone.utc)
        response = await self._ml.score_strike(
            StrikeScoringRequest(
                model=params.model,
                as_of=scored_at,
                underlying_spot=spot,
                selection_context=StrikeSelectionContext(
                    side=params.side,
                    delta_range=SELECTION_DELTA_RANGE,
                    dte_range=SELECTION_DTE_RANGE,
                    iv_rank=iv_rank,
                ),
                candidates=[StrikeCandidate(contract=contract) for contract in candidates],
            )
        )
        if not response.scored:
            return None
        best_index = max(range(len(response.scored)), key=lambda index: response.scored[index].score)

        exits = await self._ml.score_entry_exit(
            EntryExitRequest(
                model=params.entry_exit_model,
                as_of=scored_at,
                underlying=symbol,
                side=params.side,
                features=self._features.build_underlying_features(
                    UnderlyingSnapshot(symbol=symbol, spot=spot, iv_rank=iv_rank)
                ),
            )
        )
        return _Opportunity(
            contract=candidates[best_index],
            ml_score=response.scored[best_index].score,
            ml_confidence=exits.confidence,
        )

    @staticmethod
    def eligible_contracts(chain: Sequence[OptionContract], side: str, as_of: date) -> List[OptionContract]:
        right = "call" if side == "long_call" else "put"
        low_delta, high_delta = SELECTION_DELTA_RANGE
        min_dte, max_dte = SELECTION_DTE_RANGE
        return [
            contract
            for contract in chain
            if contract.right == right
            and contract.delta is not None
            and low_delta <= abs(contract.delta) <= high_delta
            and min_dte <= contract.days_to_expiration(as_of) <= max_dte
            and contract.mid_price > 0
        ]

    def simulate_exit(
        self,
        entry_price: float,
        side: str,
        days_to_expiration: int,
        rng: np.random.Generator,
    ) -> Tuple[int, float, str]:
        """Walk one random path and return ``(hold_days, exit_price, reason)``."""

        max_hold = max(1, min(self._max_hold_days, days_to_expiration))
        drift = DAILY_DRIFT if side == "long_call" else -DAILY_DRIFT
        shocks = rng.uniform(-1.0, 1.0, size=max_hold)
        path = np.maximum(PRICE_FLOOR, entry_price * np.cumprod(1 + drift + shocks * DAILY_VOLATILITY))

        stop = entry_price * self._stop_multiple
        target = entry_price * self._target_multiple
        hits = np.flatnonzero((path <= stop) | (path >= target))
        if hits.size:
            day = int(hits[0])
            if path[day] <= stop:
                return day + 1, stop, "sl"
            return day + 1, target, "tp"
        return max_hold, float(path[-1]), "expiry"

    @staticmethod
    def calculate_summary(trades: Sequence[Trade], initial_capital: float) -> BacktestSummary:
        if not trades:
            return BacktestSummary()

        pnls = [trade.pnl for trade in trades]
        wins = sum(1 for pnl in pnls if pnl > 0)
        total_pnl = float(sum(pnls))
        returns = [trade.return_pct for trade in trades]
        return BacktestSummary(
            total_trades=len(trades),
            winning_trades=wins,
            losing_trades=len(trades) - wins,
            win_rate=wins / len(trades),
            total_pnl=total_pnl,
            max_drawdown=max_drawdown(pnls, initial_capital),
            sharpe_ratio=sharpe_ratio(returns),
            sortino_ratio=sortino_ratio(returns),
            avg_return_per_trade=total_pnl / len(trades),
            max_consecutive_losses=max_consecutive_losses(pnls),
        )

    @staticmethod
    def calculate_by_symbol(trades: Sequence[Trade]) -> List[SymbolPerformance]:
        grouped: Dict[str, List[Trade]] = {}
        for trade in trades:
            grouped.setdefault(trade.underlying, []).append(trade)

        performance: List[SymbolPerformance] = []
        for symbol, symbol_trades in grouped.items():
            pnl = sum(trade.pnl for trade in symbol_trades)
            wins = sum(1 for trade in symbol_trades if trade.pnl > 0)
            performance.append(
                SymbolPerformance(
                    symbol=symbol,
                    trades=len(symbol_trades),
                    win_rate=wins / len(symbol_trades),
                    pnl=pnl,
                    avg_return=pnl / len(symbol_trades),
                )
            )
        return performance


__all__ = [
    "BacktestParams",
    "BacktestResult",
    "BacktestSummary",
    "Backtester",
    "EquityPoint",
    "SymbolPerformance",
    "Trade",
]
