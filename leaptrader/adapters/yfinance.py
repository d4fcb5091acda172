"""Provider implementation backed by the public yfinance client."""

from __future__ import annotations

import asyncio
import logging
import math
import random
import time
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import pandas as pd
import yfinance as yf

from leaptrader.models.option import MarketData, OptionContract, OptionGreeks, parse_occ_symbol

from .base import AdapterError, DataNotAvailable, OptionsDataProvider, RateLimitError

logger = logging.getLogger(__name__)

_FAST_INFO_KEYS = ("last_price", "lastPrice", "regular_market_price", "regularMarketPrice")
_INFO_KEYS = ("currentPrice", "regularMarketPrice", "previousClose")


class YFinanceOptionsDataProvider(OptionsDataProvider):
    """Fetch chains, quotes and spot prices from Yahoo Finance.

    yfinance is synchronous, so every request runs in a worker thread. The
    ``ticker_factory`` is injectable so tests never touch the network.
    """

    def __init__(
        self,
        ticker_factory: Callable[[str], yf.Ticker] | None = None,
        max_retries: int = 3,
        base_delay: float = 0.75,
        max_delay: float = 4.0,
        jitter: float = 0.3,
        sleep: Callable[[float], None] = time.sleep,
        health_symbol: str = "SPY",
    ) -> None:
        self._ticker_factory = ticker_factory or yf.Ticker
        self._max_retries = max(1, max_retries)
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._jitter = jitter
        self._sleep = sleep
        self._health_symbol = health_symbol

    @property
    def name(self) -> str:
        return "yfinance"

    async def get_option_chain(self, symbol: str, expiration: Optional[date] = None) -> List[OptionContract]:
        return await asyncio.to_thread(self._fetch_chain, symbol, expiration)

    async def get_option_quote(self, symbol: str) -> OptionContract:
        return await asyncio.to_thread(self._fetch_quote, symbol)

    async def get_underlying_data(self, symbol: str) -> MarketData:
        return await asyncio.to_thread(self._fetch_underlying, symbol)

    async def health_check(self) -> None:
        expirations = await asyncio.to_thread(self.get_expirations, self._health_symbol)
        if not expirations:
            raise DataNotAvailable(f"No expirations returned for {self._health_symbol}")

    def get_expirations(self, symbol: str) -> List[date]:
        ticker = self._ticker_factory(symbol)
        raw_expirations = self._retry(lambda: ticker.options, context=f"fetch expirations for {symbol}")
        parsed: List[date] = []
        for raw in raw_expirations or ():
            try:
                parsed.append(datetime.strptime(raw, "%Y-%m-%d").date())
            except ValueError:
                logger.debug(f"Skipping malformed expiration {raw!r} for {symbol}")
        return parsed

    def _fetch_chain(self, symbol: str, expiration: Optional[date]) -> List[OptionContract]:
        ticker = self._ticker_factory(symbol)
        expirations = [expiration] if expiration else self.get_expirations(symbol)
        contracts: List[OptionContract] = []
        for expiry in expirations:
            expiry_str = expiry.strftime("%Y-%m-%d")
            chain = self._retry(
                lambda: ticker.option_chain(expiry_str),
                context=f"fetch options chain for {symbol} {expiry_str}",
            )
            for right, frame in (("call", getattr(chain, "calls", None)), ("put", getattr(chain, "puts", None))):
                contracts.extend(self._frame_to_contracts(frame, symbol, expiry, right))
        return contracts

    def _fetch_quote(self, symbol: str) -> OptionContract:
        parts = parse_occ_symbol(symbol)
        contracts = self._fetch_chain(parts["underlying"], parts["expiration"])
        for contract in contracts:
            if contract.symbol == symbol:
                return contract
        raise DataNotAvailable(f"Option {symbol} not found in yfinance chain")

    def _fetch_underlying(self, symbol: str) -> MarketData:
        ticker = self._ticker_factory(symbol)
        snapshot = self._extract_price(ticker)
        if snapshot is None:
            raise DataNotAvailable(f"No usable price for {symbol}")
        price, timestamp, volume = snapshot
        return MarketData(symbol=symbol, price=price, volume=volume, timestamp=timestamp)

    def _frame_to_contracts(
        self, frame: Optional[pd.DataFrame], underlying: str, expiration: date, right: str
    ) -> List[OptionContract]:
        if frame is None or frame.empty:
            return []
        records: List[Dict[str, Any]] = frame.astype(object).where(pd.notna(frame), None).to_dict("records")
        contracts: List[OptionContract] = []
        for record in records:
            delta = record.get("delta")
            contracts.append(
                OptionContract(
                    symbol=record["contractSymbol"],
                    underlying=underlying,
                    strike=float(record["strike"]),
                    expiration=expiration,
                    right=right,
                    bid=_positive_or_none(record.get("bid")),
                    ask=_positive_or_none(record.get("ask")),
                    last=_positive_or_none(record.get("lastPrice")),
                    volume=record.get("volume"),
                    open_interest=record.get("openInterest"),
                    implied_volatility=_positive_or_none(record.get("impliedVolatility")),
                    greeks=OptionGreeks(delta=float(delta)) if delta is not None else None,
                )
            )
        return contracts

    def _retry(self, operation: Callable[[], Any], context: str) -> Any:
        last_error: Exception | None = None
        for attempt in range(self._max_retries):
            try:
                return operation()
            except Exception as exc:  # yfinance raises generic errors
                last_error = exc
                logger.warning(f"Failed to {context} (attempt {attempt + 1}/{self._max_retries}): {exc}")
                if attempt < self._max_retries - 1:
                    self._apply_rate_limit_backoff(attempt)

        if last_error is not None and "Too Many Requests" in str(last_error):
            raise RateLimitError(f"Rate limited while trying to {context}") from last_error
        raise AdapterError(f"Failed to {context}: {last_error}") from last_error

    def _apply_rate_limit_backoff(self, attempt: int) -> None:
        delay = min(self._max_delay, self._base_delay * (1 + attempt))
        delay += random.uniform(0, self._jitter)
        self._sleep(delay)

    def _extract_price(self, ticker: yf.Ticker) -> Optional[tuple[float, datetime, int]]:
        """Return ``(price, timestamp, volume)`` from the freshest source available."""

        fetched_at = datetime.now(timezone.utc)
        try:
            fast_info = self._retry(lambda: getattr(ticker, "fast_info", {}), context="fetch fast price info")
            fast = dict(fast_info) if isinstance(fast_info, dict) else {}
            for key in _FAST_INFO_KEYS:
                if _is_valid_price(fast.get(key)):
                    return float(fast[key]), fetched_at, int(fast.get("last_volume") or 0)
        except AdapterError:
            logger.debug("fast_info unavailable, falling back to intraday history")

        try:
            history = self._retry(lambda: ticker.history(period="1d", interval="1m"), context="fetch intraday history")
            if isinstance(history, pd.DataFrame) and not history.empty:
                closes = history["Close"].dropna()
                if not closes.empty:
                    stamp = history.index[-1]
                    stamp = stamp.tz_localize("America/New_York") if stamp.tzinfo is None else stamp
                    volume = int(history["Volume"].sum()) if "Volume" in history else 0
                    return float(closes.iloc[-1]), stamp.tz_convert(timezone.utc).to_pydatetime(), volume
        except AdapterError:
            logger.debug("Intraday history unavailable, falling back to info")

        try:
            info = self._retry(lambda: ticker.info, context="fetch price metadata")
        except AdapterError:
            return None
        if isinstance(info, dict):
            for key in _INFO_KEYS:
                if _is_valid_price(info.get(key)):
                    return float(info[key]), fetched_at, int(info.get("regularMarketVolume") or 0)
        return None


def _is_valid_price(value: Any) -> bool:
    if value in (None, 0, ""):
        return False
    try:
        price = float(value)
    except (TypeError, ValueError):
        return False
    return math.isfinite(price) and price > 0


def _positive_or_none(value: Any) -> Optional[float]:
    return float(value) if _is_valid_price(value) else None


__all__ = ["YFinanceOptionsDataProvider"]
