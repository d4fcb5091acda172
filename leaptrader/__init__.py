"""Core Python package for LEAPS strike selection, data routing and backtesting."""

from __future__ import annotations

from typing import Any


def get_options_data_router(*args: Any, **kwargs: Any):  # pragma: no cover - thin wrapper
    """Lazily import and build the configured options data router."""

    from .config import build_router as _impl

    return _impl(*args, **kwargs)


__all__ = ["get_options_data_router"]
