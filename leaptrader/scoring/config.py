from __future__ import annotations

from typing import Dict

DEFAULT_SCORER_CONFIG: Dict[str, object] = {
    "enabled": [
        "delta_alignment",
        "dte_alignment",
        "liquidity",
        "iv_rank",
        "extrinsic",
    ],
    "weights": {
        "delta_alignment": 0.30,
        "dte_alignment": 0.20,
        "liquidity": 0.20,
        "iv_rank": 0.15,
        "extrinsic": 0.15,
    },
    "score_bounds": {
        "min": 0.0,
        "max": 1.0,
    },
}


def merge_config(overrides: Dict[str, object] | None) -> Dict[str, object]:
    merged: Dict[str, object] = {
        "enabled": list(DEFAULT_SCORER_CONFIG["enabled"]),
        "weights": dict(DEFAULT_SCORER_CONFIG["weights"]),
        "score_bounds": dict(DEFAULT_SCORER_CONFIG["score_bounds"]),
    }
    if not overrides:
        return merged
    if "enabled" in overrides:
        merged["enabled"] = list(overrides["enabled"])
    if "weights" in overrides:
        merged["weights"].update({key: float(value) for key, value in dict(overrides["weights"]).items()})
    if "score_bounds" in overrides:
        merged["score_bounds"].update(overrides["score_bounds"])
    for key, value in overrides.items():
        if key not in {"weights", "enabled", "score_bounds"}:
            merged[key] = value
    return merged
