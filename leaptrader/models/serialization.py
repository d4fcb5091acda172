"""Serialization helpers shared between services."""

from __future__ import annotations

from typing import Any, Dict

from .leaps import LEAPSSelection
from .ml import WireModel


def serialize_wire(model: WireModel) -> Dict[str, Any]:
    """Return the camelCase JSON payload for an ML request or response."""

    return model.to_payload()


def serialize_selection(selection: LEAPSSelection) -> Dict[str, Any]:
    """Return a JSON-compatible representation of a LEAPS selection."""

    return selection.model_dump(mode="json")


def deserialize_wire(model_cls: type[WireModel], payload: Dict[str, Any]) -> WireModel:
    """Validate a camelCase payload into ``model_cls``."""

    return model_cls.model_validate(payload)


__all__ = [
    "deserialize_wire",
    "serialize_selection",
    "serialize_wire",
]
