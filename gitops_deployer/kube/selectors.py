"""Equality-based label selectors."""
from __future__ import annotations

from typing import Mapping, Optional


def make_label_selector(labels: Optional[Mapping[str, str]]) -> str:
    """Render ``{"app": "web", "tier": "fe"}`` as ``app=web,tier=fe`` (sorted by key)."""
    if not labels:
        return ""
    return ",".join(f"{key}={value}" for key, value in sorted(labels.items()))


def labels_match(selector: Optional[Mapping[str, str]], labels: Optional[Mapping[str, str]]) -> bool:
    """Return True when every selector pair is present in ``labels``. An empty selector matches all."""
    if not selector:
        return True
    labels = labels or {}
    return all(labels.get(key) == value for key, value in selector.items())
