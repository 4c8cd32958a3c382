"""Feature cache shared between the refresh task and evaluators."""

from __future__ import annotations

import threading
from collections.abc import Iterable, Mapping
from types import MappingProxyType

from .models import Feature


class FeatureCache:
    """Feature key to Feature mapping, refreshed by swapping snapshots.

    Writers build a new dict and replace the reference under a lock, so a
    reader always sees either the old or the new snapshot, never a mix.
    """

    def __init__(self, features: Iterable[Feature] = ()) -> None:
        self._lock = threading.Lock()
        self._features: Mapping[str, Feature] = MappingProxyType(
            {f.key: f for f in features}
        )

    def get(self, key: str) -> Feature | None:
        return self._features.get(key)

    def update(self, features: Iterable[Feature]) -> int:
        """Merge features into the cache by key and return how many were applied."""
        incoming = {f.key: f for f in features}
        with self._lock:
            merged = dict(self._features)
            merged.update(incoming)
            self._features = MappingProxyType(merged)
        return len(incoming)

    def snapshot(self) -> Mapping[str, Feature]:
        return self._features

    def keys(self) -> list[str]:
        return list(self._features)

    def clear(self) -> None:
        with self._lock:
            self._features = MappingProxyType({})

    def __contains__(self, key: object) -> bool:
        return key in self._features

    def __len__(self) -> int:
        return len(self._features)
