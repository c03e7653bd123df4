"""Lightweight in-memory metrics collector."""

from __future__ import annotations

import threading
from collections import Counter
from dataclasses import dataclass
from typing import Dict


@dataclass
class MetricSnapshot:
    total_turns: int
    turn_sources: Dict[str, int]
    dialogue_modes: Dict[str, int]
    bookings: int


class MetricsCollector:
    """Thread-safe counter storage for per-turn dialogue metrics."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._total_turns = 0
        self._sources: Counter[str] = Counter()
        self._modes: Counter[str] = Counter()
        self._bookings = 0

    def record_turn(self, mode: str, source: str, done: bool = False) -> None:
        with self._lock:
            self._total_turns += 1
            self._modes[mode] += 1
            self._sources[source] += 1
            if done:
                self._bookings += 1

    def snapshot(self) -> MetricSnapshot:
        with self._lock:
            return MetricSnapshot(
                total_turns=self._total_turns,
                turn_sources=dict(self._sources),
                dialogue_modes=dict(self._modes),
                bookings=self._bookings,
            )
