from __future__ import annotations

import threading
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Deque, Dict


@dataclass
class PathStats:
    latencies_ms: Deque[float]
    errors: int
    total: int


class MetricsRegistry:
    """In-memory request metrics for the local API.

    - Per-path rolling latency window (p50 / p95)
    - Error counter (5xx responses and unhandled exceptions)
    """

    def __init__(self, window_size: int = 200) -> None:
        self._window_size = window_size
        self._lock = threading.Lock()
        self._per_path: Dict[str, PathStats] = defaultdict(
            lambda: PathStats(latencies_ms=deque(maxlen=self._window_size), errors=0, total=0)
        )

    def record(self, path: str, latency_ms: float, *, is_error: bool = False) -> None:
        with self._lock:
            stats = self._per_path[path]
            stats.latencies_ms.append(latency_ms)
            stats.total += 1
            if is_error:
                stats.errors += 1

    def snapshot(self) -> Dict[str, Dict[str, float | int]]:
        with self._lock:
            result: Dict[str, Dict[str, float | int]] = {}
            for path, stats in self._per_path.items():
                values = list(stats.latencies_ms)
                result[path] = {
                    "p50_ms": round(percentile(values, 0.50), 2),
                    "p95_ms": round(percentile(values, 0.95), 2),
                    "count": stats.total,
                    "errors": stats.errors,
                }
            return result

    def reset(self) -> None:
        with self._lock:
            self._per_path.clear()


def percentile(values: list[float], fraction: float) -> float:
    if not values:
        return 0.0
    sorted_vals = sorted(values)
    k = int(fraction * (len(sorted_vals) - 1))
    return sorted_vals[k]


registry = MetricsRegistry()
