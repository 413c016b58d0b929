from __future__ import annotations

import threading
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Deque, Dict

from .srs import MAX_RATING, MIN_RATING, PASSING_RATING


@dataclass
class PathStats:
    latencies_ms: Deque[float]
    errors: int = 0
    timeouts: int = 0
    total: int = 0


@dataclass
class ReviewCounters:
    by_rating: Dict[int, int] = field(default_factory=lambda: {r: 0 for r in range(MIN_RATING, MAX_RATING + 1)})
    lapses: int = 0
    sessions_started: int = 0
    sessions_completed: int = 0


class MetricsRegistry:
    """In-memory metrics registry.

    - Per-path rolling latency window for p95 calculation
    - Error and timeout counters per path
    - Review counters: ratings histogram, lapses (rating < 3), session lifecycle

    リクエスト計測と復習イベントの集計を 1 つのロックで保護する。
    """

    def __init__(self, window_size: int = 200) -> None:
        self._window_size = window_size
        self._lock = threading.Lock()
        self._per_path: Dict[str, PathStats] = defaultdict(
            lambda: PathStats(latencies_ms=deque(maxlen=self._window_size))
        )
        self._reviews = ReviewCounters()

    def record(self, path: str, latency_ms: float, *, is_error: bool = False, is_timeout: bool = False) -> None:
        with self._lock:
            stats = self._per_path[path]
            stats.latencies_ms.append(latency_ms)
            stats.total += 1
            if is_error:
                stats.errors += 1
            if is_timeout:
                stats.timeouts += 1

    def record_review(self, rating: int) -> None:
        with self._lock:
            self._reviews.by_rating[rating] = self._reviews.by_rating.get(rating, 0) + 1
            if rating < PASSING_RATING:
                self._reviews.lapses += 1

    def record_session(self, *, completed: bool = False) -> None:
        with self._lock:
            if completed:
                self._reviews.sessions_completed += 1
            else:
                self._reviews.sessions_started += 1

    def snapshot(self) -> Dict[str, object]:
        with self._lock:
            paths: Dict[str, Dict[str, float | int]] = {}
            for path, stats in self._per_path.items():
                p95 = calculate_p95(list(stats.latencies_ms)) if stats.latencies_ms else 0.0
                paths[path] = {
                    "p95_ms": round(p95, 2),
                    "count": stats.total,
                    "errors": stats.errors,
                    "timeouts": stats.timeouts,
                }
            reviews = {
                "total": sum(self._reviews.by_rating.values()),
                "by_rating": {str(r): n for r, n in sorted(self._reviews.by_rating.items())},
                "lapses": self._reviews.lapses,
                "sessions_started": self._reviews.sessions_started,
                "sessions_completed": self._reviews.sessions_completed,
            }
            return {"paths": paths, "reviews": reviews}


def calculate_p95(values: list[float]) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    return ordered[int(0.95 * (len(ordered) - 1))]
