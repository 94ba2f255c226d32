# Live model feedback
# services/performance_tracker.py
"""
Rolling performance history per model and temporary provider blacklisting.
Both stores are shared by every concurrent request and guard their maps with a lock.
"""

import threading
from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Callable, Deque, Dict, Optional
import structlog
from models.selection import PerformanceSample, model_key
from services.model_registry import ModelCapabilityRegistry
from utils.config import settings
from utils.metrics import PROVIDER_OUTCOMES


logger = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PerformanceTracker:
    """
    Keeps the most recent samples per model key and mirrors the latest sample
    onto the registry so the next selection sees fresh numbers.
    """

    def __init__(
        self,
        registry: ModelCapabilityRegistry,
        window_size: Optional[int] = None,
        metrics_window: Optional[timedelta] = None,
        clock: Callable[[], datetime] = _utcnow
    ):
        self.registry = registry
        self.window_size = window_size or settings.performance_window_size
        self.metrics_window = metrics_window or timedelta(days=settings.performance_metrics_days)
        self._clock = clock
        self._lock = threading.Lock()
        self._history: Dict[str, Deque[PerformanceSample]] = {}
        self.logger = logger.bind(component="PerformanceTracker")

    def track_outcome(self, provider_id: str, model_id: str,
                      duration_ms: float, cost: float, accuracy: float):
        sample = PerformanceSample(
            accuracy=max(0.0, min(1.0, accuracy)),
            duration_ms=duration_ms,
            cost=cost,
            timestamp=self._clock()
        )
        key = model_key(provider_id, model_id)

        # The registry mirrors the newest sample; lock order is tracker then registry
        with self._lock:
            history = self._history.setdefault(key, deque(maxlen=self.window_size))
            history.append(sample)
            self.registry.apply_performance(provider_id, model_id, duration_ms, cost, sample.accuracy)

        self.logger.debug("Tracked model performance",
                        provider_id=provider_id,
                        model_id=model_id,
                        duration_ms=duration_ms,
                        cost=cost,
                        accuracy=sample.accuracy)

    def get_performance_metrics(self, provider_id: str, model_id: str) -> Dict[str, float]:
        """
        Aggregates over the trailing metrics window.
        An empty dict means "unknown" and must not be read as zero.
        """
        cutoff = self._clock() - self.metrics_window
        with self._lock:
            recent = [s for s in self._history.get(model_key(provider_id, model_id), ()) if s.timestamp >= cutoff]

        if not recent:
            return {}

        count = len(recent)
        return {
            "accuracy": sum(s.accuracy for s in recent) / count,
            "avg_duration_ms": sum(s.duration_ms for s in recent) / count,
            "avg_cost": sum(s.cost for s in recent) / count,
            "request_count": float(count),
        }

    def sample_count(self, provider_id: str, model_id: str) -> int:
        with self._lock:
            return len(self._history.get(model_key(provider_id, model_id), ()))

    def selection_stats(self, start: Optional[datetime] = None,
                        end: Optional[datetime] = None) -> Dict[str, int]:
        """Number of recorded outcomes per model key inside [start, end]"""
        with self._lock:
            snapshot = {key: list(samples) for key, samples in self._history.items()}

        stats = {}
        for key, samples in snapshot.items():
            if start is not None:
                samples = [s for s in samples if s.timestamp >= start]
            if end is not None:
                samples = [s for s in samples if s.timestamp <= end]
            stats[key] = len(samples)
        return stats


class ProviderAvailabilityTracker:
    """Provider -> unavailable-until; stale entries are dropped on read"""

    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self._clock = clock
        self._lock = threading.Lock()
        self._unavailable_until: Dict[str, datetime] = {}
        self.logger = logger.bind(component="ProviderAvailabilityTracker")

    def mark_unavailable(self, provider_id: str, duration: timedelta) -> datetime:
        until = self._clock() + duration
        with self._lock:
            self._unavailable_until[provider_id.lower()] = until

        PROVIDER_OUTCOMES.labels(provider=provider_id, status="blacklisted").inc()
        self.logger.warning("Marked provider unavailable",
                          provider_id=provider_id,
                          unavailable_until=until.isoformat())
        return until

    def is_available(self, provider_id: str) -> bool:
        key = provider_id.lower()
        now = self._clock()
        with self._lock:
            until = self._unavailable_until.get(key)
            if until is None:
                return True
            if now < until:
                return False
            del self._unavailable_until[key]

        self.logger.info("Provider unavailability expired", provider_id=provider_id)
        return True

    def unavailable_providers(self) -> Dict[str, datetime]:
        with self._lock:
            return dict(self._unavailable_until)
