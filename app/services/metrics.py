"""
Metrics sink - counters handed to services as a dependency.
"""

import time
import threading
from collections import deque
from typing import Deque, Dict, Any, Protocol


class MetricsSink(Protocol):
    """Anything that can count named events."""

    def increment(self, name: str, amount: int = 1) -> None:
        ...


class InMemoryMetrics:
    """
    Process-local metrics store backing the monitoring endpoints.
    Safe to call from concurrent request handlers.
    """

    RESPONSE_TIME_WINDOW = 100

    def __init__(self):
        self._lock = threading.Lock()
        self.reset()

    def reset(self) -> None:
        with self._lock:
            self.started_at = time.time()
            self.counters: Dict[str, int] = {}
            self.requests_total = 0
            self.requests_by_endpoint: Dict[str, int] = {}
            self.requests_by_status: Dict[str, int] = {}
            self.errors_total = 0
            self.errors_by_type: Dict[str, int] = {}
            self.response_times: Deque[float] = deque(maxlen=self.RESPONSE_TIME_WINDOW)

    def increment(self, name: str, amount: int = 1) -> None:
        with self._lock:
            self.counters[name] = self.counters.get(name, 0) + amount

    def get(self, name: str) -> int:
        return self.counters.get(name, 0)

    def record_request(self, path: str, status_code: int, duration_ms: float) -> None:
        with self._lock:
            self.requests_total += 1
            self.requests_by_endpoint[path] = self.requests_by_endpoint.get(path, 0) + 1
            key = str(status_code)
            self.requests_by_status[key] = self.requests_by_status.get(key, 0) + 1
            self.response_times.append(duration_ms)

    def record_error(self, error_type: str) -> None:
        with self._lock:
            self.errors_total += 1
            self.errors_by_type[error_type] = self.errors_by_type.get(error_type, 0) + 1

    def snapshot(self) -> Dict[str, Any]:
        """Current values, shaped for the monitoring endpoint."""
        with self._lock:
            times = list(self.response_times)
            uptime = time.time() - self.started_at
            return {
                "uptime": {
                    "seconds": round(uptime, 1),
                    "formatted": format_uptime(uptime),
                },
                "counters": dict(self.counters),
                "requests": {
                    "total": self.requests_total,
                    "by_endpoint": dict(self.requests_by_endpoint),
                    "by_status_code": dict(self.requests_by_status),
                },
                "errors": {
                    "total": self.errors_total,
                    "by_type": dict(self.errors_by_type),
                },
                "performance": {
                    "avg_response_ms": round(sum(times) / len(times)) if times else 0,
                    "min_response_ms": round(min(times)) if times else 0,
                    "max_response_ms": round(max(times)) if times else 0,
                },
            }


def format_uptime(seconds: float) -> str:
    """Human readable uptime, e.g. '2d 3h 4m'."""
    seconds = int(seconds)
    minutes, secs = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    days, hours = divmod(hours, 24)

    if days:
        return f"{days}d {hours}h {minutes}m"
    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


_metrics = InMemoryMetrics()


def get_metrics() -> InMemoryMetrics:
    """Dependency returning the process metrics store."""
    return _metrics
