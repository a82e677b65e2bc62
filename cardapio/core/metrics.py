from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from threading import Lock


@dataclass
class RequestStats:
    count: int = 0
    errors: int = 0
    elapsed_ms: float = 0.0

    def add(self, status_code: int, duration_ms: float) -> None:
        self.count += 1
        self.elapsed_ms += duration_ms
        self.errors += status_code >= 400

    def as_dict(self) -> dict[str, float | int]:
        average = self.elapsed_ms / self.count if self.count else 0.0
        return {
            "total_requests": self.count,
            "error_count": self.errors,
            "avg_duration_ms": round(average, 2),
        }


class InMemoryRequestMetrics:
    """Contadores de requisição por rota e por estabelecimento (memória do processo)."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._by_route: defaultdict[str, RequestStats] = defaultdict(RequestStats)
        self._by_establishment: defaultdict[str, RequestStats] = defaultdict(RequestStats)

    def observe(
        self,
        endpoint: str,
        method: str,
        status_code: int,
        duration_ms: float,
        establishment_id: str | None = None,
    ) -> None:
        with self._lock:
            self._by_route[f"{method} {endpoint}"].add(status_code, duration_ms)
            if establishment_id:
                self._by_establishment[establishment_id].add(status_code, duration_ms)

    def snapshot(self) -> dict[str, dict[str, float | int]]:
        with self._lock:
            return {route: stats.as_dict() for route, stats in self._by_route.items()}

    def snapshot_per_establishment(self) -> dict[str, dict[str, float | int]]:
        with self._lock:
            return {key: stats.as_dict() for key, stats in self._by_establishment.items()}

    def reset(self) -> None:
        with self._lock:
            self._by_route.clear()
            self._by_establishment.clear()


request_metrics = InMemoryRequestMetrics()
