"""Metric sources consumed by the evaluator.

Metric collection itself lives outside the alerting core. A source only
needs ``get_value(metric_name, server_id=None) -> float | None``, where
``None`` means the metric is currently unavailable.

Built-in sources:
- StaticMetricSource: in-memory values, used by tests and the CLI
- JsonFileMetricSource: values read from a JSON/YAML snapshot file

MetricFetcher wraps a source with a per-lookup timeout on a bounded pool.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from pathlib import Path
from typing import Protocol, runtime_checkable

import yaml

from panel_alerts.errors import DependencyUnavailable


@runtime_checkable
class MetricSource(Protocol):
    """Protocol for metric value providers."""

    def get_value(self, metric_name: str, server_id: str | None = None) -> float | None:
        """Return the current value of *metric_name*, or None if unavailable."""
        ...


class StaticMetricSource:
    """In-memory metric values keyed by ``(metric_name, server_id)``.

    A value registered with ``server_id=None`` is the global/aggregate
    value and is not used as a fallback for server-scoped lookups.
    """

    def __init__(self, values: dict[str, float] | None = None) -> None:
        self._lock = threading.Lock()
        self._values: dict[tuple[str, str | None], float] = {}
        for name, value in (values or {}).items():
            self._values[(name, None)] = float(value)

    def set(self, metric_name: str, value: float | None, server_id: str | None = None) -> None:
        with self._lock:
            if value is None:
                self._values.pop((metric_name, server_id), None)
            else:
                self._values[(metric_name, server_id)] = float(value)

    def get_value(self, metric_name: str, server_id: str | None = None) -> float | None:
        with self._lock:
            return self._values.get((metric_name, server_id))


class JsonFileMetricSource:
    """Metric snapshot file, re-read on every lookup.

    Format (YAML or JSON)::

        global:
          cpu_usage: 42.0
        servers:
          srv-01:
            disk_usage: 91.5
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def get_value(self, metric_name: str, server_id: str | None = None) -> float | None:
        if not self._path.is_file():
            return None
        data = yaml.safe_load(self._path.read_text(encoding="utf-8")) or {}
        if not isinstance(data, dict):
            return None
        if server_id is None:
            scope = data.get("global") or {}
        else:
            scope = (data.get("servers") or {}).get(server_id) or {}
        value = scope.get(metric_name)
        return float(value) if value is not None else None


FETCH_WORKERS = 4


class MetricFetcher:
    """Metric lookups bounded by a timeout on one long-lived worker pool.

    A lookup that overruns *timeout* is reported unavailable and its
    worker is left to finish; the pool never grows past *max_workers*,
    so a hung source cannot pile up threads across passes. When every
    worker is stuck, queued lookups time out and are cancelled.
    """

    def __init__(
        self,
        source: MetricSource,
        timeout: float = 5.0,
        max_workers: int = FETCH_WORKERS,
    ) -> None:
        self._source = source
        self._timeout = timeout
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="metric-fetch",
        )

    def fetch(self, metric_name: str, server_id: str | None = None) -> float:
        """Return the current value or raise DependencyUnavailable.

        Covers a missing value, a source error, a non-numeric value and a
        call that does not return in time.
        """
        future = self._executor.submit(self._source.get_value, metric_name, server_id)
        try:
            value = future.result(timeout=self._timeout)
            if value is None:
                scope = f" on server {server_id}" if server_id else ""
                raise DependencyUnavailable(f"Metric '{metric_name}' unavailable{scope}")
            return float(value)
        except DependencyUnavailable:
            raise
        except FutureTimeoutError as exc:
            future.cancel()
            msg = f"Metric '{metric_name}' timed out after {self._timeout:.1f}s"
            raise DependencyUnavailable(msg) from exc
        except Exception as exc:
            msg = f"Metric '{metric_name}' fetch failed: {exc}"
            raise DependencyUnavailable(msg) from exc

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
