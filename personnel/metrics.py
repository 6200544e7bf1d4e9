"""Request counters rendered in the Prometheus text exposition format."""

from __future__ import annotations

import threading
from collections import Counter
from typing import Tuple

# Label value for requests that matched no route, so scanners cannot grow
# the series set without bound
UNMATCHED_PATH = "<unmatched>"


def _escape_label(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


class RequestMetrics:
    """Thread-safe ``http_requests_total{path,method,status}`` counter."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._requests: Counter[Tuple[str, str, str]] = Counter()

    def record_request(self, path: str, method: str, status: int) -> None:
        with self._lock:
            self._requests[(path, method, str(status))] += 1

    def request_count(self, path: str, method: str, status: int) -> int:
        with self._lock:
            return self._requests[(path, method, str(status))]

    def render(self, version: str) -> str:
        lines = [
            "# HELP personnel_info Application version info",
            "# TYPE personnel_info gauge",
            f'personnel_info{{version="{_escape_label(version)}"}} 1',
            "# HELP http_requests_total Total number of HTTP requests",
            "# TYPE http_requests_total counter",
        ]
        with self._lock:
            samples = sorted(self._requests.items())
        for (path, method, status), count in samples:
            lines.append(
                "http_requests_total{"
                f'path="{_escape_label(path)}",'
                f'method="{_escape_label(method)}",'
                f'status="{status}"'
                f"}} {count}"
            )
        return "\n".join(lines) + "\n"


__all__ = ["RequestMetrics", "UNMATCHED_PATH"]
