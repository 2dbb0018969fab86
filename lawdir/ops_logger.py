from __future__ import annotations

import json
import platform
import sys
import threading
from pathlib import Path
from typing import Any, Dict, Optional

import psutil

from .schemas import RunStats


OPS_MARKER = "lde_ops"


def resource_usage() -> Dict[str, Optional[float]]:
    """CPU percent and RSS (MB) of this process; None values when psutil cannot read them."""
    try:
        proc = psutil.Process()
        with proc.oneshot():
            return {
                "cpu_pct": round(proc.cpu_percent(interval=None), 1),
                "rss_mb": round(proc.memory_info().rss / (1024 * 1024), 1),
            }
    except psutil.Error:
        return {"cpu_pct": None, "rss_mb": None}


def python_version() -> str:
    return f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"


class OpsLogger:
    """JSON-lines log of crawl operations.

    Every line carries ``"lde_ops": 1``. The crawl writes one line per
    processed request and the runner closes with a ``summary`` line. Writes
    are serialized with a lock and failures are swallowed, so a broken log
    never stops a crawl.
    """

    def __init__(self, file_path: Path, also_stdout: bool = False) -> None:
        self.file_path = Path(file_path)
        self.also_stdout = bool(also_stdout)
        self._lock = threading.Lock()
        self.lines_written = 0
        try:
            self.file_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError:
            pass

    @staticmethod
    def encode(record: Dict[str, Any]) -> str:
        payload = {OPS_MARKER: 1, **record}
        try:
            return json.dumps(payload, ensure_ascii=False, default=str)
        except (TypeError, ValueError):
            return json.dumps({OPS_MARKER: 1, "_serialization_error": True, "record_str": str(record)})

    def _append(self, line: str) -> None:
        with self._lock:
            with self.file_path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
            self.lines_written += 1

    def emit(self, record: Dict[str, Any]) -> None:
        line = self.encode(record)
        try:
            self._append(line)
        except OSError:
            pass
        if self.also_stdout:
            print(line)

    def emit_summary(self, stats: RunStats, *, requests: int, wall_s: float) -> None:
        """Final run line: counters, wall time, process resources and host."""
        self.emit({
            "summary": True,
            "requests": requests,
            "stats": stats.to_output(),
            "durations": {"wall_s": round(max(0.0, wall_s), 2)},
            "resources": resource_usage(),
            "python": python_version(),
            "host": {"platform": platform.system(), "release": platform.release(), "machine": platform.machine()},
        })
