"""Structured logging utilities for automation attempts."""

from __future__ import annotations

import json
import logging
import sys
import threading
import time
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

from .retry import RetryEvent

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"
MAX_LOG_BYTES = 5 * 1024 * 1024
LOG_BACKUPS = 5


@dataclass(slots=True)
class LogPaths:
    base: Path
    events: Path


class AttemptEventLog:
    """Writes JSONL events for each step of one automation attempt."""

    def __init__(self, attempt_id: str, paths: LogPaths) -> None:
        self.attempt_id = attempt_id
        self.paths = paths
        self._seq = 0
        self._lock = threading.Lock()
        self._events_file = paths.events.open("a", encoding="utf-8")

    def log_event(self, kind: str, **data: Any) -> int:
        with self._lock:
            self._seq += 1
            payload: Dict[str, Any] = {
                "ts": time.time(),
                "attempt_id": self.attempt_id,
                "seq": self._seq,
                "kind": kind,
            }
            payload.update(data)
            if not self._events_file.closed:
                self._events_file.write(json.dumps(payload, ensure_ascii=False, default=str) + "\n")
                self._events_file.flush()
            return self._seq

    def stage(self, name: str) -> int:
        return self.log_event("stage", stage=name)

    def retry(self, event: RetryEvent) -> int:
        return self.log_event("retry", **event.as_dict())

    def capture(self, label: str, path: Optional[Path]) -> int:
        return self.log_event("capture", label=label, path=str(path) if path else None)

    def close(self) -> None:
        with self._lock:
            if not self._events_file.closed:
                self._events_file.close()


def prepare_log_paths(attempt_id: str, log_root: Path) -> LogPaths:
    base = log_root / attempt_id
    base.mkdir(parents=True, exist_ok=True)
    return LogPaths(base=base, events=base / "events.jsonl")


def configure_logging(log_dir: Optional[Path] = None, level: int = logging.INFO) -> logging.Logger:
    """Console logging plus rotating application/error logs under ``log_dir``."""

    root = logging.getLogger()
    root.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)

    if not any(getattr(h, "_automation_handler", False) for h in root.handlers):
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(formatter)
        console._automation_handler = True  # type: ignore[attr-defined]
        root.addHandler(console)

        if log_dir is not None:
            log_dir.mkdir(parents=True, exist_ok=True)
            app_handler = RotatingFileHandler(
                log_dir / "application.log", maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8"
            )
            app_handler.setFormatter(formatter)
            app_handler._automation_handler = True  # type: ignore[attr-defined]
            error_handler = RotatingFileHandler(
                log_dir / "error.log", maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8"
            )
            error_handler.setLevel(logging.ERROR)
            error_handler.setFormatter(formatter)
            error_handler._automation_handler = True  # type: ignore[attr-defined]
            root.addHandler(app_handler)
            root.addHandler(error_handler)
    return root
