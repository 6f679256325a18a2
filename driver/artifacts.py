"""Artifact sink for diagnostic screenshots."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

log = logging.getLogger(__name__)


class ArtifactSink(Protocol):
    def store(self, data: bytes, name: str) -> Path: ...


class DirectoryArtifactSink:
    """Writes each capture as ``<base>/<name>.png``."""

    suffix = ".png"

    def __init__(self, base_path: Path | str) -> None:
        self._base = Path(base_path)
        self._base.mkdir(parents=True, exist_ok=True)

    @property
    def base(self) -> Path:
        return self._base

    def store(self, data: bytes, name: str) -> Path:
        if not name or "/" in name or "\\" in name or name.startswith("."):
            raise ValueError(f"Invalid artifact name: {name!r}")
        path = self._base / f"{name}{self.suffix}"
        path.write_bytes(data)
        log.info("Stored diagnostic capture %s (%d bytes)", path, len(data))
        return path
