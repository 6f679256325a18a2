"""Identity lookup consumed by the card workflow."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional, Protocol

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Identity:
    subject_id: str
    email: str
    credential_secret: str = field(repr=False)


class IdentityResolver(Protocol):
    def resolve(self, subject_id: str) -> Optional[Identity]: ...


class StaticIdentityDirectory:
    """Mapping-backed resolver, optionally loaded from a JSON file.

    The file maps subject ids to ``{"email": ..., "password": ...}`` objects.
    """

    def __init__(self, identities: Mapping[str, Identity] | None = None) -> None:
        self._identities: Dict[str, Identity] = dict(identities or {})

    @classmethod
    def from_json_file(cls, path: Path) -> "StaticIdentityDirectory":
        with path.open("r", encoding="utf-8") as fh:
            raw = json.load(fh)
        if not isinstance(raw, dict):
            raise ValueError(f"{path} must contain a JSON object keyed by subject id")
        identities: Dict[str, Identity] = {}
        for subject_id, entry in raw.items():
            try:
                identities[subject_id] = Identity(
                    subject_id=subject_id,
                    email=entry["email"],
                    credential_secret=entry.get("password") or entry["credential_secret"],
                )
            except (KeyError, TypeError) as exc:
                raise ValueError(f"Identity {subject_id!r} in {path} is missing email/password") from exc
        log.info("Loaded %d identities from %s", len(identities), path)
        return cls(identities)

    def add(self, identity: Identity) -> None:
        self._identities[identity.subject_id] = identity

    def resolve(self, subject_id: str) -> Optional[Identity]:
        return self._identities.get(subject_id)

    def __len__(self) -> int:
        return len(self._identities)
