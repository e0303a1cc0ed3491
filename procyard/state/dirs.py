"""Per-project state directory layout."""

from __future__ import annotations

import hashlib
from pathlib import Path

from procyard.config import settings


def canonical_root(root: Path | str) -> Path:
    return Path(root).expanduser().resolve()


def project_id(root: Path | str) -> str:
    """Stable 12-hex-char identifier of the canonicalized project root."""
    canonical = str(canonical_root(root))
    return hashlib.blake2b(canonical.encode("utf-8")).hexdigest()[:12]


def state_home() -> Path:
    return settings.resolved_state_home() / "procyard"


def state_dir_for(root: Path | str) -> Path:
    return state_home() / project_id(root)
