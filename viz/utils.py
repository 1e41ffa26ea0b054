"""Helpers shared by plotting scripts."""

from __future__ import annotations

from pathlib import Path


def ensure_parent(path: str | Path) -> Path:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    return p
