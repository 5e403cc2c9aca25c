from __future__ import annotations
from pathlib import Path


def _base_dir() -> Path:
    return Path(__file__).resolve().parent


def templates_dir() -> str:
    return str(_base_dir() / "templates")
