"""CineLoop: a social movie and TV feed with AI-assisted discovery."""

from __future__ import annotations

from importlib import import_module
from typing import Any

__version__ = "1.0.0"

__all__ = ["__version__", "app", "create_app"]

_LAZY_ATTRIBUTES = {"app", "create_app"}


def __getattr__(name: str) -> Any:
    if name in _LAZY_ATTRIBUTES:
        return getattr(import_module("app.main"), name)
    raise AttributeError(f"module 'app' has no attribute {name}")
