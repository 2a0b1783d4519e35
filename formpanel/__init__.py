"""Registration form and admin panel."""

from __future__ import annotations

from typing import Any

from .config import Settings, load_settings
from .database import RecordStore, StoreError


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the web application."""

    from .service import create_app as _create_app

    return _create_app(*args, **kwargs)


__all__ = [
    "RecordStore",
    "Settings",
    "StoreError",
    "create_app",
    "load_settings",
]
