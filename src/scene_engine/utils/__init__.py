"""Shared utilities."""

from scene_engine.utils.async_utils import run_async
from scene_engine.utils.time import as_utc, utcnow

__all__ = ["as_utc", "run_async", "utcnow"]
