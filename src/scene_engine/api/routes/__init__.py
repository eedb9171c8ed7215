"""API route modules."""

from scene_engine.api.routes import callbacks, health, media, projects, scenes

__all__ = ["callbacks", "health", "media", "projects", "scenes"]
