"""API routers."""

from learnpath.routers import health, lessons, recommendations, stats

__all__ = ["health", "lessons", "recommendations", "stats"]
