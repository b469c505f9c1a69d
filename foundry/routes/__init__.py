"""Route auto-wiring: register generated handlers and middleware in ``routes.go``."""

from .updater import RouteUpdate, RouteUpdater, apply_update

__all__ = [
    "RouteUpdate",
    "RouteUpdater",
    "apply_update",
]
