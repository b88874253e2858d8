"""Router package exports."""

from . import clusters, health, review

__all__ = [
    "clusters",
    "health",
    "review",
]
