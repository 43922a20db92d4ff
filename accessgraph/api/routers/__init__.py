"""API routers for AccessGraph."""

from . import decisions
from . import health
from . import relationships

__all__ = [
    "decisions",
    "health",
    "relationships",
]
