"""
Routes API par domaine.
"""

from . import proxy
from . import models
from . import health

__all__ = [
    "proxy",
    "models",
    "health",
]
