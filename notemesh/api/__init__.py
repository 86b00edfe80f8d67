"""HTTP surface for notemesh replicas.

Public routes for clients plus the internal routes peers use to replicate.
"""

from .app import create_app

__all__ = ["create_app"]
