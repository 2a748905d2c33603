"""
Router initialization module.

Exports all API routers for the Guardian backend.
"""
from guardian.server.routers import guardian, system

__all__ = [
    "guardian",
    "system",
]
