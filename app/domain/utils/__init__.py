"""
Domain utilities module.

Shared helpers for the domain layer that stay free of infrastructure
concerns.
"""

from .uuid7 import uuid7

__all__ = ["uuid7"]
