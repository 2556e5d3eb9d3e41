"""Common middleware for Box Office."""

from .observability import StructlogContextMiddleware

__all__ = ["StructlogContextMiddleware"]
