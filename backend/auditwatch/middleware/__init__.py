"""HTTP middleware and exception handlers."""

from .error_handling import register_exception_handlers

__all__ = ["register_exception_handlers"]
