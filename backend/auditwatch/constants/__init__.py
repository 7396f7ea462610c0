"""Shared constants."""

from .compliance_frameworks import (
    SEVERITY_LEVELS,
    SEVERITY_RANK,
    SUPPORTED_FRAMEWORKS,
    max_severity,
    severity_rank,
)

__all__ = [
    "SEVERITY_LEVELS",
    "SEVERITY_RANK",
    "SUPPORTED_FRAMEWORKS",
    "max_severity",
    "severity_rank",
]
