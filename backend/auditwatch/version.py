"""
AuditWatch Version Module

Single source of truth for application version.

Usage:
    from auditwatch.version import __version__, get_version_info

    print(__version__)  # "1.0.0"
    print(get_version_info())  # {"version": "1.0.0", "api_version": "1", ...}
"""

from functools import lru_cache
from typing import Dict

__version__ = "1.0.0"

# API version (independent of application version)
API_VERSION = "1"

# Codename for the current major version series
CODENAME = "Ledger"


@lru_cache()
def get_version_info() -> Dict[str, str]:
    """
    Get version metadata for health and about endpoints.

    Returns:
        Dictionary with version, codename and API version
    """
    return {
        "version": __version__,
        "codename": CODENAME,
        "api_version": API_VERSION,
    }
