"""
AuditWatch

Compliance audit orchestration: dispatches framework checks to a local
scanner or a fleet of remote agents and folds the outcomes into one scored
report.
"""

from .version import __version__

__all__ = ["__version__"]
