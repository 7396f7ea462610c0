"""
Compliance Framework Constants

Centralized definitions for shipped compliance frameworks and severity ranking.
The authoritative control catalog, names included, lives in
data/frameworks.yaml.
"""

from typing import Dict, List

# Shipped compliance frameworks, in catalog order
SUPPORTED_FRAMEWORKS: List[str] = [
    "hipaa",
    "iso27001",
    "soc2",
    "pci",
    "gdpr",
    "nist",
    "cis",
    "cobit",
]

# Severity ranking, lowest first
SEVERITY_LEVELS: List[str] = ["low", "medium", "high", "critical"]

SEVERITY_RANK: Dict[str, int] = {level: rank for rank, level in enumerate(SEVERITY_LEVELS)}


def severity_rank(severity: str) -> int:
    """Rank of a severity label; unknown labels rank below 'low'."""
    return SEVERITY_RANK.get(severity.lower(), -1)


def max_severity(*severities: str) -> str:
    """Return the most severe label among the given ones."""
    return max(severities, key=severity_rank)
