"""
Compliance Framework Models

Catalog records loaded from data/frameworks.yaml. Immutable after load.
"""

from typing import List

from pydantic import Field

from .base import FrozenApiModel
from .enums import Severity


class ControlDefinition(FrozenApiModel):
    """One control inside a framework."""

    control_id: str
    title: str
    category: str
    severity: Severity
    check_type: str
    remediation: str = ""


class ComplianceFramework(FrozenApiModel):
    """A named regulatory or security framework and its ordered controls."""

    id: str
    name: str
    description: str = ""
    control_count: int = Field(ge=0)
    categories: List[str] = Field(default_factory=list)
    severity: Severity
    controls: List[ControlDefinition] = Field(default_factory=list, exclude=True)


class FrameworkSummary(FrozenApiModel):
    """Framework listing entry for the API."""

    id: str
    name: str
    description: str
    controls: int
    categories: List[str]
    severity: Severity

    @classmethod
    def from_framework(cls, framework: ComplianceFramework) -> "FrameworkSummary":
        return cls(
            id=framework.id,
            name=framework.name,
            description=framework.description,
            controls=len(framework.controls),
            categories=list(framework.categories),
            severity=framework.severity,
        )
