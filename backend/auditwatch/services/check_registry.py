"""
Check Registry Service
Resolves compliance framework ids into the ordered set of checks a scan runs

The catalog is loaded once from data/frameworks.yaml and is immutable
afterwards. Resolution is a pure function of its inputs: the same framework
ids, depth and flags always produce the same tuple of CheckSpec in the same
order (framework catalog order, then control order).
"""

import logging
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import yaml
from pydantic import ValidationError

from ..constants import severity_rank
from ..models.enums import ScanDepth
from ..models.framework_models import ComplianceFramework, ControlDefinition
from .engine.exceptions import UnknownFrameworkError
from .engine.models import CheckClass, CheckSpec, get_depth_profile

logger = logging.getLogger(__name__)

VULNERABILITY_FRAMEWORK_ID = "vulnerability"
PENETRATION_FRAMEWORK_ID = "penetration"


def _slug(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", text.lower()).strip("_")


def derive_controls(framework_id: str, name: str, control_count: int, categories: List[str], severity: str):
    """
    Derive placeholder controls for a framework that lists only a count.

    Controls are spread over the categories in contiguous blocks; earlier
    categories receive the remainder. Each derived control probes the
    category's slug as its check type.

    Returns:
        List of control dicts in catalog order
    """
    if not categories:
        categories = ["General"]

    base, remainder = divmod(control_count, len(categories))
    prefix = framework_id.upper()
    controls = []
    number = 1
    for index, category in enumerate(categories):
        block = base + (1 if index < remainder else 0)
        for _ in range(block):
            controls.append(
                {
                    "control_id": f"{prefix}-{number}",
                    "title": f"{category} control {number}",
                    "category": category,
                    "severity": severity,
                    "check_type": _slug(category),
                    "remediation": f"Review the {name} {category} requirements and close the identified gaps.",
                }
            )
            number += 1
    return controls


class CheckRegistry:
    """
    Maps framework ids to ordered control checks.

    Example:
        >>> registry = CheckRegistry.from_yaml(settings.catalog_path)
        >>> checks = registry.resolve(["hipaa"])
        >>> len(checks)
        18
    """

    def __init__(
        self,
        frameworks: Sequence[ComplianceFramework],
        vulnerability_checks: Sequence[ControlDefinition] = (),
        penetration_checks: Sequence[ControlDefinition] = (),
    ):
        self._frameworks: Dict[str, ComplianceFramework] = {}
        for framework in frameworks:
            if framework.id in self._frameworks:
                raise ValueError(f"Duplicate framework id in catalog: {framework.id}")
            self._frameworks[framework.id] = framework
        self._vulnerability_checks = tuple(vulnerability_checks)
        self._penetration_checks = tuple(penetration_checks)

    @classmethod
    def from_yaml(cls, path: Path) -> "CheckRegistry":
        """
        Load the catalog from a YAML file.

        Args:
            path: Catalog file path

        Returns:
            CheckRegistry

        Raises:
            FileNotFoundError: If the catalog does not exist
            ValueError: If the catalog is malformed
        """
        logger.info(f"Loading framework catalog from {path}")
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        registry = cls.from_dict(data)
        logger.info(f"Loaded {len(registry._frameworks)} frameworks")
        return registry

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CheckRegistry":
        try:
            frameworks = [cls._build_framework(entry) for entry in data.get("frameworks") or []]
            vulnerability_checks = [ControlDefinition(**c) for c in data.get("vulnerability_checks") or []]
            penetration_checks = [ControlDefinition(**c) for c in data.get("penetration_checks") or []]
        except (ValidationError, TypeError) as e:
            raise ValueError(f"Malformed framework catalog: {e}") from e
        return cls(frameworks, vulnerability_checks, penetration_checks)

    @staticmethod
    def _build_framework(entry: Dict[str, Any]) -> ComplianceFramework:
        entry = dict(entry)
        controls = entry.pop("controls", None)
        if not controls:
            controls = derive_controls(
                entry["id"],
                entry.get("name", entry["id"]),
                entry.get("control_count", 0),
                entry.get("categories") or [],
                entry["severity"],
            )
        framework = ComplianceFramework(**entry, controls=controls)
        if len(framework.controls) != framework.control_count:
            logger.warning(
                f"Framework {framework.id} declares {framework.control_count} controls "
                f"but lists {len(framework.controls)}"
            )
        return framework

    def list_frameworks(self) -> List[ComplianceFramework]:
        """All frameworks in catalog order."""
        return list(self._frameworks.values())

    def get_framework(self, framework_id: str) -> ComplianceFramework:
        framework = self._frameworks.get(framework_id)
        if framework is None:
            raise UnknownFrameworkError(framework_id)
        return framework

    def has_framework(self, framework_id: str) -> bool:
        return framework_id in self._frameworks

    def resolve(
        self,
        framework_ids: Iterable[str],
        depth: ScanDepth = ScanDepth.STANDARD,
        include_vulnerability_checks: bool = False,
        include_penetration_checks: bool = False,
    ) -> Tuple[CheckSpec, ...]:
        """
        Resolve framework ids into an ordered tuple of checks.

        Args:
            framework_ids: Requested frameworks; duplicates collapse
            depth: Scan depth; shallow depths drop low-severity controls
            include_vulnerability_checks: Append vulnerability-class checks
            include_penetration_checks: Append penetration-class checks

        Returns:
            Tuple of CheckSpec ordered by catalog position

        Raises:
            UnknownFrameworkError: If any id is not in the catalog
        """
        requested = set()
        for framework_id in framework_ids:
            if framework_id not in self._frameworks:
                raise UnknownFrameworkError(framework_id)
            requested.add(framework_id)

        min_rank = severity_rank(get_depth_profile(depth).min_severity)
        selected: List[Tuple[str, ControlDefinition, CheckClass]] = []

        for framework in self._frameworks.values():
            if framework.id not in requested:
                continue
            for control in framework.controls:
                if severity_rank(control.severity.value) >= min_rank:
                    selected.append((framework.id, control, CheckClass.CONTROL))

        if include_vulnerability_checks:
            selected.extend(
                (VULNERABILITY_FRAMEWORK_ID, c, CheckClass.VULNERABILITY) for c in self._vulnerability_checks
            )
        if include_penetration_checks:
            selected.extend(
                (PENETRATION_FRAMEWORK_ID, c, CheckClass.PENETRATION) for c in self._penetration_checks
            )

        return tuple(
            CheckSpec(
                check_id=f"{framework_id}:{control.control_id}",
                framework_id=framework_id,
                control_id=control.control_id,
                title=control.title,
                category=control.category,
                severity=control.severity.value,
                remediation=control.remediation,
                check_type=control.check_type,
                check_class=check_class,
                order=order,
            )
            for order, (framework_id, control, check_class) in enumerate(selected)
        )


def load_check_registry(path: Optional[Path] = None) -> CheckRegistry:
    """Load the registry from the configured catalog path."""
    if path is None:
        from ..config import get_settings

        path = get_settings().catalog_path
    return CheckRegistry.from_yaml(path)
