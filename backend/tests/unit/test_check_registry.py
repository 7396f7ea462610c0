"""
Unit tests for the check registry.

Tests catalog loading, derived controls, deterministic resolution and
depth filtering.
"""

import pytest

from auditwatch.constants import SUPPORTED_FRAMEWORKS
from auditwatch.models.enums import ScanDepth
from auditwatch.services.check_registry import CheckRegistry, derive_controls
from auditwatch.services.engine import CheckClass, UnknownFrameworkError

from ..conftest import DEMO_CATALOG


@pytest.mark.unit
class TestCatalogLoading:
    """Test the shipped YAML catalog."""

    def test_all_supported_frameworks_present(self, catalog_registry) -> None:
        ids = [f.id for f in catalog_registry.list_frameworks()]
        assert ids == SUPPORTED_FRAMEWORKS

    def test_control_counts_match_declared(self, catalog_registry) -> None:
        for framework in catalog_registry.list_frameworks():
            assert len(framework.controls) == framework.control_count, framework.id

    def test_hipaa_has_18_explicit_controls(self, catalog_registry) -> None:
        hipaa = catalog_registry.get_framework("hipaa")
        assert len(hipaa.controls) == 18
        assert hipaa.controls[0].control_id == "164.308(a)(1)"

    def test_control_ids_unique_within_framework(self, catalog_registry) -> None:
        for framework in catalog_registry.list_frameworks():
            ids = [c.control_id for c in framework.controls]
            assert len(ids) == len(set(ids)), framework.id

    def test_get_unknown_framework_raises(self, catalog_registry) -> None:
        with pytest.raises(UnknownFrameworkError) as exc_info:
            catalog_registry.get_framework("fedramp")
        assert exc_info.value.framework_id == "fedramp"

    def test_duplicate_framework_ids_rejected(self) -> None:
        data = {"frameworks": [DEMO_CATALOG["frameworks"][0], DEMO_CATALOG["frameworks"][0]]}
        with pytest.raises(ValueError, match="Duplicate"):
            CheckRegistry.from_dict(data)

    def test_malformed_control_rejected(self) -> None:
        data = {
            "frameworks": [
                {
                    "id": "broken",
                    "name": "Broken",
                    "control_count": 1,
                    "severity": "high",
                    "controls": [{"control_id": "X-1", "title": "x", "category": "c", "severity": "extreme",
                                  "check_type": "x"}],
                }
            ]
        }
        with pytest.raises(ValueError, match="Malformed"):
            CheckRegistry.from_dict(data)


@pytest.mark.unit
class TestDeriveControls:
    """Test control derivation for count-only frameworks."""

    def test_remainder_goes_to_earlier_categories(self) -> None:
        controls = derive_controls("iso27001", "ISO 27001", 114, ["A", "B", "C", "D"], "high")
        per_category = [sum(1 for c in controls if c["category"] == cat) for cat in "ABCD"]
        assert per_category == [29, 29, 28, 28]

    def test_ids_are_sequential(self) -> None:
        controls = derive_controls("soc2", "SOC 2", 5, ["Security", "Privacy"], "high")
        assert [c["control_id"] for c in controls] == ["SOC2-1", "SOC2-2", "SOC2-3", "SOC2-4", "SOC2-5"]

    def test_check_type_is_category_slug(self) -> None:
        controls = derive_controls("soc2", "SOC 2", 1, ["Processing Integrity"], "high")
        assert controls[0]["check_type"] == "processing_integrity"

    def test_no_categories_uses_general(self) -> None:
        controls = derive_controls("x", "X", 2, [], "low")
        assert {c["category"] for c in controls} == {"General"}


@pytest.mark.unit
class TestResolve:
    """Test CheckRegistry.resolve."""

    def test_resolves_in_catalog_order_regardless_of_request_order(self, demo_registry) -> None:
        forward = demo_registry.resolve(["alpha", "beta"])
        backward = demo_registry.resolve(["beta", "alpha"])
        assert forward == backward
        assert [c.check_id for c in forward] == ["alpha:A-1", "alpha:A-2", "alpha:A-3", "beta:B-1", "beta:B-2"]

    def test_order_is_sequential(self, demo_registry) -> None:
        checks = demo_registry.resolve(["alpha", "beta"])
        assert [c.order for c in checks] == list(range(5))

    def test_duplicates_collapse(self, demo_registry) -> None:
        assert len(demo_registry.resolve(["alpha", "alpha"])) == 3

    def test_unknown_framework_raises(self, demo_registry) -> None:
        with pytest.raises(UnknownFrameworkError):
            demo_registry.resolve(["alpha", "nope"])

    def test_basic_depth_keeps_high_and_critical_only(self, demo_registry) -> None:
        checks = demo_registry.resolve(["alpha", "beta"], depth=ScanDepth.BASIC)
        assert [c.control_id for c in checks] == ["A-1", "B-1", "B-2"]

    def test_deeper_depths_keep_everything(self, demo_registry) -> None:
        for depth in (ScanDepth.STANDARD, ScanDepth.COMPREHENSIVE, ScanDepth.DEEP):
            assert len(demo_registry.resolve(["alpha"], depth=depth)) == 3

    def test_vulnerability_and_penetration_checks_appended(self, demo_registry) -> None:
        checks = demo_registry.resolve(
            ["beta"],
            include_vulnerability_checks=True,
            include_penetration_checks=True,
        )
        assert [c.check_id for c in checks] == [
            "beta:B-1",
            "beta:B-2",
            "vulnerability:VULN-TLS",
            "penetration:PENTEST-AUTH",
        ]
        assert checks[2].check_class == CheckClass.VULNERABILITY
        assert checks[3].check_class == CheckClass.PENETRATION
        assert checks[3].is_scored
        assert not checks[2].is_scored

    def test_hipaa_resolves_18_checks(self, catalog_registry) -> None:
        checks = catalog_registry.resolve(["hipaa"])
        assert len(checks) == 18
        assert all(c.framework_id == "hipaa" for c in checks)

    def test_cobit_has_no_checks_at_basic_depth(self, catalog_registry) -> None:
        assert catalog_registry.resolve(["cobit"], depth=ScanDepth.BASIC) == ()

    def test_resolution_is_repeatable(self, catalog_registry) -> None:
        first = catalog_registry.resolve(["nist", "hipaa", "pci"], include_vulnerability_checks=True)
        second = catalog_registry.resolve(["pci", "hipaa", "nist"], include_vulnerability_checks=True)
        assert first == second
