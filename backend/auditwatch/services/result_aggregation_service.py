"""
Result Aggregation Service
Folds execution-unit outcomes into one scored ScanResult

The fold is deterministic and order-independent: outcomes are sorted by
(check catalog order, executor key) before anything else happens, so the
arrival order of concurrent units never influences the report.

Mapping rules:
    control / penetration outcome  -> one Finding
    vulnerability outcome          -> one Vulnerability if detected, else nothing
    script outcome                 -> opaque AgentScanResult.data, never scored
    ExecutionError (any kind)      -> synthetic "fail" Finding
    malformed payload              -> AggregationFault, logged, synthetic "fail" Finding

Vulnerability checks are never scored: an errored or malformed vulnerability
outcome is recorded as a VULNERABILITY_CHECK_FAILED error instead.

Scoring:
    score = round_half_up(100 * passed / total), capped at 99 whenever any
    finding is not "pass", so a score of 100 means every finding passed.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from ..constants import max_severity, severity_rank
from ..models.enums import AgentResultStatus, FindingStatus, ScanStatus, Severity
from ..models.scan_models import (
    AgentScanResult,
    Finding,
    Recommendation,
    ScanError,
    ScanRequest,
    ScanResult,
    ScanSummary,
    Vulnerability,
    utc_now,
)
from .alerting import AlertEvent, AlertSink, LoggingAlertSink
from .engine.exceptions import AggregationFault, ExecutionErrorKind
from .engine.models import CheckClass, CheckSpec, ExecutionMode, RemoteExecutor, UnitOutcome

logger = logging.getLogger(__name__)

FINDING_STATUSES = {status.value for status in FindingStatus}
SEVERITIES = {severity.value for severity in Severity}

# Unit failures that mark an agent's contribution as errored
AGENT_ERROR_KINDS = (ExecutionErrorKind.TRANSPORT_FAILURE, ExecutionErrorKind.CHECK_FAULT)


def round_half_up(numerator: int, denominator: int) -> int:
    """Round numerator/denominator to the nearest integer, halves away from zero."""
    return (2 * numerator + denominator) // (2 * denominator)


def compute_score(findings: Sequence[Finding]) -> int:
    """
    Compliance score for a set of findings.

    Returns:
        0 for no findings; otherwise the rounded pass percentage, never 100
        unless every finding passed
    """
    total = len(findings)
    if total == 0:
        return 0
    passed = sum(1 for f in findings if f.status == FindingStatus.PASS)
    score = round_half_up(100 * passed, total)
    if passed < total:
        score = min(score, 99)
    return score


@dataclass
class _AgentTally:
    units: int = 0
    errored: bool = False
    execution_time: float = 0.0
    passed: int = 0
    failed: int = 0
    warnings: int = 0
    script: Optional[Dict[str, Any]] = None
    script_error: Optional[str] = None


class ResultAggregator:
    """
    Produces terminal ScanResults and evaluates alert thresholds.

    Args:
        alert_sink: Destination for low-score alerts
        default_threshold: Threshold used when the request carries none
    """

    def __init__(self, alert_sink: Optional[AlertSink] = None, default_threshold: int = 70):
        self.alert_sink = alert_sink or LoggingAlertSink()
        self.default_threshold = default_threshold

    # ------------------------------------------------------------------
    # Fold
    # ------------------------------------------------------------------

    def fold(
        self,
        scan_id: str,
        request: ScanRequest,
        outcomes: Iterable[UnitOutcome],
        agents: Optional[Sequence[RemoteExecutor]] = None,
        errors: Sequence[ScanError] = (),
        status: ScanStatus = ScanStatus.COMPLETED,
        timestamp: Optional[datetime] = None,
        execution_time: float = 0.0,
        schedule_id: Optional[str] = None,
    ) -> ScanResult:
        """
        Fold unit outcomes into a frozen ScanResult.

        Args:
            scan_id: Scan identifier
            request: Originating request (frameworks, target, depth)
            outcomes: Settled outcomes in any order
            agents: Dispatched agents for distributed audits; None for local scans
            errors: Resolution and terminal errors to carry into the report
            status: Terminal status decided by the orchestrator
            timestamp: Scan acceptance time
            execution_time: Wall-clock duration of the scan
            schedule_id: Owning schedule, for scheduled runs

        Returns:
            ScanResult
        """
        ordered = sorted(outcomes, key=lambda o: o.sort_key)

        errors = list(errors)
        findings: List[Finding] = []
        synthetic: set = set()
        vulnerabilities: List[Vulnerability] = []
        tallies: Dict[str, _AgentTally] = defaultdict(_AgentTally)

        for outcome in ordered:
            tally = tallies[outcome.executor_key] if outcome.mode == ExecutionMode.AGENT else None
            if tally is not None:
                tally.units += 1
                tally.execution_time = max(tally.execution_time, outcome.execution_time)
                if outcome.error_kind in AGENT_ERROR_KINDS:
                    tally.errored = True

            check = outcome.check
            if check.check_class == CheckClass.SCRIPT:
                if tally is not None:
                    if outcome.failed:
                        tally.script_error = outcome.error_kind.value
                    else:
                        tally.script = outcome.payload
                continue

            if check.check_class == CheckClass.VULNERABILITY:
                if outcome.failed:
                    errors.append(self._vulnerability_error(outcome, outcome.error_kind.value))
                    continue
                try:
                    vulnerability = self._vulnerability(outcome)
                except AggregationFault as e:
                    logger.error(f"Scan {scan_id}: {e}")
                    errors.append(self._vulnerability_error(outcome, e.message))
                    continue
                if vulnerability is not None:
                    vulnerabilities.append(vulnerability)
                continue

            if outcome.failed:
                finding = self._execution_error_finding(outcome)
                synthetic.add(finding.id)
            else:
                try:
                    finding = self._finding(outcome)
                except AggregationFault as e:
                    logger.error(f"Scan {scan_id}: {e}")
                    finding = self._fault_finding(outcome, e)
                    synthetic.add(finding.id)

            findings.append(finding)
            if tally is not None:
                if finding.status == FindingStatus.PASS:
                    tally.passed += 1
                elif finding.status == FindingStatus.WARNING:
                    tally.warnings += 1
                else:
                    tally.failed += 1

        vulnerabilities.sort(key=lambda v: (-v.cvss, -severity_rank(v.severity.value), v.type, v.executor))
        checks_by_id = {o.check.check_id: o.check for o in ordered}

        agent_data = None
        if agents is not None:
            agent_data = [
                self._agent_result(agent, tallies.get(agent.agent_id, _AgentTally()))
                for agent in sorted(agents, key=lambda a: a.agent_id)
            ]

        return ScanResult(
            id=scan_id,
            timestamp=timestamp or utc_now(),
            frameworks=list(dict.fromkeys(request.frameworks)),
            target=request.target,
            depth=request.depth,
            status=status,
            score=compute_score(findings),
            findings=findings,
            recommendations=self._recommendations(findings, synthetic, checks_by_id),
            agent_data=agent_data,
            execution_time=round(execution_time, 3),
            vulnerabilities=vulnerabilities,
            summary=self._summary(findings, vulnerabilities),
            errors=errors,
            schedule_id=schedule_id,
            units_total=len(ordered),
        )

    # ------------------------------------------------------------------
    # Outcome mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _finding_id(outcome: UnitOutcome) -> str:
        return f"{outcome.check.check_id}@{outcome.executor_key}"

    def _finding(self, outcome: UnitOutcome) -> Finding:
        check = outcome.check
        payload = self._payload(outcome)

        result = payload.get("result")
        if not isinstance(result, str) or result not in FINDING_STATUSES:
            raise AggregationFault(
                f"Outcome for {check.check_id}@{outcome.executor_key} has invalid result {result!r}",
                {"check_id": check.check_id, "executor": outcome.executor_key},
            )

        severity = payload.get("severity") or check.severity
        if not isinstance(severity, str) or severity not in SEVERITIES:
            raise AggregationFault(
                f"Outcome for {check.check_id}@{outcome.executor_key} has invalid severity {severity!r}",
                {"check_id": check.check_id, "executor": outcome.executor_key},
            )

        return Finding(
            id=self._finding_id(outcome),
            control_id=check.control_id,
            framework=check.framework_id,
            executor=outcome.executor_key,
            status=FindingStatus(result),
            severity=Severity(severity),
            description=str(payload.get("description") or check.title),
            evidence=str(payload.get("evidence") or ""),
            remediation=check.remediation if result != FindingStatus.PASS.value else "",
        )

    def _vulnerability(self, outcome: UnitOutcome) -> Optional[Vulnerability]:
        check = outcome.check
        payload = self._payload(outcome)
        context = {"check_id": check.check_id, "executor": outcome.executor_key}

        detected = payload.get("detected")
        if not isinstance(detected, bool):
            raise AggregationFault(f"Vulnerability outcome for {check.check_id} lacks a boolean 'detected'", context)
        if not detected:
            return None

        severity = payload.get("severity") or check.severity
        if not isinstance(severity, str) or severity not in SEVERITIES:
            raise AggregationFault(f"Vulnerability outcome for {check.check_id} has invalid severity", context)
        weakness = payload.get("type") or check.title
        if not isinstance(weakness, str):
            raise AggregationFault(f"Vulnerability outcome for {check.check_id} has invalid type", context)

        try:
            cvss = float(payload.get("cvss", 0.0))
        except (TypeError, ValueError):
            raise AggregationFault(f"Vulnerability outcome for {check.check_id} has non-numeric cvss", context)
        if not 0.0 <= cvss <= 10.0:
            raise AggregationFault(f"Vulnerability outcome for {check.check_id} has cvss out of range", context)

        return Vulnerability(
            id=self._finding_id(outcome),
            type=weakness,
            severity=Severity(severity),
            description=str(payload.get("description") or check.title),
            impact=str(payload.get("impact") or ""),
            solution=str(payload.get("solution") or check.remediation),
            cvss=cvss,
            executor=outcome.executor_key,
        )

    @staticmethod
    def _payload(outcome: UnitOutcome) -> Dict[str, Any]:
        payload = outcome.payload or {}
        if not isinstance(payload, dict):
            raise AggregationFault(
                f"Outcome for {outcome.check.check_id}@{outcome.executor_key} is not an object",
                {"check_id": outcome.check.check_id, "executor": outcome.executor_key},
            )
        return payload

    @staticmethod
    def _vulnerability_error(outcome: UnitOutcome, reason: str) -> ScanError:
        agent_id = outcome.executor_key if outcome.mode == ExecutionMode.AGENT else None
        return ScanError(
            code="VULNERABILITY_CHECK_FAILED",
            message=f"Vulnerability check {outcome.check.check_id} on {outcome.executor_key} failed: {reason}",
            agent_id=agent_id,
        )

    def _execution_error_finding(self, outcome: UnitOutcome) -> Finding:
        check = outcome.check
        kind = outcome.error_kind.value
        return Finding(
            id=self._finding_id(outcome),
            control_id=check.control_id,
            framework=check.framework_id,
            executor=outcome.executor_key,
            status=FindingStatus.FAIL,
            severity=Severity(check.severity),
            description=f"{check.title}: check did not complete ({kind})",
            evidence=f"execution_error:{kind} {outcome.error_message}".strip(),
            remediation=check.remediation,
        )

    def _fault_finding(self, outcome: UnitOutcome, fault: AggregationFault) -> Finding:
        check = outcome.check
        return Finding(
            id=self._finding_id(outcome),
            control_id=check.control_id,
            framework=check.framework_id,
            executor=outcome.executor_key,
            status=FindingStatus.FAIL,
            severity=Severity(check.severity),
            description=f"{check.title}: check returned an unusable result",
            evidence=f"aggregation_fault {fault.message}",
            remediation=check.remediation,
        )

    # ------------------------------------------------------------------
    # Derived sections
    # ------------------------------------------------------------------

    @staticmethod
    def _recommendations(
        findings: Sequence[Finding],
        synthetic: set,
        checks_by_id: Dict[str, CheckSpec],
    ) -> List[Recommendation]:
        """One recommendation per distinct failing control, most severe first."""
        groups: Dict[Tuple[str, str], Dict[str, Any]] = {}
        for finding in findings:
            if finding.status != FindingStatus.FAIL or finding.id in synthetic:
                continue
            key = (finding.framework, finding.control_id)
            check = checks_by_id[f"{finding.framework}:{finding.control_id}"]
            group = groups.get(key)
            if group is None:
                groups[key] = {
                    "severity": finding.severity.value,
                    "executors": {finding.executor},
                    "order": check.order,
                    "text": check.remediation or f"Remediate {check.title}",
                }
            else:
                group["severity"] = max_severity(group["severity"], finding.severity.value)
                group["executors"].add(finding.executor)

        ranked = sorted(groups.items(), key=lambda item: (-severity_rank(item[1]["severity"]), item[1]["order"]))
        return [
            Recommendation(
                control_id=control_id,
                framework=framework_id,
                severity=Severity(group["severity"]),
                text=group["text"],
                affected_executors=len(group["executors"]),
            )
            for (framework_id, control_id), group in ranked
        ]

    @staticmethod
    def _summary(findings: Sequence[Finding], vulnerabilities: Sequence[Vulnerability]) -> ScanSummary:
        by_severity: Dict[str, Dict[str, int]] = {}
        counts = {status.value: 0 for status in FindingStatus}
        for finding in findings:
            counts[finding.status.value] += 1
            bucket = by_severity.setdefault(
                finding.severity.value, {status.value: 0 for status in FindingStatus}
            )
            bucket[finding.status.value] += 1

        return ScanSummary(
            total=len(findings),
            passed=counts[FindingStatus.PASS.value],
            failed=counts[FindingStatus.FAIL.value],
            warnings=counts[FindingStatus.WARNING.value],
            vulnerabilities=len(vulnerabilities),
            by_severity={k: by_severity[k] for k in sorted(by_severity, key=severity_rank, reverse=True)},
        )

    @staticmethod
    def _agent_result(agent: RemoteExecutor, tally: _AgentTally) -> AgentScanResult:
        data: Dict[str, Any] = {
            "checksRun": tally.units,
            "passed": tally.passed,
            "failed": tally.failed,
            "warnings": tally.warnings,
        }
        if tally.script is not None:
            data["script"] = tally.script
        if tally.script_error is not None:
            data["scriptError"] = tally.script_error

        return AgentScanResult(
            agent_id=agent.agent_id,
            agent_name=agent.agent_name or agent.agent_id,
            status=AgentResultStatus.ERROR if tally.errored else AgentResultStatus.SUCCESS,
            data=data,
            execution_time=round(tally.execution_time, 3),
        )

    # ------------------------------------------------------------------
    # Alerting
    # ------------------------------------------------------------------

    def threshold_for(self, request: ScanRequest) -> int:
        if request.options.alert_threshold is not None:
            return request.options.alert_threshold
        return self.default_threshold

    def evaluate_alert(self, result: ScanResult, threshold: int) -> Optional[AlertEvent]:
        """An alert fires only for scans that evaluated at least one finding."""
        if result.summary.total >= 1 and result.score < threshold:
            return AlertEvent(scan_id=result.id, score=result.score, threshold=threshold)
        return None

    async def finalize(self, request: ScanRequest, result: ScanResult) -> Optional[AlertEvent]:
        """
        Evaluate the alert threshold for a terminal result and emit if needed.

        Returns:
            The emitted AlertEvent, or None
        """
        event = self.evaluate_alert(result, self.threshold_for(request))
        if event is not None:
            await self.alert_sink.emit(event)
        return event
