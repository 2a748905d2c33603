"""
guardian/engine/assembler.py
Builds the final GuardianCheckResponse.

Side-effect free: persisting a report under a share id is a separate
operation the caller chooses to perform (see guardian.data.share_store).
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from guardian.contracts.schemas import (
    AnalysisTime,
    DetectedIssue,
    GuardianAnalysisWarning,
    GuardianCheckResponse,
    LLMStatus,
    RiskSeverity,
    SimulationStatus,
)
from guardian.engine.aggregator import calculate_risk_score, sort_issues
from guardian.engine.warnings import sort_warnings
from guardian.patterns.registry import PatternRegistry, get_registry

logger = logging.getLogger(__name__)

_SEVERITY_PHRASES = {
    RiskSeverity.CRITICAL: "Critical risk",
    RiskSeverity.HIGH: "High risk",
    RiskSeverity.MEDIUM: "Moderate risk",
    RiskSeverity.LOW: "Low risk",
}

_ADVICE = {
    RiskSeverity.CRITICAL: "Do not sign this transaction unless you fully trust the contract.",
    RiskSeverity.HIGH: "Review every finding carefully before signing.",
    RiskSeverity.MEDIUM: "Proceed with caution.",
    RiskSeverity.LOW: "Verify the details before signing.",
}


def synthesize_assessment(issues: List[DetectedIssue]) -> str:
    """Deterministic narrative keyed on the highest severity present and the issue count."""
    if not issues:
        return "No known risk patterns detected. Always verify transactions before signing."

    top = max(issues, key=lambda i: i.severity.rank).severity
    at_top = sum(1 for i in issues if i.severity == top)
    noun = "issue" if len(issues) == 1 else "issues"
    sentence = f"{_SEVERITY_PHRASES[top]}: {len(issues)} {noun} detected"
    if len(issues) > 1:
        sentence += f", {at_top} rated {top.value}"
    return f"{sentence}. Most severe: {issues[0].title}. {_ADVICE[top]}"


class ReportAssembler:
    def __init__(self, registry: Optional[PatternRegistry] = None):
        self.registry = registry if registry is not None else get_registry()

    def assemble(
        self,
        issues: Iterable[DetectedIssue],
        warnings: Iterable[GuardianAnalysisWarning],
        llm_risk_assessment: Optional[str] = None,
        *,
        function_name: Optional[str] = None,
        used_llm: bool = False,
        llm_status: LLMStatus = LLMStatus.SKIPPED,
        simulation_status: SimulationStatus = SimulationStatus.SKIPPED,
        analysis_time: Optional[AnalysisTime] = None,
    ) -> GuardianCheckResponse:
        ranked = sort_issues(issues, self.registry)
        ordered_warnings = sort_warnings(warnings)
        score, overall = calculate_risk_score(ranked)

        assessment = (llm_risk_assessment or "").strip() or synthesize_assessment(ranked)
        logger.debug(
            f"[ReportAssembler] {function_name}: {len(ranked)} issues, "
            f"{len(ordered_warnings)} warnings, score {score} ({overall.value})"
        )

        return GuardianCheckResponse(
            issues=ranked,
            warnings=ordered_warnings,
            risk_assessment=assessment,
            analysis_complete=not ordered_warnings,
            overall_risk=overall,
            risk_score=score,
            function_name=function_name,
            used_llm=used_llm,
            llm_status=llm_status,
            simulation_status=simulation_status,
            analysis_time=analysis_time,
        )
