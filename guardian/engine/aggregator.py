# ============================================================================
# guardian/engine/aggregator.py
# Issue Aggregation and Ranking
# ============================================================================
#
# PURPOSE:
# Turns raw pattern matches into user-facing issues, merges in issues found
# by the semantic pass, and ranks the combined list.
#
# ORDERING (applies to every list this module returns):
# 1. severity, most severe first
# 2. confidence, highest first
# 3. registry position; issues without a registry entry (LLM findings)
#    come after every registered pattern, in arrival order
#
# ============================================================================

from __future__ import annotations

import logging
import math
from typing import Any, Dict, Iterable, List, Optional, Tuple

from guardian.contracts.schemas import (
    DetectedIssue,
    IssueSource,
    PatternMatchResult,
    RiskSeverity,
)
from guardian.patterns.registry import PatternRegistry, get_registry

logger = logging.getLogger(__name__)

SEVERITY_WEIGHTS: Dict[RiskSeverity, int] = {
    RiskSeverity.LOW: 10,
    RiskSeverity.MEDIUM: 30,
    RiskSeverity.HIGH: 60,
    RiskSeverity.CRITICAL: 90,
}

# Many LOW findings must never add up to a HIGH rating
LOW_CONTRIBUTION_CAP = 20


class _KeepMissing(dict):
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


def render_template(text: str, evidence: Optional[Dict[str, Any]]) -> str:
    """Fill `{key}` placeholders from evidence; unknown placeholders stay as written."""
    try:
        return text.format_map(_KeepMissing(evidence or {}))
    except (ValueError, IndexError, AttributeError):
        return text


def sort_issues(issues: Iterable[DetectedIssue], registry: Optional[PatternRegistry] = None) -> List[DetectedIssue]:
    registry = registry if registry is not None else get_registry()

    def key(issue: DetectedIssue) -> Tuple[int, float, int, int]:
        return (
            -issue.severity.rank,
            -issue.confidence,
            1 if issue.source == IssueSource.LLM else 0,
            registry.index_of(issue.pattern_id),
        )

    # sorted() is stable, so equal keys keep arrival order
    return sorted(issues, key=key)


def aggregate(
    matches: Iterable[PatternMatchResult],
    registry: Optional[PatternRegistry] = None,
) -> List[DetectedIssue]:
    """Render, de-duplicate and rank pattern matches."""
    registry = registry if registry is not None else get_registry()

    best: Dict[str, PatternMatchResult] = {}
    for match in matches:
        if not match.matched:
            continue
        current = best.get(match.pattern_id)
        if current is None or match.confidence > current.confidence:
            best[match.pattern_id] = match

    issues = []
    for match in best.values():
        definition = registry.get(match.pattern_id)
        if definition is None:
            logger.warning(f"[Aggregator] No definition for matched pattern {match.pattern_id}")
            title, description, recommendation = match.pattern_id, "", ""
        else:
            template = definition.issue_template
            title = render_template(template.title, match.evidence)
            description = render_template(template.description, match.evidence)
            recommendation = render_template(template.recommendation, match.evidence)

        issues.append(DetectedIssue(
            pattern_id=match.pattern_id,
            category=match.category,
            severity=match.severity,
            title=title,
            description=description,
            recommendation=recommendation,
            evidence=match.evidence,
            confidence=match.confidence,
            source=IssueSource.PATTERN,
        ))

    return sort_issues(issues, registry)


def merge(
    pattern_issues: Iterable[DetectedIssue],
    llm_issues: Iterable[DetectedIssue],
    registry: Optional[PatternRegistry] = None,
) -> List[DetectedIssue]:
    """
    Combine deterministic and semantic findings.

    Every pattern issue survives. An LLM issue whose id collides with an
    issue already present is dropped rather than replacing it.
    """
    combined = list(pattern_issues)
    seen = {issue.pattern_id for issue in combined}
    for issue in llm_issues:
        if issue.pattern_id in seen:
            logger.debug(f"[Aggregator] Dropping duplicate LLM issue {issue.pattern_id}")
            continue
        seen.add(issue.pattern_id)
        combined.append(issue)
    return sort_issues(combined, registry)


def calculate_risk_score(issues: Iterable[DetectedIssue]) -> Tuple[int, RiskSeverity]:
    """
    Score 0-100 plus an overall severity.

    Weighted sum of severity x confidence with the LOW share capped; the
    most severe issue's own weighted score is a floor. Any CRITICAL issue
    makes the overall rating CRITICAL regardless of its confidence.
    """
    issues = list(issues)
    if not issues:
        return 0, RiskSeverity.LOW

    contributions = {severity: 0.0 for severity in RiskSeverity}
    top = RiskSeverity.LOW
    top_confidence = 0.0
    for issue in issues:
        contributions[issue.severity] += SEVERITY_WEIGHTS[issue.severity] * issue.confidence
        if issue.severity.rank > top.rank:
            top, top_confidence = issue.severity, issue.confidence
        elif issue.severity == top and issue.confidence > top_confidence:
            top_confidence = issue.confidence

    total = (
        contributions[RiskSeverity.CRITICAL]
        + contributions[RiskSeverity.HIGH]
        + contributions[RiskSeverity.MEDIUM]
        + min(contributions[RiskSeverity.LOW], LOW_CONTRIBUTION_CAP)
    )
    effective = max(total, SEVERITY_WEIGHTS[top] * top_confidence)
    score = min(100, int(math.floor(effective + 0.5)))

    if top == RiskSeverity.CRITICAL:
        overall = RiskSeverity.CRITICAL
    elif top == RiskSeverity.HIGH or score >= 60:
        overall = RiskSeverity.HIGH
    elif top == RiskSeverity.MEDIUM or score >= 30:
        overall = RiskSeverity.MEDIUM
    else:
        overall = RiskSeverity.LOW
    return score, overall
