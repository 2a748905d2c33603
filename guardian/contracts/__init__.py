# guardian/contracts/__init__.py
"""
Contracts Package: data shapes that cross component boundaries.

Modules:
    schemas: pydantic models for analysis input, matches, issues and reports
    budget: latency budget handed to the augmentation stage
"""

from guardian.contracts.budget import AnalysisBudget
from guardian.contracts.schemas import (
    AnalysisData,
    DetectedIssue,
    GuardianAnalysisWarning,
    GuardianCheckResponse,
    IssueSource,
    PatternMatchResult,
    RiskCategory,
    RiskSeverity,
    SimulationResult,
    WarningKind,
    WarningSeverity,
)

__all__ = [
    "AnalysisBudget",
    "AnalysisData",
    "DetectedIssue",
    "GuardianAnalysisWarning",
    "GuardianCheckResponse",
    "IssueSource",
    "PatternMatchResult",
    "RiskCategory",
    "RiskSeverity",
    "SimulationResult",
    "WarningKind",
    "WarningSeverity",
]
