"""
guardian/engine/warnings.py
Analysis-quality warnings and read-time freshness.

Each pipeline stage that degrades appends exactly one warning to the run's
WarningCollector as it happens. Freshness is never stored: it is derived
from a report's immutable creation time whenever the report is re-served.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, Iterator, List, Optional

from guardian.contracts.schemas import (
    Freshness,
    GuardianAnalysisWarning,
    WarningKind,
    WarningSeverity,
)

HOUR = 3600
DAY = 24 * HOUR
STALE_AFTER_DAYS = 7


def _warning(kind: WarningKind, message: str, severity: WarningSeverity) -> GuardianAnalysisWarning:
    return GuardianAnalysisWarning(type=kind, severity=severity, message=message)


class Warnings:
    """Factories for every warning the pipeline can emit."""

    @staticmethod
    def simulation_failed(error: Optional[str] = None) -> GuardianAnalysisWarning:
        if error:
            message = f"Simulation failed: {error}. Analysis may be incomplete."
        else:
            message = "Transaction simulation failed. Analysis based on static pattern matching only."
        return _warning(WarningKind.SIMULATION_FAILED, message, WarningSeverity.WARNING)

    @staticmethod
    def simulation_unavailable() -> GuardianAnalysisWarning:
        return _warning(
            WarningKind.SIMULATION_FAILED,
            "Transaction simulation was not available. Analysis based on static pattern matching only.",
            WarningSeverity.WARNING,
        )

    @staticmethod
    def llm_skipped(reason: Optional[str] = None) -> GuardianAnalysisWarning:
        message = "AI analysis was skipped. Pattern matching only."
        if reason:
            message = f"AI analysis was skipped ({reason}). Pattern matching only."
        return _warning(WarningKind.LLM_SKIPPED, message, WarningSeverity.INFO)

    @staticmethod
    def llm_error(error: Optional[str] = None) -> GuardianAnalysisWarning:
        message = f"AI analysis failed: {error}" if error else "AI analysis encountered an error."
        return _warning(WarningKind.LLM_ERROR, message, WarningSeverity.WARNING)

    @staticmethod
    def llm_timeout(timeout_seconds: float) -> GuardianAnalysisWarning:
        return _warning(
            WarningKind.LLM_ERROR,
            f"AI analysis timed out after {timeout_seconds:.1f}s. Pattern matching results only.",
            WarningSeverity.WARNING,
        )

    @staticmethod
    def llm_rate_limited() -> GuardianAnalysisWarning:
        return _warning(
            WarningKind.LLM_RATE_LIMITED,
            "AI analysis was rate limited. Pattern matching only.",
            WarningSeverity.WARNING,
        )

    @staticmethod
    def partial_analysis(reason: Optional[str] = None) -> GuardianAnalysisWarning:
        message = "Analysis may be incomplete. Some detection methods were unavailable."
        if reason:
            message = f"Analysis may be incomplete: {reason}."
        return _warning(WarningKind.PARTIAL_ANALYSIS, message, WarningSeverity.WARNING)

    @staticmethod
    def module_not_found() -> GuardianAnalysisWarning:
        return _warning(
            WarningKind.BYTECODE_VERIFICATION_FAILED,
            "Module not found on-chain. This could indicate a non-existent contract or wrong network.",
            WarningSeverity.ERROR,
        )

    @staticmethod
    def function_not_found(function_base_name: str) -> GuardianAnalysisWarning:
        return _warning(
            WarningKind.BYTECODE_VERIFICATION_FAILED,
            f'Function "{function_base_name}" does not exist in the on-chain module. '
            "This could be an attempt to trick you.",
            WarningSeverity.ERROR,
        )

    @staticmethod
    def bytecode_mismatch(simulated: str, deployed: str) -> GuardianAnalysisWarning:
        return _warning(
            WarningKind.BYTECODE_VERIFICATION_FAILED,
            f"Simulated bytecode ({simulated[:16]}) differs from the deployed module ({deployed[:16]}).",
            WarningSeverity.ERROR,
        )

    @staticmethod
    def bytecode_lookup_failed(error: str) -> GuardianAnalysisWarning:
        return _warning(
            WarningKind.BYTECODE_VERIFICATION_FAILED,
            f"Could not verify module on-chain: {error}",
            WarningSeverity.WARNING,
        )

    @staticmethod
    def stale_result(freshness: Freshness) -> GuardianAnalysisWarning:
        return _warning(
            WarningKind.STALE_RESULT,
            f"This analysis is {freshness.label}. Consider re-analyzing before signing.",
            freshness.severity,
        )


class WarningCollector:
    """Append-only record of what degraded during one analysis run."""

    def __init__(self) -> None:
        self._warnings: List[GuardianAnalysisWarning] = []

    def add(self, warning: GuardianAnalysisWarning) -> None:
        self._warnings.append(warning)

    def extend(self, warnings: Iterable[GuardianAnalysisWarning]) -> None:
        self._warnings.extend(warnings)

    def __iter__(self) -> Iterator[GuardianAnalysisWarning]:
        return iter(self._warnings)

    def __len__(self) -> int:
        return len(self._warnings)

    @property
    def degraded(self) -> bool:
        return bool(self._warnings)

    def kinds(self) -> List[WarningKind]:
        return [w.type for w in self._warnings]

    def sorted(self) -> List[GuardianAnalysisWarning]:
        return sort_warnings(self._warnings)


def sort_warnings(warnings: Iterable[GuardianAnalysisWarning]) -> List[GuardianAnalysisWarning]:
    """error, then warning, then info; insertion order within a severity."""
    return sorted(warnings, key=lambda w: -w.severity.rank)


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}" if count == 1 else f"{count} {unit}s"


def classify_freshness(created_at: datetime, now: Optional[datetime] = None) -> Freshness:
    """
    Classify a report's age: fresh under an hour, hours up to a day (info),
    days up to a week (warning), and from seven days on an error-level
    label that recommends re-analysis.

    Naive datetimes are taken as UTC. A creation time in the future counts
    as fresh.
    """
    now = now or datetime.now(timezone.utc)
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    age = max(0, int((now - created_at).total_seconds()))

    if age < HOUR:
        return Freshness(label="fresh", severity=WarningSeverity.INFO, age_seconds=age)
    if age < DAY:
        label = f"{_plural(age // HOUR, 'hour')} ago"
        return Freshness(label=label, severity=WarningSeverity.INFO, age_seconds=age)

    days = age // DAY
    if days < STALE_AFTER_DAYS:
        label = f"{_plural(days, 'day')} old"
        return Freshness(label=label, severity=WarningSeverity.WARNING, age_seconds=age)
    label = f"{_plural(days, 'day')} old — recommend re-analysis"
    return Freshness(label=label, severity=WarningSeverity.ERROR, age_seconds=age)
