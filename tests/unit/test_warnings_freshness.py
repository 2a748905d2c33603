"""
Unit tests for warning factories, warning ordering and freshness classification.
"""
from datetime import datetime, timedelta, timezone

import pytest

from guardian.contracts.schemas import WarningKind, WarningSeverity
from guardian.engine.warnings import WarningCollector, Warnings, classify_freshness, sort_warnings

CREATED = datetime(2026, 1, 10, 8, 30, 0, tzinfo=timezone.utc)


class TestFreshness:

    @pytest.mark.parametrize("age,label,severity", [
        (timedelta(0), "fresh", WarningSeverity.INFO),
        (timedelta(minutes=59, seconds=59), "fresh", WarningSeverity.INFO),
        (timedelta(hours=1), "1 hour ago", WarningSeverity.INFO),
        (timedelta(hours=23, minutes=59, seconds=59), "23 hours ago", WarningSeverity.INFO),
        (timedelta(days=1), "1 day old", WarningSeverity.WARNING),
        (timedelta(days=6, hours=23, minutes=59, seconds=59), "6 days old", WarningSeverity.WARNING),
        (timedelta(days=7), "7 days old — recommend re-analysis", WarningSeverity.ERROR),
        (timedelta(days=8), "8 days old — recommend re-analysis", WarningSeverity.ERROR),
    ])
    def test_boundaries(self, age, label, severity):
        freshness = classify_freshness(CREATED, CREATED + age)
        assert freshness.label == label
        assert freshness.severity == severity
        assert freshness.age_seconds == int(age.total_seconds())

    def test_future_creation_is_fresh(self):
        freshness = classify_freshness(CREATED, CREATED - timedelta(minutes=5))
        assert freshness.label == "fresh"
        assert freshness.age_seconds == 0

    def test_naive_datetimes_are_utc(self):
        naive = CREATED.replace(tzinfo=None)
        assert classify_freshness(naive, CREATED + timedelta(days=2)).label == "2 days old"


class TestWarnings:

    def test_simulation_failed_variants(self):
        assert Warnings.simulation_failed("OUT_OF_GAS").message.startswith("Simulation failed: OUT_OF_GAS")
        assert Warnings.simulation_unavailable().type == WarningKind.SIMULATION_FAILED

    def test_timeout_is_an_llm_error(self):
        warning = Warnings.llm_timeout(2.5)
        assert warning.type == WarningKind.LLM_ERROR
        assert "2.5s" in warning.message

    def test_bytecode_severities(self):
        assert Warnings.module_not_found().severity == WarningSeverity.ERROR
        assert Warnings.function_not_found("swap").severity == WarningSeverity.ERROR
        assert Warnings.bytecode_mismatch("0xaa", "0xbb").severity == WarningSeverity.ERROR
        assert Warnings.bytecode_lookup_failed("timeout").severity == WarningSeverity.WARNING

    def test_stale_result_takes_freshness_severity(self):
        freshness = classify_freshness(CREATED, CREATED + timedelta(days=3))
        warning = Warnings.stale_result(freshness)
        assert warning.type == WarningKind.STALE_RESULT
        assert warning.severity == WarningSeverity.WARNING
        assert "3 days old" in warning.message

    def test_sort_is_stable_by_severity(self):
        skipped = Warnings.llm_skipped("disabled")
        sim = Warnings.simulation_unavailable()
        mismatch = Warnings.module_not_found()
        rate = Warnings.llm_rate_limited()
        ordered = sort_warnings([skipped, sim, mismatch, rate])
        assert ordered == [mismatch, sim, rate, skipped]

    def test_collector(self):
        collector = WarningCollector()
        assert not collector.degraded
        collector.add(Warnings.llm_skipped())
        collector.extend([Warnings.module_not_found()])
        assert len(collector) == 2
        assert collector.degraded
        assert collector.kinds() == [WarningKind.LLM_SKIPPED, WarningKind.BYTECODE_VERIFICATION_FAILED]
        assert collector.sorted()[0].severity == WarningSeverity.ERROR
