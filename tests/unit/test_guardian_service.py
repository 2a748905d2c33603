"""
Unit tests for GuardianService: end-to-end analysis, degradation to warnings,
bytecode verification and shared-report reads.
"""
import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from guardian.ai.llm_analyzer import LLMAugmenter
from guardian.base.config import AnalysisConfig, LLMConfig
from guardian.contracts.schemas import (
    LLMStatus,
    SimulationStatus,
    WarningKind,
    WarningSeverity,
)
from guardian.data.bytecode import ModuleInfo
from guardian.data.share_store import InMemoryShareStore
from guardian.engine.service import GuardianService
from guardian.errors import ErrorCode, GuardianError

CREATED = datetime(2026, 4, 2, 15, 0, 0, tzinfo=timezone.utc)


class FakeLookup:
    def __init__(self, module=None, error=None):
        self.module = module
        self.error = error
        self.calls = []

    async def fetch_module(self, address, module_name):
        self.calls.append((address, module_name))
        if self.error is not None:
            raise self.error
        return self.module


def _service(registry, offline_config, **kwargs):
    kwargs.setdefault("store", InMemoryShareStore(clock=lambda: CREATED))
    return GuardianService(registry=registry, config=offline_config, **kwargs)


def _kinds(response):
    return [w.type for w in response.warnings]


@pytest.mark.asyncio
async def test_missing_simulation_gives_one_warning(registry, offline_config, make_data):
    service = _service(registry, offline_config)
    response = await service.analyze(make_data("0x1::coin::approve", arguments=["0xbeef", 100]))

    assert _kinds(response).count(WarningKind.SIMULATION_FAILED) == 1
    assert response.analysis_complete is False
    assert response.simulation_status == SimulationStatus.SKIPPED
    assert [i.pattern_id for i in response.issues] == ["exploit:approval:drain"]
    assert response.issues[0].source.value == "pattern"
    assert response.llm_status == LLMStatus.SKIPPED
    assert WarningKind.LLM_SKIPPED in _kinds(response)


@pytest.mark.asyncio
async def test_clean_run_is_complete(registry, offline_config, make_data, make_sim):
    augmenter = MagicMock()
    augmenter.augment = AsyncMock(return_value=MagicMock(
        status=LLMStatus.NOT_NEEDED, warnings=[], additional_issues=[],
        risk_assessment=None, duration_ms=None, used=False,
    ))
    service = _service(registry, offline_config, augmenter=augmenter)
    response = await service.analyze(make_data("0x1::coin::transfer", simulation=make_sim()))

    assert response.warnings == []
    assert response.analysis_complete is True
    assert response.simulation_status == SimulationStatus.SUCCESS
    assert response.analysis_time.total_ms >= response.analysis_time.pattern_match_ms


@pytest.mark.asyncio
async def test_llm_timeout_keeps_pattern_issues(registry, offline_config, make_data, make_sim):
    data = make_data(
        "0xdex::pool::remove_liquidity",
        arguments=["5000000000"],
        simulation=make_sim(events=["0xdex::pool::LiquidityRemoved"]),
    )

    async def slow(*args, **kwargs):
        await asyncio.sleep(10)

    client = MagicMock()
    client.complete = AsyncMock(side_effect=slow)
    augmenter = LLMAugmenter(
        client,
        LLMConfig(provider="ollama", request_timeout=0.05),
        AnalysisConfig(always_use_llm=True),
    )

    baseline = await _service(registry, offline_config).analyze(data)
    degraded = await _service(registry, offline_config, augmenter=augmenter).analyze(data)

    assert [i.model_dump() for i in degraded.issues] == [i.model_dump() for i in baseline.issues]
    assert degraded.issues
    assert degraded.llm_status == LLMStatus.TIMEOUT
    assert WarningKind.LLM_ERROR in _kinds(degraded)
    assert degraded.analysis_complete is False
    assert degraded.used_llm is False


@pytest.mark.asyncio
async def test_llm_issues_are_merged(registry, offline_config, make_data):
    client = MagicMock()
    client.complete = AsyncMock(return_value=(
        '{"issues": [{"category": "EXPLOIT", "severity": "LOW", "title": "Odd spender",'
        ' "description": "d", "recommendation": "r"}], "riskAssessment": "Be careful", "confidence": 0.9}'
    ))
    augmenter = LLMAugmenter(client, LLMConfig(provider="ollama"), AnalysisConfig(always_use_llm=True))
    response = await _service(registry, offline_config, augmenter=augmenter).analyze(
        make_data("0x1::coin::approve", arguments=["0xbeef", 100])
    )

    assert [i.pattern_id for i in response.issues] == ["exploit:approval:drain", "llm:exploit:1"]
    assert response.used_llm is True
    assert response.llm_status == LLMStatus.USED
    assert response.risk_assessment == "Be careful"
    assert response.analysis_time.llm_analysis_ms is not None


@pytest.mark.asyncio
async def test_raising_augmenter_keeps_pattern_issues(registry, offline_config, make_data):
    augmenter = MagicMock()
    augmenter.augment = AsyncMock(side_effect=RuntimeError("augmenter crashed"))
    response = await _service(registry, offline_config, augmenter=augmenter).analyze(
        make_data("0x1::coin::approve", arguments=["0xbeef", 100])
    )

    assert [i.pattern_id for i in response.issues] == ["exploit:approval:drain"]
    assert response.llm_status == LLMStatus.ERROR
    assert _kinds(response).count(WarningKind.LLM_ERROR) == 1
    assert any("augmenter crashed" in w.message for w in response.warnings)
    assert response.used_llm is False


@pytest.mark.asyncio
async def test_unserializable_arguments_degrade_to_warning(registry, offline_config, make_data):
    client = MagicMock()
    client.complete = AsyncMock(return_value='{"issues": []}')
    augmenter = LLMAugmenter(client, LLMConfig(provider="ollama"), AnalysisConfig(always_use_llm=True))
    response = await _service(registry, offline_config, augmenter=augmenter).analyze(
        make_data("0x1::coin::approve", arguments=["0xbeef", {(1, 2): "x"}])
    )

    assert [i.pattern_id for i in response.issues] == ["exploit:approval:drain"]
    assert response.llm_status == LLMStatus.ERROR
    assert _kinds(response).count(WarningKind.LLM_ERROR) == 1
    client.complete.assert_not_called()


@pytest.mark.asyncio
async def test_budget_usage_drives_total_time(registry, offline_config, make_data):
    ticks = [0.0, 0.0, 0.010, 0.025]

    def clock():
        return ticks.pop(0) if len(ticks) > 1 else ticks[0]

    service = _service(registry, offline_config, clock=clock)
    response = await service.analyze(make_data("0x1::coin::transfer"), budget_ms=100)

    assert response.analysis_time.pattern_match_ms == pytest.approx(10.0)
    assert response.analysis_time.total_ms == pytest.approx(25.0)


class TestSimulation:

    @pytest.mark.asyncio
    async def test_simulator_fills_in_execution(self, registry, offline_config, make_data, make_sim):
        simulator = MagicMock()
        simulator.simulate = AsyncMock(return_value=make_sim(gas_used=2_500_000))
        service = _service(registry, offline_config, simulator=simulator)
        response = await service.analyze(make_data("0x1::coin::transfer"))

        assert response.simulation_status == SimulationStatus.SUCCESS
        assert "cost:gas:extreme" in [i.pattern_id for i in response.issues]
        assert WarningKind.SIMULATION_FAILED not in _kinds(response)

    @pytest.mark.asyncio
    async def test_simulator_exception(self, registry, offline_config, make_data):
        simulator = MagicMock()
        simulator.simulate = AsyncMock(side_effect=ConnectionError("fork node down"))
        response = await _service(registry, offline_config, simulator=simulator).analyze(
            make_data("0x1::coin::transfer")
        )
        assert response.simulation_status == SimulationStatus.FAILED
        assert _kinds(response).count(WarningKind.SIMULATION_FAILED) == 1
        assert any("fork node down" in w.message for w in response.warnings)

    @pytest.mark.asyncio
    async def test_unsuccessful_simulation(self, registry, offline_config, make_data, make_sim):
        data = make_data("0x1::coin::transfer", simulation=make_sim(success=False, error="EINSUFFICIENT_BALANCE"))
        response = await _service(registry, offline_config).analyze(data)
        assert response.simulation_status == SimulationStatus.FAILED
        assert any("EINSUFFICIENT_BALANCE" in w.message for w in response.warnings)


class TestBytecodeVerification:

    @pytest.mark.asyncio
    async def test_module_missing(self, registry, offline_config, make_data, make_sim):
        lookup = FakeLookup(ModuleInfo(exists=False))
        response = await _service(registry, offline_config, bytecode_lookup=lookup).analyze(
            make_data("0xcafe::pool::swap", simulation=make_sim())
        )
        assert lookup.calls == [("0xcafe", "pool")]
        first = response.warnings[0]
        assert first.type == WarningKind.BYTECODE_VERIFICATION_FAILED
        assert first.severity == WarningSeverity.ERROR

    @pytest.mark.asyncio
    async def test_function_not_exposed(self, registry, offline_config, make_data, make_sim):
        lookup = FakeLookup(ModuleInfo(exists=True, function_names=frozenset({"add_liquidity"})))
        response = await _service(registry, offline_config, bytecode_lookup=lookup).analyze(
            make_data("0xcafe::pool::swap", simulation=make_sim())
        )
        assert '"swap"' in response.warnings[0].message
        assert response.warnings[0].severity == WarningSeverity.ERROR

    @pytest.mark.asyncio
    async def test_hash_mismatch(self, registry, offline_config, make_data, make_sim):
        lookup = FakeLookup(ModuleInfo(exists=True, bytecode_hash="0xdeployed", function_names=frozenset({"swap"})))
        data = make_data("0xcafe::pool::swap", simulation=make_sim(bytecode_hash="0xsimulated"))
        response = await _service(registry, offline_config, bytecode_lookup=lookup).analyze(data)
        assert response.warnings[0].type == WarningKind.BYTECODE_VERIFICATION_FAILED
        assert response.warnings[0].severity == WarningSeverity.ERROR

    @pytest.mark.asyncio
    async def test_matching_hash_adds_nothing(self, registry, offline_config, make_data, make_sim):
        lookup = FakeLookup(ModuleInfo(exists=True, bytecode_hash="0xABC", function_names=frozenset({"swap"})))
        data = make_data("0xcafe::pool::swap", simulation=make_sim(bytecode_hash="abc"))
        response = await _service(registry, offline_config, bytecode_lookup=lookup).analyze(data)
        assert WarningKind.BYTECODE_VERIFICATION_FAILED not in _kinds(response)

    @pytest.mark.asyncio
    async def test_lookup_failure_is_a_warning(self, registry, offline_config, make_data, make_sim):
        lookup = FakeLookup(error=GuardianError(ErrorCode.BYTECODE_LOOKUP_FAILED, "node returned HTTP 503"))
        response = await _service(registry, offline_config, bytecode_lookup=lookup).analyze(
            make_data("0xcafe::pool::swap", simulation=make_sim())
        )
        bytecode = [w for w in response.warnings if w.type == WarningKind.BYTECODE_VERIFICATION_FAILED]
        assert len(bytecode) == 1
        assert bytecode[0].severity == WarningSeverity.WARNING


class TestSharedReports:

    @pytest.mark.asyncio
    async def test_persist_and_read_eight_days_later(self, registry, offline_config, make_data):
        service = _service(registry, offline_config)
        saved = await service.analyze(make_data("0x1::coin::approve", arguments=["0xbeef", 1]), persist=True)
        assert saved.share_id
        assert saved.created_at == CREATED

        shared = await service.get_shared(saved.share_id, now=CREATED + timedelta(days=8))
        assert shared.freshness.label == "8 days old — recommend re-analysis"
        assert shared.freshness.severity == WarningSeverity.ERROR
        assert shared.warnings[0].type == WarningKind.STALE_RESULT
        assert shared.warnings[0].severity == WarningSeverity.ERROR
        assert [i.pattern_id for i in shared.issues] == [i.pattern_id for i in saved.issues]

        # Reading never rewrites the stored report
        again = await service.store.get(saved.share_id, now=CREATED)
        assert again.freshness is None
        assert again.warnings == saved.warnings

    @pytest.mark.asyncio
    async def test_recent_read_has_no_stale_warning(self, registry, offline_config, make_data):
        service = _service(registry, offline_config)
        saved = await service.analyze(make_data("0x1::coin::transfer"), persist=True)
        shared = await service.get_shared(saved.share_id, now=CREATED + timedelta(hours=3))
        assert shared.freshness.label == "3 hours ago"
        assert WarningKind.STALE_RESULT not in _kinds(shared)

    @pytest.mark.asyncio
    async def test_unknown_share_id(self, registry, offline_config):
        with pytest.raises(GuardianError) as exc_info:
            await _service(registry, offline_config).get_shared("missing")
        assert exc_info.value.code == ErrorCode.STORE_NOT_FOUND
        assert exc_info.value.http_status == 404
