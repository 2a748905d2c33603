"""Pytest configuration for Guardian."""
from datetime import datetime, timezone

import pytest

from guardian.base.config import AnalysisConfig, GuardianConfig, LLMConfig, StorageConfig, set_config
from guardian.contracts.schemas import SimulationEvent, SimulationResult, StateChange
from guardian.engine.matcher import build_analysis_data
from guardian.patterns.registry import get_registry
from guardian.server.state import set_service


@pytest.fixture(autouse=True)
def offline_config(tmp_path):
    """No network LLM and no on-disk store unless a test builds its own."""
    config = GuardianConfig(
        llm=LLMConfig(provider="none", enabled=False),
        analysis=AnalysisConfig(total_budget_ms=5000),
        storage=StorageConfig(backend="memory", base_dir=tmp_path),
    )
    set_config(config)
    set_service(None)
    yield config
    set_config(None)
    set_service(None)


@pytest.fixture
def registry():
    return get_registry()


@pytest.fixture
def fixed_now():
    return datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_data():
    def _make(function_name="0x1::coin::transfer", arguments=(), simulation=None, **kwargs):
        return build_analysis_data(function_name, arguments=arguments, simulation_result=simulation, **kwargs)
    return _make


@pytest.fixture
def make_sim():
    def _make(success=True, gas_used=1200, events=(), state_changes=(), **kwargs):
        return SimulationResult(
            success=success,
            gas_used=gas_used,
            events=tuple(SimulationEvent(type=e) if isinstance(e, str) else e for e in events),
            state_changes=tuple(state_changes),
            **kwargs,
        )
    return _make


@pytest.fixture
def coin_store_change():
    return StateChange(
        type="modify",
        resource="0x1::coin::CoinStore<0x1::aptos_coin::AptosCoin>",
        address="0xa11ce",
        before={"value": "5000"},
        after={"value": "10"},
    )
