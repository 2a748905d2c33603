"""
Unit tests for LLMAugmenter: every failure of the semantic pass degrades to a
warning and never touches the pattern findings.
"""
import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from guardian.ai.llm_analyzer import LLMAugmenter, SlidingWindowRateLimiter
from guardian.base.config import AnalysisConfig, LLMConfig
from guardian.contracts.budget import AnalysisBudget
from guardian.contracts.schemas import LLMStatus, WarningKind
from guardian.engine.aggregator import aggregate
from guardian.engine.matcher import PatternMatcher
from guardian.errors import ErrorCode, GuardianError

GOOD_RESPONSE = json.dumps({
    "issues": [{
        "category": "EXPLOIT",
        "severity": "MEDIUM",
        "title": "Unusual spender",
        "description": "Spender was deployed recently",
        "recommendation": "Verify the spender",
    }],
    "riskAssessment": "Moderately risky approval",
    "confidence": 0.6,
})


def _client(**kwargs):
    client = MagicMock()
    client.model = "test-model"
    client.complete = AsyncMock(**kwargs)
    return client


def _augmenter(client, timeout=1.0, always=True, limiter=None):
    return LLMAugmenter(
        client,
        LLMConfig(provider="ollama", request_timeout=timeout),
        AnalysisConfig(always_use_llm=always),
        rate_limiter=limiter,
    )


@pytest.fixture
def approve_case(registry, make_data):
    data = make_data("0x1::coin::approve", arguments=["0xbeef", 100])
    results = PatternMatcher(registry).match(data)
    return data, results, aggregate(results, registry)


@pytest.mark.asyncio
async def test_successful_augmentation(approve_case):
    data, results, issues = approve_case
    client = _client(return_value=GOOD_RESPONSE)
    outcome = await _augmenter(client).augment(data, issues, results, AnalysisBudget.start(5000))

    assert outcome.status == LLMStatus.USED
    assert outcome.used is True
    assert outcome.warnings == []
    assert [i.pattern_id for i in outcome.additional_issues] == ["llm:exploit:1"]
    assert outcome.risk_assessment == "Moderately risky approval"
    assert outcome.duration_ms is not None
    system, prompt, timeout = client.complete.call_args.args
    assert "exploit:approval:drain" in prompt
    assert timeout == pytest.approx(1.0, abs=0.05)


@pytest.mark.asyncio
async def test_unconfigured_is_skipped(approve_case):
    data, results, issues = approve_case
    outcome = await _augmenter(None).augment(data, issues, results, AnalysisBudget.start(5000))
    assert outcome.status == LLMStatus.SKIPPED
    assert [w.type for w in outcome.warnings] == [WarningKind.LLM_SKIPPED]


@pytest.mark.asyncio
async def test_not_needed_has_no_warning(approve_case):
    data, results, issues = approve_case
    client = _client(return_value=GOOD_RESPONSE)
    outcome = await _augmenter(client, always=False).augment(data, issues, results, AnalysisBudget.start(5000))
    assert outcome.status == LLMStatus.NOT_NEEDED
    assert outcome.warnings == []
    client.complete.assert_not_called()


@pytest.mark.asyncio
async def test_slow_call_times_out(approve_case):
    data, results, issues = approve_case

    async def slow(*args, **kwargs):
        await asyncio.sleep(10)
        return GOOD_RESPONSE

    client = _client(side_effect=slow)
    outcome = await _augmenter(client, timeout=0.05).augment(data, issues, results, AnalysisBudget.start(5000))

    assert outcome.status == LLMStatus.TIMEOUT
    assert outcome.additional_issues == []
    assert [w.type for w in outcome.warnings] == [WarningKind.LLM_ERROR]


@pytest.mark.asyncio
async def test_budget_caps_the_timeout(approve_case):
    data, results, issues = approve_case

    async def slow(*args, **kwargs):
        await asyncio.sleep(10)

    client = _client(side_effect=slow)
    loop = asyncio.get_running_loop()
    started = loop.time()
    outcome = await _augmenter(client, timeout=30.0).augment(data, issues, results, AnalysisBudget.start(100))
    assert outcome.status == LLMStatus.TIMEOUT
    assert loop.time() - started < 5.0


@pytest.mark.asyncio
async def test_exhausted_budget_skips_call(approve_case):
    data, results, issues = approve_case
    client = _client(return_value=GOOD_RESPONSE)
    outcome = await _augmenter(client).augment(data, issues, results, AnalysisBudget.start(0))
    assert outcome.status == LLMStatus.SKIPPED
    assert [w.type for w in outcome.warnings] == [WarningKind.PARTIAL_ANALYSIS]
    client.complete.assert_not_called()


@pytest.mark.asyncio
async def test_provider_rate_limit(approve_case):
    data, results, issues = approve_case
    client = _client(side_effect=GuardianError(ErrorCode.AI_RATE_LIMIT_EXCEEDED, "429"))
    outcome = await _augmenter(client).augment(data, issues, results, AnalysisBudget.start(5000))
    assert outcome.status == LLMStatus.RATE_LIMITED
    assert [w.type for w in outcome.warnings] == [WarningKind.LLM_RATE_LIMITED]


@pytest.mark.asyncio
async def test_local_rate_limit(approve_case):
    data, results, issues = approve_case
    client = _client(return_value=GOOD_RESPONSE)
    augmenter = _augmenter(client, limiter=SlidingWindowRateLimiter(1))
    first = await augmenter.augment(data, issues, results, AnalysisBudget.start(5000))
    second = await augmenter.augment(data, issues, results, AnalysisBudget.start(5000))
    assert first.status == LLMStatus.USED
    assert second.status == LLMStatus.RATE_LIMITED
    assert client.complete.call_count == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("failure", [
    GuardianError(ErrorCode.AI_OFFLINE, "connection refused"),
    RuntimeError("unexpected"),
])
async def test_errors_become_llm_error(approve_case, failure):
    data, results, issues = approve_case
    outcome = await _augmenter(_client(side_effect=failure)).augment(data, issues, results, AnalysisBudget.start(5000))
    assert outcome.status == LLMStatus.ERROR
    assert [w.type for w in outcome.warnings] == [WarningKind.LLM_ERROR]


@pytest.mark.asyncio
async def test_malformed_output_is_llm_error(approve_case):
    data, results, issues = approve_case
    outcome = await _augmenter(_client(return_value="not json at all")).augment(
        data, issues, results, AnalysisBudget.start(5000)
    )
    assert outcome.status == LLMStatus.ERROR
    assert outcome.warnings[0].type == WarningKind.LLM_ERROR
