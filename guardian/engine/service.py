# ============================================================================
# guardian/engine/service.py
# Analysis Orchestration
# ============================================================================
#
# PURPOSE:
# Runs one check end to end and serves previously shared reports.
#
# PIPELINE (analyze):
# 1. Simulation: use the caller's trace, or ask the configured simulator
# 2. Bytecode verification against the deployed module (when configured)
# 3. Pattern matching + aggregation (pure, synchronous)
# 4. Optional LLM augmentation, bounded by what is left of the budget
# 5. Assembly, then optional persistence under a share id
#
# Every degraded stage adds one warning; none of them raises. Only invalid
# input fails a request, and that happens before this service is called.
#
# ============================================================================

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Callable, List, Optional, Protocol

from guardian.ai.llm_analyzer import AugmentationOutcome, LLMAugmenter
from guardian.base.config import GuardianConfig, get_config
from guardian.contracts.budget import AnalysisBudget
from guardian.contracts.schemas import (
    AnalysisData,
    AnalysisTime,
    GuardianCheckResponse,
    LLMStatus,
    SimulationResult,
    SimulationStatus,
)
from guardian.data.bytecode import BytecodeLookup, NodeBytecodeLookup, normalize_hash
from guardian.data.share_store import ShareStore, create_share_store
from guardian.engine.aggregator import aggregate, merge
from guardian.engine.assembler import ReportAssembler
from guardian.engine.matcher import PatternMatcher
from guardian.engine.warnings import DAY, WarningCollector, Warnings, classify_freshness, sort_warnings
from guardian.errors import ErrorCode, GuardianError
from guardian.patterns.registry import PatternRegistry, get_registry
from guardian.utils.async_helpers import run_bounded

logger = logging.getLogger(__name__)


class Simulator(Protocol):
    """Executes the transaction against a fork of chain state."""

    async def simulate(self, data: AnalysisData) -> SimulationResult:
        ...


class GuardianService:
    def __init__(
        self,
        registry: Optional[PatternRegistry] = None,
        augmenter: Optional[LLMAugmenter] = None,
        store: Optional[ShareStore] = None,
        simulator: Optional[Simulator] = None,
        bytecode_lookup: Optional[BytecodeLookup] = None,
        config: Optional[GuardianConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or get_config()
        self.registry = registry if registry is not None else get_registry()
        self.matcher = PatternMatcher(self.registry)
        self.assembler = ReportAssembler(self.registry)
        self.augmenter = augmenter
        self.store = store
        self.simulator = simulator
        self.bytecode_lookup = bytecode_lookup
        self._clock = clock

    @classmethod
    def from_config(cls, config: Optional[GuardianConfig] = None) -> "GuardianService":
        cfg = config or get_config()
        lookup = None
        if cfg.analysis.node_url:
            lookup = NodeBytecodeLookup(cfg.analysis.node_url, timeout=cfg.analysis.bytecode_timeout)
        return cls(
            augmenter=LLMAugmenter.from_config(cfg),
            store=create_share_store(cfg),
            bytecode_lookup=lookup,
            config=cfg,
        )

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    async def analyze(
        self,
        data: AnalysisData,
        *,
        persist: bool = False,
        budget_ms: Optional[int] = None,
    ) -> GuardianCheckResponse:
        budget = AnalysisBudget.start(budget_ms or self.config.analysis.total_budget_ms, clock=self._clock)
        warnings = WarningCollector()

        data, simulation_status = await self._ensure_simulation(data, warnings, budget)
        await self._verify_bytecode(data, warnings, budget)

        started = self._clock()
        results = self.matcher.match(data)
        pattern_issues = aggregate(results, self.registry)
        pattern_ms = (self._clock() - started) * 1000.0
        logger.info(
            f"[Guardian] {data.function_name}: {len(results)} pattern matches in {pattern_ms:.1f}ms"
        )

        if self.augmenter is None:
            outcome = AugmentationOutcome(LLMStatus.SKIPPED, warnings=[Warnings.llm_skipped("not configured")])
        else:
            try:
                outcome = await self.augmenter.augment(data, pattern_issues, results, budget)
            except Exception as e:
                logger.error(f"[Guardian] Augmenter raised for {data.function_name}: {e}", exc_info=True)
                outcome = AugmentationOutcome(
                    LLMStatus.ERROR,
                    warnings=[Warnings.llm_error(str(e) or type(e).__name__)],
                )
        warnings.extend(outcome.warnings)

        issues = merge(pattern_issues, outcome.additional_issues, self.registry)
        usage = budget.usage_report()
        logger.info(
            f"[Guardian] {data.function_name}: used {usage['used_ms']:.0f} of {usage['limit_ms']:.0f}ms "
            f"({usage['percent']:.0f}%), llm={outcome.status.value}"
        )

        response = self.assembler.assemble(
            issues,
            warnings,
            outcome.risk_assessment,
            function_name=data.function_name,
            used_llm=outcome.used,
            llm_status=outcome.status,
            simulation_status=simulation_status,
            analysis_time=AnalysisTime(
                pattern_match_ms=round(pattern_ms, 3),
                llm_analysis_ms=round(outcome.duration_ms, 3) if outcome.duration_ms is not None else None,
                total_ms=round(usage["used_ms"], 3),
            ),
        )

        if persist:
            response = await self._persist(response)
        return response

    async def _ensure_simulation(self, data: AnalysisData, warnings: WarningCollector, budget: AnalysisBudget):
        sim = data.simulation_result
        if sim is None and self.simulator is not None:
            try:
                sim = await run_bounded(
                    self.simulator.simulate(data),
                    budget.remaining_seconds(),
                    name="simulate",
                )
            except Exception as e:
                logger.warning(f"[Guardian] Simulation failed for {data.function_name}: {e}")
                warnings.add(Warnings.simulation_failed(str(e) or type(e).__name__))
                return data, SimulationStatus.FAILED
            data = data.model_copy(update={"simulation_result": sim})

        if sim is None:
            warnings.add(Warnings.simulation_unavailable())
            return data, SimulationStatus.SKIPPED
        if not sim.success:
            error = str(sim.error) if sim.error is not None else None
            warnings.add(Warnings.simulation_failed(error))
            return data, SimulationStatus.FAILED
        return data, SimulationStatus.SUCCESS

    async def _verify_bytecode(self, data: AnalysisData, warnings: WarningCollector, budget: AnalysisBudget) -> None:
        if self.bytecode_lookup is None:
            return
        try:
            module = await run_bounded(
                self.bytecode_lookup.fetch_module(data.module_address, data.module_name),
                budget.allot(self.config.analysis.bytecode_timeout),
                name="bytecode_lookup",
            )
        except Exception as e:
            logger.warning(f"[Guardian] Bytecode lookup failed for {data.module_id}: {e}")
            warnings.add(Warnings.bytecode_lookup_failed(str(e) or type(e).__name__))
            return

        if not module.exists:
            warnings.add(Warnings.module_not_found())
            return
        if module.function_names and data.function_base_name not in module.function_names:
            warnings.add(Warnings.function_not_found(data.function_base_name))
            return

        simulated = data.simulation_result.bytecode_hash if data.simulation_result else None
        if simulated and module.bytecode_hash:
            if normalize_hash(simulated) != normalize_hash(module.bytecode_hash):
                warnings.add(Warnings.bytecode_mismatch(simulated, module.bytecode_hash))

    async def _persist(self, response: GuardianCheckResponse) -> GuardianCheckResponse:
        if self.store is None:
            logger.warning("[Guardian] Persistence requested but no share store configured")
            return response
        try:
            return await self.store.save(response)
        except GuardianError as e:
            logger.error(f"[Guardian] Could not persist report: {e}")
            return response

    # ------------------------------------------------------------------
    # Shared reports
    # ------------------------------------------------------------------

    async def get_shared(self, share_id: str, now: Optional[datetime] = None) -> GuardianCheckResponse:
        """
        Re-serve a persisted report with its freshness computed for `now`.

        Nothing is written back: the stored report and its created_at stay
        exactly as saved.
        """
        stored = await self.store.get(share_id, now) if self.store is not None else None
        if stored is None:
            raise GuardianError(
                ErrorCode.STORE_NOT_FOUND,
                f"No shared report '{share_id}'",
                details={"share_id": share_id},
            )

        freshness = classify_freshness(stored.created_at, now)
        warnings: List = list(stored.warnings)
        if freshness.age_seconds >= DAY:
            warnings.append(Warnings.stale_result(freshness))

        return stored.model_copy(update={"freshness": freshness, "warnings": sort_warnings(warnings)})
