"""
guardian/engine/matcher.py
Deterministic pattern matching.

Evaluates every registered definition against one AnalysisData and returns
the matched results in registry order. Matching is pure and synchronous:
the same data against the same registry always yields the same list.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from guardian.contracts.schemas import AnalysisData, PatternMatchResult, SimulationResult
from guardian.errors import ErrorCode, GuardianError
from guardian.patterns.criteria import (
    ArgumentConstraint,
    CustomCriteria,
    RiskPatternDefinition,
    StructuralCriteria,
)
from guardian.patterns.registry import PatternRegistry, get_registry
from guardian.patterns.strategies import get_strategy

logger = logging.getLogger(__name__)

ADVISORY_BOOST = 0.05
ADVISORY_CAP = 0.95


def parse_function_path(function_name: str) -> Tuple[str, str, str]:
    """Split `0xADDR::module::function` into its three parts."""
    parts = function_name.split("::") if function_name else []
    if len(parts) != 3 or not all(p.strip() for p in parts):
        raise GuardianError(
            ErrorCode.INPUT_FUNCTION_PATH,
            f"Invalid function path '{function_name}', expected address::module::function",
            details={"function_name": function_name},
        )
    address, module, function = parts
    return address, module, function


def build_analysis_data(
    function_name: str,
    type_arguments: Sequence[str] = (),
    arguments: Sequence[Any] = (),
    sender: Optional[str] = None,
    simulation_result: Optional[SimulationResult] = None,
) -> AnalysisData:
    address, module, function = parse_function_path(function_name)
    try:
        return AnalysisData(
            function_name=function_name,
            module_address=address,
            module_name=module,
            function_base_name=function,
            type_arguments=tuple(type_arguments),
            arguments=tuple(arguments),
            sender=sender,
            simulation_result=simulation_result,
        )
    except ValidationError as e:
        raise GuardianError(
            ErrorCode.INPUT_INVALID,
            "Invalid analysis input",
            details={"errors": e.errors(include_url=False)},
        )


class PatternMatcher:
    """Runs the registry against analysis data."""

    def __init__(self, registry: Optional[PatternRegistry] = None):
        self.registry = registry if registry is not None else get_registry()

    def match(self, data: AnalysisData) -> List[PatternMatchResult]:
        results: List[PatternMatchResult] = []
        for definition in self.registry:
            try:
                result = self._evaluate(definition, data)
            except Exception as e:
                # A faulty strategy or predicate must not take the other patterns down
                logger.warning(f"[PatternMatcher] Pattern {definition.id} failed on {data.function_name}: {e}")
                continue
            if result is not None and result.matched:
                results.append(result)
        return results

    def _evaluate(self, definition: RiskPatternDefinition, data: AnalysisData) -> Optional[PatternMatchResult]:
        criteria = definition.criteria
        if isinstance(criteria, CustomCriteria):
            strategy = get_strategy(criteria.strategy)
            if strategy is None:
                return None
            return strategy.evaluate(data, definition)
        if isinstance(criteria, StructuralCriteria):
            return self._match_structural(definition, criteria, data)
        return None

    def _match_structural(
        self,
        definition: RiskPatternDefinition,
        criteria: StructuralCriteria,
        data: AnalysisData,
    ) -> Optional[PatternMatchResult]:
        execution = data.execution
        if criteria.requires_execution and execution is None:
            return None

        evidence: Dict[str, Any] = {"function_name": data.function_name}

        if criteria.function_patterns:
            targets = (data.function_name, data.function_base_name)
            hit = next(
                (p for p in criteria.function_patterns if any(p.search(t) for t in targets)),
                None,
            )
            if hit is None:
                return None
            evidence["matched_function_pattern"] = hit.pattern

        if criteria.module_patterns:
            targets = (data.module_address, data.module_id)
            hit = next(
                (p for p in criteria.module_patterns if any(p.search(t) for t in targets)),
                None,
            )
            if hit is None:
                return None
            evidence["matched_module_pattern"] = hit.pattern

        if criteria.required_events:
            matched_events = []
            for pattern in criteria.required_events:
                event = next((e for e in execution.events if pattern.type.search(e.type)), None)
                if event is None:
                    return None
                matched_events.append(event.type)
            evidence["matched_events"] = matched_events

        if criteria.argument_constraints:
            matched_args = []
            for constraint in criteria.argument_constraints:
                index = _satisfying_argument(constraint, data.arguments)
                if index is None:
                    return None
                matched_args.append({
                    "index": index,
                    "value": data.arguments[index],
                    "constraint": constraint.label,
                })
            evidence["matched_arguments"] = matched_args

        if criteria.state_change_constraints:
            matched_changes = []
            for constraint in criteria.state_change_constraints:
                change = next(
                    (
                        c for c in execution.state_changes
                        if (constraint.kind is None or c.type == constraint.kind)
                        and (constraint.resource is None or constraint.resource.search(c.resource))
                    ),
                    None,
                )
                if change is None:
                    return None
                matched_changes.append({"type": change.type, "resource": change.resource})
            evidence["matched_state_changes"] = matched_changes

        if criteria.gas_threshold is not None:
            if not criteria.gas_threshold.contains(execution.gas_used):
                return None
            evidence["gas_used"] = execution.gas_used

        satisfied = 0
        if execution is not None:
            for pattern in criteria.advisory_events:
                if any(pattern.type.search(e.type) for e in execution.events):
                    satisfied += 1
        if satisfied:
            evidence["advisory_events_matched"] = satisfied

        return PatternMatchResult(
            matched=True,
            pattern_id=definition.id,
            category=definition.category,
            severity=definition.severity,
            confidence=_confidence(definition.baseline_confidence, satisfied),
            evidence=evidence,
        )


def _satisfying_argument(constraint: ArgumentConstraint, arguments: Sequence[Any]) -> Optional[int]:
    if constraint.index == "any":
        for i, value in enumerate(arguments):
            if constraint.predicate(value, arguments):
                return i
        return None
    index = int(constraint.index)
    if index < 0 or index >= len(arguments):
        return None
    return index if constraint.predicate(arguments[index], arguments) else None


def _confidence(baseline: float, advisory_hits: int) -> float:
    confidence = baseline
    if advisory_hits:
        confidence = max(baseline, min(baseline + ADVISORY_BOOST * advisory_hits, ADVISORY_CAP))
    return round(max(0.0, min(1.0, confidence)), 4)
