"""
guardian/patterns/strategies.py
Named custom matching strategies.

Some risks cannot be expressed as regexes and predicates: the severity
depends on how large a removal is, or a verdict needs arithmetic across
several arguments. Those patterns name a strategy here instead. A strategy
is a class registered at import time under a stable name; the registry
refuses any definition that names a strategy which does not exist.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Type

from guardian.contracts.schemas import AnalysisData, PatternMatchResult, RiskSeverity
from guardian.patterns.criteria import to_number

if TYPE_CHECKING:
    from guardian.patterns.criteria import RiskPatternDefinition

logger = logging.getLogger(__name__)

_STRATEGIES: Dict[str, "MatchStrategy"] = {}


class MatchStrategy(ABC):
    """A custom matcher. Returning None means the pattern does not apply."""

    name: str = ""

    @abstractmethod
    def evaluate(
        self, data: AnalysisData, definition: "RiskPatternDefinition"
    ) -> Optional[PatternMatchResult]:
        ...

    def result(
        self,
        definition: "RiskPatternDefinition",
        *,
        severity: Optional[RiskSeverity] = None,
        confidence: Optional[float] = None,
        evidence: Optional[Dict[str, Any]] = None,
    ) -> PatternMatchResult:
        value = definition.baseline_confidence if confidence is None else confidence
        return PatternMatchResult(
            matched=True,
            pattern_id=definition.id,
            category=definition.category,
            severity=severity or definition.severity,
            confidence=max(0.0, min(1.0, value)),
            evidence=evidence,
        )


def register_strategy(cls: Type[MatchStrategy]) -> Type[MatchStrategy]:
    """Class decorator: instantiate the strategy and make it resolvable by name."""
    if not cls.name:
        raise ValueError(f"{cls.__name__} has no strategy name")
    if cls.name in _STRATEGIES:
        raise ValueError(f"Strategy '{cls.name}' registered twice")
    _STRATEGIES[cls.name] = cls()
    return cls


def get_strategy(name: str) -> Optional[MatchStrategy]:
    return _STRATEGIES.get(name)


def available_strategies() -> List[str]:
    return sorted(_STRATEGIES)


def _base_name(data: AnalysisData) -> str:
    return data.function_base_name.lower()


def _numeric_arguments(data: AnalysisData) -> List[Decimal]:
    numbers = []
    for arg in data.arguments:
        number = to_number(arg)
        if number is not None:
            numbers.append(number)
    return numbers


def extract_numeric(value: Any) -> Optional[Decimal]:
    """Pull a number out of a state value: bare numbers, numeric text, or {value|amount: ...}."""
    number = to_number(value)
    if number is not None:
        return number
    if isinstance(value, str):
        digits = re.search(r"(\d+)", value)
        return Decimal(digits.group(1)) if digits else None
    if isinstance(value, dict):
        for key in ("value", "amount"):
            if key in value:
                return extract_numeric(value[key])
    return None


# ============================================================================
# Rug pull strategies
# ============================================================================

@register_strategy
class LiquidityRemovalStrategy(MatchStrategy):
    name = "liquidity_removal"

    MARKERS = ("remove_liquidity", "withdraw_liquidity", "burn_lp", "exit_pool")
    LARGE_REMOVAL = Decimal(1_000_000_000)

    def evaluate(self, data, definition):
        fn = _base_name(data)
        if not any(marker in fn for marker in self.MARKERS):
            return None

        is_large = any(n > self.LARGE_REMOVAL for n in _numeric_arguments(data))
        execution = data.execution
        has_lp_event = bool(execution) and any(
            re.search(r"liquidity|lp|pool", e.type, re.IGNORECASE) for e in execution.events
        )
        return self.result(
            definition,
            severity=RiskSeverity.CRITICAL if is_large else RiskSeverity.HIGH,
            confidence=0.90 if is_large else 0.75,
            evidence={
                "function_name": data.function_name,
                "is_large_removal": is_large,
                "has_lp_event": has_lp_event,
            },
        )


@register_strategy
class TokenMintStrategy(MatchStrategy):
    name = "token_mint"

    MARKERS = ("mint", "issue", "create_token", "increase_supply")
    LARGE_MINT = Decimal(1_000_000_000_000)

    def evaluate(self, data, definition):
        fn = _base_name(data)
        if not any(marker in fn for marker in self.MARKERS):
            return None

        amount = next((n for n in _numeric_arguments(data) if n > self.LARGE_MINT), None)
        evidence: Dict[str, Any] = {
            "function_name": data.function_name,
            "is_large_mint": amount is not None,
        }
        if amount is not None:
            evidence["mint_amount"] = str(amount)
        return self.result(
            definition,
            severity=RiskSeverity.CRITICAL if amount is not None else RiskSeverity.HIGH,
            confidence=0.90 if amount is not None else 0.70,
            evidence=evidence,
        )


@register_strategy
class FeeChangeStrategy(MatchStrategy):
    name = "fee_change"

    MARKERS = ("fee", "tax", "commission")
    # Basis points; 1000 bps = 10%
    HIGH_FEE_BPS = Decimal(1000)

    def evaluate(self, data, definition):
        fn = _base_name(data)
        if not any(marker in fn for marker in self.MARKERS):
            return None

        high_fee = any(n > self.HIGH_FEE_BPS for n in _numeric_arguments(data))
        return self.result(
            definition,
            severity=RiskSeverity.CRITICAL if high_fee else RiskSeverity.HIGH,
            confidence=0.80,
            evidence={
                "function_name": data.function_name,
                "potential_high_fee": high_fee,
                "fee_arguments": list(data.arguments),
            },
        )


# ============================================================================
# Cost strategies
# ============================================================================

@register_strategy
class SwapSlippageStrategy(MatchStrategy):
    """
    Estimate slippage from (amount_in, min_out) style arguments.

    The first argument is taken as the input amount and the first later
    argument that is positive and smaller as the minimum output.
    """

    name = "swap_slippage"

    MARKERS = ("swap", "exchange", "trade")
    HIGH_PERCENT = Decimal(5)
    CRITICAL_PERCENT = Decimal(20)

    def evaluate(self, data, definition):
        fn = _base_name(data)
        if not any(marker in fn for marker in self.MARKERS):
            return None

        amount_in = to_number(data.arguments[0]) if data.arguments else None
        min_out = None
        if amount_in is not None and amount_in > 0:
            for arg in data.arguments[1:]:
                value = to_number(arg)
                if value is not None and 0 < value < amount_in:
                    min_out = value
                    break

        if amount_in is not None and min_out is not None:
            percent = ((amount_in - min_out) * 100 / amount_in).quantize(Decimal("0.01"))
            if percent > self.HIGH_PERCENT:
                return self.result(
                    definition,
                    severity=RiskSeverity.CRITICAL if percent > self.CRITICAL_PERCENT else RiskSeverity.HIGH,
                    confidence=0.85,
                    evidence={
                        "amount_in": str(amount_in),
                        "min_out": str(min_out),
                        "estimated_slippage": f"{percent}%",
                    },
                )
            return None

        return self.result(
            definition,
            severity=RiskSeverity.LOW,
            confidence=0.50,
            evidence={
                "function_name": data.function_name,
                "estimated_slippage": "unknown",
                "note": "Swap detected but slippage parameters unclear",
            },
        )


# ============================================================================
# Execution-trace strategies
# ============================================================================

@register_strategy
class LargeStateChangeStrategy(MatchStrategy):
    name = "large_state_change"

    # 1e18: one whole token at 18 decimals
    LARGE_DELTA = Decimal(10) ** 18

    def evaluate(self, data, definition):
        execution = data.execution
        if execution is None:
            return None

        large_changes = []
        for change in execution.state_changes:
            if change.type != "modify" or change.before is None or change.after is None:
                continue
            old = extract_numeric(change.before)
            new = extract_numeric(change.after)
            if old is None or new is None:
                continue
            delta = abs(new - old)
            if delta > self.LARGE_DELTA:
                large_changes.append({
                    "resource": change.resource,
                    "old_value": str(old),
                    "new_value": str(new),
                    "change_magnitude": str(delta),
                })

        if not large_changes:
            return None
        return self.result(
            definition,
            confidence=0.70,
            evidence={"large_changes": large_changes, "count": len(large_changes)},
        )


@register_strategy
class MultiRecipientTransferStrategy(MatchStrategy):
    name = "multi_recipient_transfer"

    MARKERS = ("batch", "multi", "airdrop", "distribute")

    def evaluate(self, data, definition):
        fn = _base_name(data)
        is_batch = any(marker in fn for marker in self.MARKERS)

        execution = data.execution
        transfer_events = []
        if execution is not None:
            transfer_events = [
                e for e in execution.events
                if re.search(r"transfer|coin.*deposit|withdraw", e.type, re.IGNORECASE)
            ]

        if not is_batch and len(transfer_events) <= 3:
            return None
        return self.result(
            definition,
            severity=RiskSeverity.HIGH if len(transfer_events) > 10 else RiskSeverity.MEDIUM,
            confidence=0.65,
            evidence={
                "function_name": data.function_name,
                "transfer_count": len(transfer_events),
                "is_batch_function": is_batch,
            },
        )


@register_strategy
class SelfReferenceStrategy(MatchStrategy):
    """Repeated events emitted by the called module, a hint of re-entry."""

    name = "self_reference"

    def evaluate(self, data, definition):
        execution = data.execution
        if execution is None:
            return None

        module_events = [e.type for e in execution.events if data.module_address in e.type]
        unique = set(module_events)
        if len(module_events) < 2 or len(module_events) == len(unique):
            return None
        return self.result(
            definition,
            confidence=0.60,
            evidence={
                "module_address": data.module_address,
                "event_count": len(module_events),
                "unique_event_types": len(unique),
            },
        )
