# ============================================================================
# guardian/patterns/criteria.py
# Pattern Definitions and Match Criteria
# ============================================================================
#
# PURPOSE:
# The declarative vocabulary every risk pattern is written in. A definition
# carries either structural criteria (regexes and predicates the matcher
# evaluates itself) or the name of a custom strategy that decides alone.
#
# KEY CONCEPTS:
# - Structural categories combine with AND; an absent category passes
# - Event patterns are either required (gate the match) or advisory
#   (only raise confidence)
# - Events, state changes and gas are execution facts: they can only be
#   satisfied by a successful simulation
#
# ============================================================================

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Optional, Pattern, Sequence, Tuple, Union

from guardian.contracts.schemas import RiskCategory, RiskSeverity

ArgumentPredicate = Callable[[Any, Sequence[Any]], bool]

DEFAULT_BASE_CONFIDENCE = 0.70

U64_MAX = 2 ** 64 - 1

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{1,64}$")


def rx(*patterns: str) -> Tuple[Pattern[str], ...]:
    """Compile case-insensitive patterns into the tuple shape criteria expect."""
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


# ============================================================================
# Criteria
# ============================================================================

@dataclass(frozen=True)
class EventPattern:
    type: Pattern[str]
    required: bool = False

    @classmethod
    def required_event(cls, pattern: str) -> "EventPattern":
        return cls(type=re.compile(pattern, re.IGNORECASE), required=True)

    @classmethod
    def advisory(cls, pattern: str) -> "EventPattern":
        return cls(type=re.compile(pattern, re.IGNORECASE), required=False)


@dataclass(frozen=True)
class ArgumentConstraint:
    predicate: ArgumentPredicate
    # An integer position, or "any" to accept the first argument that satisfies
    index: Union[int, str] = "any"
    label: str = ""


@dataclass(frozen=True)
class StateChangeConstraint:
    resource: Optional[Pattern[str]] = None
    # "create", "modify", "delete" or None for any kind
    kind: Optional[str] = None

    @classmethod
    def matching(cls, resource: str, kind: Optional[str] = None) -> "StateChangeConstraint":
        return cls(resource=re.compile(resource, re.IGNORECASE), kind=kind)


@dataclass(frozen=True)
class GasThreshold:
    min: Optional[int] = None
    max: Optional[int] = None

    def contains(self, gas_used: Optional[int]) -> bool:
        if gas_used is None:
            return False
        if self.min is not None and gas_used < self.min:
            return False
        if self.max is not None and gas_used > self.max:
            return False
        return True


@dataclass(frozen=True)
class StructuralCriteria:
    function_patterns: Tuple[Pattern[str], ...] = ()
    module_patterns: Tuple[Pattern[str], ...] = ()
    event_patterns: Tuple[EventPattern, ...] = ()
    argument_constraints: Tuple[ArgumentConstraint, ...] = ()
    state_change_constraints: Tuple[StateChangeConstraint, ...] = ()
    gas_threshold: Optional[GasThreshold] = None

    @property
    def required_events(self) -> Tuple[EventPattern, ...]:
        return tuple(e for e in self.event_patterns if e.required)

    @property
    def advisory_events(self) -> Tuple[EventPattern, ...]:
        return tuple(e for e in self.event_patterns if not e.required)

    @property
    def requires_execution(self) -> bool:
        return bool(
            self.required_events
            or self.state_change_constraints
            or self.gas_threshold is not None
        )

    @property
    def is_empty(self) -> bool:
        return not (
            self.function_patterns
            or self.module_patterns
            or self.event_patterns
            or self.argument_constraints
            or self.state_change_constraints
            or self.gas_threshold is not None
        )


@dataclass(frozen=True)
class CustomCriteria:
    """Delegates the whole decision to a strategy registered under `strategy`."""
    strategy: str


PatternCriteria = Union[StructuralCriteria, CustomCriteria]


# ============================================================================
# Definitions
# ============================================================================

@dataclass(frozen=True)
class IssueTemplate:
    title: str
    description: str
    recommendation: str


@dataclass(frozen=True)
class RiskPatternDefinition:
    id: str
    category: RiskCategory
    severity: RiskSeverity
    name: str
    description: str
    criteria: PatternCriteria
    issue_template: IssueTemplate
    version: int = 1
    base_confidence: Optional[float] = None

    @property
    def baseline_confidence(self) -> float:
        if self.base_confidence is None:
            return DEFAULT_BASE_CONFIDENCE
        return self.base_confidence

    @property
    def is_custom(self) -> bool:
        return isinstance(self.criteria, CustomCriteria)


# ============================================================================
# Argument helpers and predicate factories
# ============================================================================

def to_number(value: Any) -> Optional[Decimal]:
    """
    Interpret an argument as a number.

    Chain amounts arrive as ints or as decimal strings too large for a
    float, so strings are parsed exactly. Booleans are not numbers here.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(str(value)) if math.isfinite(value) else None
    if isinstance(value, str):
        text = value.strip()
        if not text or text.lower().startswith("0x"):
            return None
        try:
            number = Decimal(text)
        except InvalidOperation:
            return None
        return number if number.is_finite() else None
    return None


def is_address(value: Any) -> bool:
    return isinstance(value, str) and bool(_ADDRESS_RE.match(value))


def numeric_at_least(threshold: Union[int, Decimal]) -> ArgumentPredicate:
    limit = Decimal(threshold)

    def predicate(value: Any, _args: Sequence[Any]) -> bool:
        number = to_number(value)
        return number is not None and number >= limit

    return predicate


def numeric_equals(expected: Union[int, Decimal]) -> ArgumentPredicate:
    target = Decimal(expected)

    def predicate(value: Any, _args: Sequence[Any]) -> bool:
        number = to_number(value)
        return number is not None and number == target

    return predicate


def near_unlimited(fraction: float = 0.9) -> ArgumentPredicate:
    """True for amounts at or above `fraction` of u64 max (wallet "infinite" approvals)."""
    threshold = Decimal(U64_MAX) * Decimal(str(fraction))

    def predicate(value: Any, _args: Sequence[Any]) -> bool:
        number = to_number(value)
        return number is not None and number >= threshold

    return predicate


def address_argument() -> ArgumentPredicate:
    def predicate(value: Any, _args: Sequence[Any]) -> bool:
        return is_address(value)

    return predicate


def argument_count_at_least(count: int) -> ArgumentPredicate:
    def predicate(_value: Any, args: Sequence[Any]) -> bool:
        return len(args) >= count

    return predicate


def list_longer_than(length: int) -> ArgumentPredicate:
    def predicate(value: Any, _args: Sequence[Any]) -> bool:
        return isinstance(value, (list, tuple)) and len(value) > length

    return predicate
