# ============================================================================
# guardian/patterns/registry.py
# Pattern Registry
# ============================================================================
#
# PURPOSE:
# Holds the ordered, read-only catalog of risk pattern definitions. Order is
# significant: it is the final tie-breaker when issues are ranked.
#
# KEY RESPONSIBILITIES:
# - Assemble the catalogs into one registry at startup
# - Refuse to start on duplicate ids, unknown strategies or malformed criteria
# - Lookup by id, filtering by category and summaries for the HTTP surface
#
# INTEGRATION:
# - Used by: guardian.engine.matcher, guardian.engine.aggregator, guardian.server
# - Depends on: guardian.patterns.criteria, guardian.patterns.strategies
#
# ============================================================================

from __future__ import annotations

import logging
from collections import Counter
from typing import Dict, Iterable, Iterator, List, Optional, Sequence

from guardian.contracts.schemas import RiskCategory
from guardian.errors import ErrorCode, GuardianError
from guardian.patterns import advanced, cost, exploit, permission, rug_pull
from guardian.patterns.criteria import CustomCriteria, RiskPatternDefinition, StructuralCriteria
from guardian.patterns.strategies import get_strategy

logger = logging.getLogger(__name__)

CATALOGS = (exploit, rug_pull, cost, permission, advanced)


class PatternRegistry:
    """Immutable, ordered collection of pattern definitions."""

    def __init__(self, definitions: Iterable[RiskPatternDefinition]):
        self._definitions = tuple(definitions)
        self._by_id: Dict[str, RiskPatternDefinition] = {}
        self._order: Dict[str, int] = {}

        for position, definition in enumerate(self._definitions):
            _validate(definition)
            if definition.id in self._by_id:
                raise GuardianError(
                    ErrorCode.REGISTRY_DUPLICATE_ID,
                    f"Duplicate pattern id '{definition.id}'",
                    details={"pattern_id": definition.id},
                )
            self._by_id[definition.id] = definition
            self._order[definition.id] = position

    def __iter__(self) -> Iterator[RiskPatternDefinition]:
        return iter(self._definitions)

    def __len__(self) -> int:
        return len(self._definitions)

    def __contains__(self, pattern_id: object) -> bool:
        return pattern_id in self._by_id

    @property
    def definitions(self) -> Sequence[RiskPatternDefinition]:
        return self._definitions

    def get(self, pattern_id: str) -> Optional[RiskPatternDefinition]:
        return self._by_id.get(pattern_id)

    def index_of(self, pattern_id: str) -> int:
        """Registry position of a pattern; unknown ids sort after every known one."""
        return self._order.get(pattern_id, len(self._definitions))

    def by_category(self, category: RiskCategory) -> List[RiskPatternDefinition]:
        return [d for d in self._definitions if d.category == category]

    def summary(self) -> List[Dict[str, object]]:
        return [
            {
                "id": d.id,
                "name": d.name,
                "category": d.category.value,
                "severity": d.severity.value,
                "description": d.description,
                "version": d.version,
            }
            for d in self._definitions
        ]

    def stats(self) -> Dict[str, object]:
        return {
            "total": len(self._definitions),
            "by_category": dict(Counter(d.category.value for d in self._definitions)),
            "by_severity": dict(Counter(d.severity.value for d in self._definitions)),
            "custom": sum(1 for d in self._definitions if d.is_custom),
        }


def _validate(definition: RiskPatternDefinition) -> None:
    criteria = definition.criteria
    if isinstance(criteria, CustomCriteria):
        if get_strategy(criteria.strategy) is None:
            raise GuardianError(
                ErrorCode.REGISTRY_UNKNOWN_STRATEGY,
                f"Pattern '{definition.id}' names unknown strategy '{criteria.strategy}'",
                details={"pattern_id": definition.id, "strategy": criteria.strategy},
            )
    elif isinstance(criteria, StructuralCriteria):
        if criteria.is_empty:
            raise GuardianError(
                ErrorCode.REGISTRY_INVALID,
                f"Pattern '{definition.id}' has no match criteria",
                details={"pattern_id": definition.id},
            )
    else:
        raise GuardianError(
            ErrorCode.REGISTRY_INVALID,
            f"Pattern '{definition.id}' has unsupported criteria {type(criteria).__name__}",
            details={"pattern_id": definition.id},
        )

    if not 0.0 <= definition.baseline_confidence <= 1.0:
        raise GuardianError(
            ErrorCode.REGISTRY_INVALID,
            f"Pattern '{definition.id}' base confidence outside [0, 1]",
            details={"pattern_id": definition.id, "base_confidence": definition.base_confidence},
        )


def load(definitions: Optional[Iterable[RiskPatternDefinition]] = None) -> PatternRegistry:
    """
    Build a registry from the built-in catalogs, or from explicit definitions.

    Raises GuardianError when the catalog is inconsistent; callers treat
    that as fatal at startup.
    """
    if definitions is None:
        definitions = [d for catalog in CATALOGS for d in catalog.PATTERNS]
    registry = PatternRegistry(definitions)
    logger.info(f"[PatternRegistry] Loaded {len(registry)} risk patterns")
    return registry


_registry: Optional[PatternRegistry] = None


def get_registry() -> PatternRegistry:
    """Process-wide registry, built on first use."""
    global _registry
    if _registry is None:
        _registry = load()
    return _registry
