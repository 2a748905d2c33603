"""Excessive cost patterns: gas, slippage, trade size, unprotected swaps, batches."""

from guardian.contracts.schemas import RiskCategory, RiskSeverity
from guardian.patterns.criteria import (
    ArgumentConstraint,
    CustomCriteria,
    GasThreshold,
    IssueTemplate,
    RiskPatternDefinition,
    StructuralCriteria,
    numeric_at_least,
    numeric_equals,
    rx,
)

# Typical simple transfers stay well under this many gas units
GAS_SPIKE = 500_000
GAS_EXTREME = 2_000_000

_GAS_TEMPLATE = IssueTemplate(
    title="High Gas Consumption",
    description=(
        "This transaction consumes {gas_used} gas units, significantly more than "
        "typical transactions. This could indicate complex operations or inefficient code."
    ),
    recommendation=(
        "Review if this gas usage is expected for the operation. Consider batching "
        "operations differently."
    ),
)

PATTERNS = [
    RiskPatternDefinition(
        id="cost:gas:spike",
        category=RiskCategory.EXCESSIVE_COST,
        severity=RiskSeverity.MEDIUM,
        name="High Gas Usage",
        description="Transaction uses unusually high gas",
        criteria=StructuralCriteria(gas_threshold=GasThreshold(min=GAS_SPIKE + 1, max=GAS_EXTREME)),
        issue_template=_GAS_TEMPLATE,
    ),
    RiskPatternDefinition(
        id="cost:gas:extreme",
        category=RiskCategory.EXCESSIVE_COST,
        severity=RiskSeverity.HIGH,
        name="Extreme Gas Usage",
        description="Transaction uses more than four times the usual gas",
        criteria=StructuralCriteria(gas_threshold=GasThreshold(min=GAS_EXTREME + 1)),
        issue_template=_GAS_TEMPLATE,
        base_confidence=0.80,
    ),
    RiskPatternDefinition(
        id="cost:slippage:high",
        category=RiskCategory.EXCESSIVE_COST,
        severity=RiskSeverity.HIGH,
        name="High Slippage Risk",
        description="Transaction may experience high slippage",
        criteria=CustomCriteria(strategy="swap_slippage"),
        issue_template=IssueTemplate(
            title="High Slippage Tolerance",
            description=(
                "This swap tolerates an estimated slippage of {estimated_slippage}. You "
                "may receive significantly less value than expected and the trade is "
                "exposed to front-running."
            ),
            recommendation=(
                "Reduce slippage tolerance. Use smaller trades or private transaction "
                "pools for large swaps."
            ),
        ),
    ),
    RiskPatternDefinition(
        id="cost:size:large_trade",
        category=RiskCategory.EXCESSIVE_COST,
        severity=RiskSeverity.MEDIUM,
        name="Large Transaction",
        description="Large transaction that may move market prices",
        criteria=StructuralCriteria(
            function_patterns=rx(r"::swap", r"::add_liquidity", r"::trade"),
            argument_constraints=(
                ArgumentConstraint(
                    predicate=numeric_at_least(100_000_000_001),
                    label="amount above 100 billion base units",
                ),
            ),
        ),
        issue_template=IssueTemplate(
            title="Large Transaction Size",
            description=(
                "This is a large trade that may significantly impact market prices and "
                "is an attractive target for MEV."
            ),
            recommendation="Consider splitting into smaller trades or using MEV protection.",
        ),
        base_confidence=0.65,
    ),
    RiskPatternDefinition(
        id="cost:dex:no_price_check",
        category=RiskCategory.EXCESSIVE_COST,
        severity=RiskSeverity.MEDIUM,
        name="No Price Protection",
        description="DEX interaction that accepts any output amount",
        criteria=StructuralCriteria(
            function_patterns=rx(r"::swap", r"::add_liquidity"),
            argument_constraints=(
                ArgumentConstraint(predicate=numeric_equals(0), label="zero minimum output"),
            ),
        ),
        issue_template=IssueTemplate(
            title="No Price Protection",
            description=(
                "One of the amount limits passed to this DEX call is zero, so the trade "
                "executes at whatever price the pool offers."
            ),
            recommendation="Set a realistic minimum output before signing.",
        ),
        base_confidence=0.60,
    ),
    RiskPatternDefinition(
        id="cost:batch:multiple_ops",
        category=RiskCategory.EXCESSIVE_COST,
        severity=RiskSeverity.LOW,
        name="Batch Operation",
        description="Multiple operations detected in single transaction",
        criteria=StructuralCriteria(function_patterns=rx(r"::batch", r"::multi", r"::bulk")),
        issue_template=IssueTemplate(
            title="Batch Operation Detected",
            description=(
                "This transaction performs multiple operations. Complex batches carry "
                "more risk if any single operation misbehaves."
            ),
            recommendation="Review every operation in the batch; they succeed or fail together.",
        ),
        base_confidence=0.60,
    ),
]
