"""Patterns that look at amounts, module identity and the execution trace."""

from guardian.contracts.schemas import RiskCategory, RiskSeverity
from guardian.patterns.criteria import (
    ArgumentConstraint,
    CustomCriteria,
    EventPattern,
    IssueTemplate,
    RiskPatternDefinition,
    StructuralCriteria,
    near_unlimited,
    rx,
)

PATTERNS = [
    RiskPatternDefinition(
        id="advanced:approval:unlimited",
        category=RiskCategory.EXPLOIT,
        severity=RiskSeverity.CRITICAL,
        name="Unlimited Token Approval",
        description="Unlimited token approval detected - allows spender to drain all tokens",
        criteria=StructuralCriteria(
            function_patterns=rx(
                r"::approve",
                r"::set_allowance",
                r"::increase_allowance",
                r"::grant_allowance",
            ),
            argument_constraints=(
                ArgumentConstraint(predicate=near_unlimited(), label="max-value amount"),
            ),
        ),
        issue_template=IssueTemplate(
            title="Unlimited Token Approval",
            description=(
                "This transaction grants unlimited token spending permission. The spender "
                "can transfer all your tokens at any time."
            ),
            recommendation=(
                "Only approve the exact amount needed and verify the spender address is trusted."
            ),
        ),
        base_confidence=0.95,
    ),
    RiskPatternDefinition(
        id="advanced:proxy:interaction",
        category=RiskCategory.PERMISSION,
        severity=RiskSeverity.HIGH,
        name="Proxy Contract Interaction",
        description="Interaction with proxy/upgradeable contract detected",
        criteria=StructuralCriteria(
            module_patterns=rx(r"proxy", r"upgradeable", r"upgrade_policy"),
        ),
        issue_template=IssueTemplate(
            title="Proxy Contract Detected",
            description=(
                "This transaction interacts with a proxy or upgradeable contract. The "
                "underlying implementation can be changed by the contract owner."
            ),
            recommendation=(
                "Verify the current implementation is trusted and whether upgrades are timelocked."
            ),
        ),
        base_confidence=0.65,
    ),
    RiskPatternDefinition(
        id="advanced:resource:destruction",
        category=RiskCategory.EXPLOIT,
        severity=RiskSeverity.HIGH,
        name="Resource Destruction",
        description="Move resource destruction or drop detected",
        criteria=StructuralCriteria(
            function_patterns=rx(
                r"::destroy",
                r"::delete",
                r"::drop",
                r"::burn_resource",
                r"::remove_resource",
            ),
            event_patterns=(EventPattern.advisory(r"destroy|delete|burn"),),
        ),
        issue_template=IssueTemplate(
            title="Resource Destruction Detected",
            description=(
                "This transaction permanently destroys a Move resource. Once destroyed, "
                "the resource and its data cannot be recovered."
            ),
            recommendation="Ensure this is intentional and check whether it affects other users.",
        ),
    ),
    RiskPatternDefinition(
        id="advanced:state:large_change",
        category=RiskCategory.EXPLOIT,
        severity=RiskSeverity.HIGH,
        name="Large Value State Change",
        description="Unusually large value change detected in state",
        criteria=CustomCriteria(strategy="large_state_change"),
        issue_template=IssueTemplate(
            title="Large Value State Change",
            description=(
                "This transaction changes {count} stored value(s) by unusually large "
                "amounts. This could indicate significant fund movements."
            ),
            recommendation="Review the state changes carefully and verify the amounts are expected.",
        ),
    ),
    RiskPatternDefinition(
        id="advanced:transfer:multi_recipient",
        category=RiskCategory.RUG_PULL,
        severity=RiskSeverity.MEDIUM,
        name="Multi-Recipient Transfer",
        description="Token transfers to multiple recipients detected",
        criteria=CustomCriteria(strategy="multi_recipient_transfer"),
        issue_template=IssueTemplate(
            title="Multi-Recipient Transfer",
            description=(
                "This transaction transfers tokens to multiple recipients. This can be "
                "legitimate (airdrops, payroll) but is also used for scams."
            ),
            recommendation="Be cautious of unsolicited airdrops from unknown protocols.",
        ),
    ),
    RiskPatternDefinition(
        id="advanced:callback:self_reference",
        category=RiskCategory.EXPLOIT,
        severity=RiskSeverity.HIGH,
        name="Self-Referential Call",
        description="Module calls back to itself which may indicate reentrancy",
        criteria=CustomCriteria(strategy="self_reference"),
        issue_template=IssueTemplate(
            title="Self-Referential Call Pattern",
            description=(
                "The same module emits repeated events during execution. This could "
                "indicate a reentrancy issue or a callback loop."
            ),
            recommendation="Review the call sequence and check for reentrancy guards.",
        ),
    ),
    RiskPatternDefinition(
        id="advanced:access:blocklist",
        category=RiskCategory.PERMISSION,
        severity=RiskSeverity.HIGH,
        name="Blocklist Operation",
        description="Token blacklist/whitelist modification detected",
        criteria=StructuralCriteria(
            function_patterns=rx(r"::blacklist", r"::whitelist", r"::block_address", r"::ban", r"::restrict"),
        ),
        issue_template=IssueTemplate(
            title="Blocklist Operation Detected",
            description=(
                "This transaction modifies an address blocklist or allowlist. Blocked "
                "addresses cannot interact with the token."
            ),
            recommendation="Consider whether you could be affected by this restriction.",
        ),
    ),
]
