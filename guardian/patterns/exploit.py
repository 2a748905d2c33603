"""Exploit patterns: approvals that hand over spending rights, drains disguised as claims."""

from guardian.contracts.schemas import RiskCategory, RiskSeverity
from guardian.patterns.criteria import (
    EventPattern,
    IssueTemplate,
    RiskPatternDefinition,
    StateChangeConstraint,
    StructuralCriteria,
    rx,
)

PATTERNS = [
    RiskPatternDefinition(
        id="exploit:approval:drain",
        category=RiskCategory.EXPLOIT,
        severity=RiskSeverity.HIGH,
        name="Spending Approval",
        description="Grants a third party the right to move the sender's tokens",
        criteria=StructuralCriteria(
            function_patterns=rx(
                r"::approve",
                r"::set_allowance",
                r"::increase_allowance",
                r"::grant_allowance",
                r"::delegate_spend",
            ),
            event_patterns=(EventPattern.advisory(r"approv"),),
        ),
        issue_template=IssueTemplate(
            title="Token Spending Approval",
            description=(
                "{function_name} lets another address spend tokens on your behalf. "
                "Approval phishing is the most common way wallets are drained."
            ),
            recommendation=(
                "Confirm you recognise the spender. Approve only the amount you need "
                "and revoke unused approvals."
            ),
        ),
    ),
    RiskPatternDefinition(
        id="exploit:claim:withdraw_drain",
        category=RiskCategory.EXPLOIT,
        severity=RiskSeverity.HIGH,
        name="Claim That Withdraws",
        description="A claim or airdrop call that withdraws coins from the sender",
        criteria=StructuralCriteria(
            function_patterns=rx(r"::claim", r"::airdrop", r"::redeem_reward", r"::collect_reward"),
            event_patterns=(
                EventPattern.required_event(r"withdraw"),
                EventPattern.advisory(r"deposit"),
            ),
            state_change_constraints=(
                StateChangeConstraint.matching(r"coinstore|fungiblestore", kind="modify"),
            ),
        ),
        issue_template=IssueTemplate(
            title="Claim Withdraws Your Funds",
            description=(
                "This call is presented as a claim but the simulation shows coins "
                "leaving your account. Fake airdrop claims are a common drain technique."
            ),
            recommendation="Do not sign unless you expected to pay for this claim.",
        ),
        base_confidence=0.80,
    ),
    RiskPatternDefinition(
        id="exploit:flash_loan:borrow",
        category=RiskCategory.EXPLOIT,
        severity=RiskSeverity.HIGH,
        name="Flash Loan",
        description="Borrows and repays within one transaction",
        criteria=StructuralCriteria(
            function_patterns=rx(r"flash_?loan", r"::flash_borrow", r"::flash_swap"),
            event_patterns=(
                EventPattern.advisory(r"flash"),
                EventPattern.advisory(r"repay"),
            ),
        ),
        issue_template=IssueTemplate(
            title="Flash Loan Detected",
            description=(
                "This transaction takes an uncollateralised flash loan. Flash loans are "
                "a building block of price-manipulation exploits."
            ),
            recommendation="Unless you are running your own strategy, do not sign.",
        ),
    ),
    RiskPatternDefinition(
        id="exploit:capability:created",
        category=RiskCategory.EXPLOIT,
        severity=RiskSeverity.HIGH,
        name="Capability Created",
        description="A signer or admin capability is created during execution",
        criteria=StructuralCriteria(
            state_change_constraints=(
                StateChangeConstraint.matching(r"capability", kind="create"),
            ),
        ),
        issue_template=IssueTemplate(
            title="New Capability Granted",
            description=(
                "Executing this transaction creates a capability resource. Whoever holds "
                "a capability can act with the authority it represents."
            ),
            recommendation="Check who receives the capability and what it permits.",
        ),
        base_confidence=0.75,
    ),
]
