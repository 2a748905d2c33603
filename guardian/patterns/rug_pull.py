"""Rug pull patterns: liquidity pulls, ownership moves, blacklists, mints, drains, fee hikes."""

from guardian.contracts.schemas import RiskCategory, RiskSeverity
from guardian.patterns.criteria import (
    CustomCriteria,
    EventPattern,
    IssueTemplate,
    RiskPatternDefinition,
    StructuralCriteria,
    rx,
)

PATTERNS = [
    RiskPatternDefinition(
        id="rugpull:lp:remove_liquidity",
        category=RiskCategory.RUG_PULL,
        severity=RiskSeverity.HIGH,
        name="Liquidity Removal",
        description="Large liquidity removal detected",
        criteria=CustomCriteria(strategy="liquidity_removal"),
        issue_template=IssueTemplate(
            title="Large Liquidity Removal Detected",
            description=(
                "This transaction removes liquidity from a pool. Large liquidity removals "
                "can significantly impact token price and may indicate a rug pull."
            ),
            recommendation=(
                "Verify this is an authorized action. Check if the sender is a trusted "
                "address and if this aligns with the project roadmap."
            ),
        ),
    ),
    RiskPatternDefinition(
        id="rugpull:ownership:transfer",
        category=RiskCategory.RUG_PULL,
        severity=RiskSeverity.CRITICAL,
        name="Ownership Transfer",
        description="Contract ownership transfer detected",
        criteria=StructuralCriteria(
            function_patterns=rx(
                r"::transfer_ownership",
                r"::set_owner",
                r"::set_admin",
                r"::change_owner",
                r"::renounce_ownership",
                r"::accept_ownership",
            ),
            event_patterns=(
                EventPattern.advisory(r"ownership|owner_?changed"),
                EventPattern.advisory(r"admin"),
            ),
        ),
        issue_template=IssueTemplate(
            title="Ownership Transfer Detected",
            description=(
                "Contract ownership is being transferred to a new address. This is a "
                "critical operation that could be a precursor to a rug pull."
            ),
            recommendation=(
                "Verify the new owner address is trusted. Check if this is part of a "
                "planned transition. Be cautious of unexpected ownership changes."
            ),
        ),
        base_confidence=0.85,
    ),
    RiskPatternDefinition(
        id="rugpull:blacklist:add",
        category=RiskCategory.RUG_PULL,
        severity=RiskSeverity.HIGH,
        name="Blacklist Addition",
        description="Address blacklisting detected",
        criteria=StructuralCriteria(
            function_patterns=rx(
                r"::blacklist",
                r"::block_address",
                r"::freeze_account",
                r"::ban_address",
                r"::add_to_blocklist",
            ),
        ),
        issue_template=IssueTemplate(
            title="Blacklist Function Called",
            description=(
                "This transaction adds addresses to a blacklist, preventing them from "
                "transacting. Tokens with blacklist functionality can lock holders out."
            ),
            recommendation=(
                "Be cautious of tokens with blacklist functionality. Verify this is a "
                "legitimate compliance action, not malicious blocking."
            ),
        ),
        base_confidence=0.80,
    ),
    RiskPatternDefinition(
        id="rugpull:mint:unlimited",
        category=RiskCategory.RUG_PULL,
        severity=RiskSeverity.HIGH,
        name="Token Minting",
        description="Large token minting detected",
        criteria=CustomCriteria(strategy="token_mint"),
        issue_template=IssueTemplate(
            title="Large Token Minting Detected",
            description=(
                "Tokens are being minted via {function_name}. Unrestricted minting can "
                "dilute token value and is a common rug pull vector."
            ),
            recommendation=(
                "Verify the minting is within expected parameters and follows the "
                "tokenomics. Check for minting caps or governance controls."
            ),
        ),
    ),
    RiskPatternDefinition(
        id="rugpull:emergency:drain",
        category=RiskCategory.RUG_PULL,
        severity=RiskSeverity.CRITICAL,
        name="Emergency Drain",
        description="Emergency withdrawal or fund drain detected",
        criteria=StructuralCriteria(
            function_patterns=rx(
                r"::emergency_withdraw",
                r"::drain",
                r"::rescue_funds",
                r"::recover_tokens",
                r"::sweep",
                r"::withdraw_all",
            ),
            event_patterns=(EventPattern.advisory(r"withdraw"),),
        ),
        issue_template=IssueTemplate(
            title="Emergency Fund Drain Detected",
            description=(
                "This transaction uses emergency withdrawal or fund recovery functions. "
                "These are high-risk operations that can drain protocol funds."
            ),
            recommendation=(
                "Verify this is a legitimate emergency action and that proper governance "
                "approval was obtained."
            ),
        ),
        base_confidence=0.85,
    ),
    RiskPatternDefinition(
        id="rugpull:fee:hidden_increase",
        category=RiskCategory.RUG_PULL,
        severity=RiskSeverity.HIGH,
        name="Fee Modification",
        description="Transaction fee modification detected",
        criteria=CustomCriteria(strategy="fee_change"),
        issue_template=IssueTemplate(
            title="Fee Modification Detected",
            description=(
                "Transaction fees are being modified. Hidden or excessive fee increases "
                "can extract value from users and indicate a honeypot."
            ),
            recommendation=(
                "Review the new fee structure. Fees above 5-10% are typically suspicious."
            ),
        ),
    ),
]
