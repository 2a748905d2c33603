"""Permission patterns: privileged calls, pauses, upgrades, role grants, timelock bypass."""

from guardian.contracts.schemas import RiskCategory, RiskSeverity
from guardian.patterns.criteria import (
    ArgumentConstraint,
    IssueTemplate,
    RiskPatternDefinition,
    StructuralCriteria,
    address_argument,
    rx,
)

PATTERNS = [
    RiskPatternDefinition(
        id="permission:admin:privileged_call",
        category=RiskCategory.PERMISSION,
        severity=RiskSeverity.HIGH,
        name="Admin Function Call",
        description="Privileged admin function detected",
        criteria=StructuralCriteria(
            function_patterns=rx(
                r"::set_",
                r"::update_",
                r"::admin_",
                r"::configure_",
                r"::initialize_",
                r"::modify_",
            ),
        ),
        issue_template=IssueTemplate(
            title="Admin Function Detected",
            description=(
                "{function_name} is an administrative function that requires elevated "
                "privileges and can significantly alter contract behavior."
            ),
            recommendation=(
                "Verify the sender has proper admin privileges and that this action is "
                "authorized through proper governance."
            ),
        ),
    ),
    RiskPatternDefinition(
        id="permission:pause:toggle",
        category=RiskCategory.PERMISSION,
        severity=RiskSeverity.MEDIUM,
        name="Pause Toggle",
        description="Contract pause state change detected",
        criteria=StructuralCriteria(
            function_patterns=rx(
                r"::pause",
                r"::unpause",
                r"::freeze",
                r"::unfreeze",
                r"::halt",
                r"::resume",
                r"::stop",
            ),
        ),
        issue_template=IssueTemplate(
            title="Contract Pause State Change",
            description=(
                "This transaction changes the pause state of the contract. Pausing can "
                "lock user funds until the contract is unpaused."
            ),
            recommendation="Verify this is an authorized pause action.",
        ),
        base_confidence=0.75,
    ),
    RiskPatternDefinition(
        id="permission:upgrade:contract",
        category=RiskCategory.PERMISSION,
        severity=RiskSeverity.CRITICAL,
        name="Contract Upgrade",
        description="Contract upgrade or code change detected",
        criteria=StructuralCriteria(
            function_patterns=rx(
                r"::upgrade",
                r"::migrate",
                r"::set_implementation",
                r"::update_code",
                r"::publish",
            ),
        ),
        issue_template=IssueTemplate(
            title="Contract Upgrade Detected",
            description=(
                "Contract code is being upgraded or migrated. This can completely change "
                "contract behavior."
            ),
            recommendation=(
                "Review the new implementation. Ensure it was audited and that governance "
                "approved the upgrade."
            ),
        ),
        base_confidence=0.85,
    ),
    RiskPatternDefinition(
        id="permission:emergency:action",
        category=RiskCategory.PERMISSION,
        severity=RiskSeverity.HIGH,
        name="Emergency Action",
        description="Emergency function invoked",
        criteria=StructuralCriteria(
            function_patterns=rx(r"::emergency", r"::urgent", r"::critical", r"::rescue"),
        ),
        issue_template=IssueTemplate(
            title="Emergency Function Invoked",
            description=(
                "An emergency function is being called. Emergency functions typically "
                "bypass normal checks."
            ),
            recommendation="Verify this is a legitimate emergency response.",
        ),
    ),
    RiskPatternDefinition(
        id="permission:role:grant",
        category=RiskCategory.PERMISSION,
        severity=RiskSeverity.HIGH,
        name="Permission Grant",
        description="Permission or role grant detected",
        criteria=StructuralCriteria(
            function_patterns=rx(
                r"::grant_role",
                r"::add_role",
                r"::set_role",
                r"::authorize",
                r"::add_operator",
                r"::add_minter",
            ),
            argument_constraints=(
                ArgumentConstraint(predicate=address_argument(), label="grantee address"),
            ),
        ),
        issue_template=IssueTemplate(
            title="Permission/Role Grant Detected",
            description=(
                "Permissions or roles are being granted to an address, giving it elevated "
                "privileges within the contract."
            ),
            recommendation=(
                "Verify the recipient address is trusted and review what the role allows."
            ),
        ),
        base_confidence=0.80,
    ),
    RiskPatternDefinition(
        id="permission:config:change",
        category=RiskCategory.PERMISSION,
        severity=RiskSeverity.MEDIUM,
        name="Configuration Change",
        description="Protocol configuration change detected",
        criteria=StructuralCriteria(
            function_patterns=rx(r"::set_config", r"::update_config", r"::set_param", r"::configure"),
        ),
        issue_template=IssueTemplate(
            title="Configuration Change Detected",
            description="Protocol configuration parameters are being modified.",
            recommendation="Review the new values and confirm the change is authorized.",
        ),
    ),
    RiskPatternDefinition(
        id="permission:timelock:bypass",
        category=RiskCategory.PERMISSION,
        severity=RiskSeverity.CRITICAL,
        name="Timelock Bypass",
        description="Possible timelock bypass detected",
        criteria=StructuralCriteria(
            function_patterns=rx(r"::skip_timelock", r"::bypass", r"::force_execute", r"::immediate"),
        ),
        issue_template=IssueTemplate(
            title="Timelock Bypass Detected",
            description=(
                "This transaction appears to bypass timelock delays that exist to give "
                "users time to react to governance decisions."
            ),
            recommendation="Verify the bypass is authorized for an emergency.",
        ),
        base_confidence=0.85,
    ),
]
