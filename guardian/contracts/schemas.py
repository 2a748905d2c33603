"""
guardian/contracts/schemas.py
Pydantic models for everything that crosses a component boundary.

The analysis input (AnalysisData), the per-pattern outcome
(PatternMatchResult), user-facing findings (DetectedIssue), the
augmentation contract and the final GuardianCheckResponse all live here so
the matcher, aggregator, augmenter and assembler share one vocabulary.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class RiskCategory(str, Enum):
    EXPLOIT = "EXPLOIT"
    RUG_PULL = "RUG_PULL"
    EXCESSIVE_COST = "EXCESSIVE_COST"
    PERMISSION = "PERMISSION"


class RiskSeverity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        """Higher rank = more severe."""
        return _RISK_RANK[self]


_RISK_RANK = {
    RiskSeverity.LOW: 0,
    RiskSeverity.MEDIUM: 1,
    RiskSeverity.HIGH: 2,
    RiskSeverity.CRITICAL: 3,
}


class IssueSource(str, Enum):
    PATTERN = "pattern"
    LLM = "llm"


class WarningKind(str, Enum):
    SIMULATION_FAILED = "simulation_failed"
    LLM_SKIPPED = "llm_skipped"
    LLM_ERROR = "llm_error"
    LLM_RATE_LIMITED = "llm_rate_limited"
    BYTECODE_VERIFICATION_FAILED = "bytecode_verification_failed"
    PARTIAL_ANALYSIS = "partial_analysis"
    STALE_RESULT = "stale_result"


class WarningSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"

    @property
    def rank(self) -> int:
        return _WARNING_RANK[self]


_WARNING_RANK = {
    WarningSeverity.INFO: 0,
    WarningSeverity.WARNING: 1,
    WarningSeverity.ERROR: 2,
}


class SimulationStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class LLMStatus(str, Enum):
    USED = "used"
    NOT_NEEDED = "not_needed"
    SKIPPED = "skipped"
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    ERROR = "error"


# ---------------------------------------------------------------------------
# Simulation facts
# ---------------------------------------------------------------------------

class StateChange(BaseModel):
    """One resource write observed during simulation."""
    model_config = ConfigDict(frozen=True)

    type: Literal["create", "modify", "delete"]
    resource: str
    address: str = ""
    before: Any = None
    after: Any = None


class SimulationEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str
    data: Any = None
    sequence_number: int = 0


class SimulationResult(BaseModel):
    """Outcome of executing the transaction against a fork of chain state."""
    model_config = ConfigDict(frozen=True)

    success: bool
    gas_used: Optional[int] = Field(None, ge=0)
    state_changes: Tuple[StateChange, ...] = ()
    events: Tuple[SimulationEvent, ...] = ()
    error: Any = None
    # Hash of the module bytecode the simulator executed, when it reports one
    bytecode_hash: Optional[str] = None


class AnalysisData(BaseModel):
    """
    Everything known about one transaction before it is signed.

    Immutable: a single analysis run owns it and nothing downstream may
    change it.
    """
    model_config = ConfigDict(frozen=True)

    function_name: str = Field(..., min_length=1)
    module_address: str = Field(..., min_length=1)
    module_name: str = Field(..., min_length=1)
    function_base_name: str = Field(..., min_length=1)
    type_arguments: Tuple[str, ...] = ()
    arguments: Tuple[Any, ...] = ()
    sender: Optional[str] = None
    simulation_result: Optional[SimulationResult] = None

    @property
    def module_id(self) -> str:
        return f"{self.module_address}::{self.module_name}"

    @property
    def execution(self) -> Optional[SimulationResult]:
        """The simulation outcome, only when the simulation actually ran to success."""
        sim = self.simulation_result
        if sim is not None and sim.success:
            return sim
        return None


# ---------------------------------------------------------------------------
# Matching and issues
# ---------------------------------------------------------------------------

class PatternMatchResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    matched: bool = True
    pattern_id: str
    category: RiskCategory
    severity: RiskSeverity
    confidence: float = Field(..., ge=0.0, le=1.0)
    evidence: Optional[Dict[str, Any]] = None


class DetectedIssue(BaseModel):
    model_config = ConfigDict(frozen=True)

    pattern_id: str
    category: RiskCategory
    severity: RiskSeverity
    title: str
    description: str
    recommendation: str
    evidence: Optional[Dict[str, Any]] = None
    confidence: float = Field(..., ge=0.0, le=1.0)
    source: IssueSource


# ---------------------------------------------------------------------------
# Augmentation contract
# ---------------------------------------------------------------------------

class LLMAnalysisRequest(BaseModel):
    function_name: str
    module_address: str
    type_arguments: List[str] = Field(default_factory=list)
    arguments: List[Any] = Field(default_factory=list)
    state_changes: List[StateChange] = Field(default_factory=list)
    events: List[SimulationEvent] = Field(default_factory=list)
    pattern_results: List[PatternMatchResult] = Field(default_factory=list)
    gas_used: Optional[int] = None


class LLMAnalysisResponse(BaseModel):
    additional_issues: List[DetectedIssue] = Field(default_factory=list)
    risk_assessment: str = ""
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    reasoning: str = ""


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------

class GuardianAnalysisWarning(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: WarningKind
    severity: WarningSeverity
    message: str


class Freshness(BaseModel):
    """Read-time age classification of a persisted report."""
    model_config = ConfigDict(frozen=True)

    label: str
    severity: WarningSeverity
    age_seconds: int


class AnalysisTime(BaseModel):
    model_config = ConfigDict(frozen=True)

    pattern_match_ms: float = 0.0
    llm_analysis_ms: Optional[float] = None
    total_ms: float = 0.0


class GuardianCheckResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    issues: List[DetectedIssue] = Field(default_factory=list)
    warnings: List[GuardianAnalysisWarning] = Field(default_factory=list)
    risk_assessment: str
    analysis_complete: bool
    overall_risk: RiskSeverity = RiskSeverity.LOW
    risk_score: int = Field(0, ge=0, le=100)
    function_name: Optional[str] = None
    used_llm: bool = False
    llm_status: LLMStatus = LLMStatus.SKIPPED
    simulation_status: SimulationStatus = SimulationStatus.SKIPPED
    analysis_time: Optional[AnalysisTime] = None
    share_id: Optional[str] = None
    created_at: Optional[datetime] = None
    # Only populated when a persisted report is re-served
    freshness: Optional[Freshness] = None


__all__ = [
    "AnalysisData",
    "AnalysisTime",
    "DetectedIssue",
    "Freshness",
    "GuardianAnalysisWarning",
    "GuardianCheckResponse",
    "IssueSource",
    "LLMAnalysisRequest",
    "LLMAnalysisResponse",
    "LLMStatus",
    "PatternMatchResult",
    "RiskCategory",
    "RiskSeverity",
    "SimulationEvent",
    "SimulationResult",
    "SimulationStatus",
    "StateChange",
    "WarningKind",
    "WarningSeverity",
]
