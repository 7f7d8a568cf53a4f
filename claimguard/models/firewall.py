"""
Firewall Models - Requests, policy decisions, results and audit records

FirewallRequest and FirewallResult are transient; AuditEntry is the durable,
append-only record persisted as one JSON object per line.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .claim import Claim
from .evidence import ClaimVerification

MAX_CONTENT_LENGTH = 1_000_000


class FirewallMode(str, Enum):
    """How violations are handled"""
    OBSERVE = "observe"    # log only, always allow
    ENFORCE = "enforce"    # block on violation
    LOCKDOWN = "lockdown"  # block every write operation


class FirewallAction(str, Enum):
    """Filesystem action an agent wants to perform"""
    WRITE = "write"
    MODIFY = "modify"
    DELETE = "delete"
    EXECUTE = "execute"


WRITE_ACTIONS = frozenset(
    {FirewallAction.WRITE, FirewallAction.MODIFY, FirewallAction.DELETE, FirewallAction.EXECUTE}
)


class FirewallRequest(BaseModel):
    """An agent's proposed action, validated on construction"""

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    agent_id: Optional[str] = None
    action: FirewallAction
    target: str = Field(..., min_length=1, max_length=1000)
    content: str = Field(default="", max_length=MAX_CONTENT_LENGTH)
    context: Dict[str, Any] = Field(default_factory=dict)


class IntentType(str, Enum):
    CREATE = "create"
    MODIFY = "modify"
    DELETE = "delete"
    REFACTOR = "refactor"
    FIX = "fix"
    TEST = "test"


class IntentScope(str, Enum):
    FILE = "file"
    FUNCTION = "function"
    CLASS = "class"
    MODULE = "module"
    PROJECT = "project"


class Intent(BaseModel):
    """What the agent appears to be trying to do"""

    type: IntentType
    target: str
    scope: IntentScope
    description: str = ""
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)


class IntentValidation(BaseModel):
    """Outcome of intent validation"""

    valid: bool
    intent: Intent
    reason: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)


class PolicySeverity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class PolicyViolation(BaseModel):
    """A single rule finding"""

    model_config = ConfigDict(frozen=True)

    policy: str
    severity: PolicySeverity
    message: str
    claim: Optional[Claim] = None
    suggestion: Optional[str] = None


class PolicyDecision(BaseModel):
    """Allow/deny outcome of policy evaluation"""

    allowed: bool
    reason: str
    violations: List[PolicyViolation] = Field(default_factory=list)
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    violations_by_severity: Dict[str, int] = Field(default_factory=dict)
    evaluation_time_ms: Optional[float] = None


class UnblockAction(str, Enum):
    ADD = "add"
    MODIFY = "modify"
    VERIFY = "verify"
    RUN = "run"


class UnblockStep(BaseModel):
    order: int = Field(..., ge=1)
    action: UnblockAction
    target: str
    description: str
    command: Optional[str] = None
    auto_fixable: bool = False


class UnblockPlan(BaseModel):
    """Ordered, actionable steps that would lift a block"""

    violations: List[PolicyViolation] = Field(default_factory=list)
    steps: List[UnblockStep] = Field(default_factory=list)
    estimated_effort: str = "trivial"
    can_auto_fix: bool = False


class ViolationSummary(BaseModel):
    policy: str
    message: str
    severity: PolicySeverity


class FirewallResult(BaseModel):
    """Transient output of one ``evaluate()`` call"""

    allowed: bool
    decision: PolicyDecision
    claims: List[Claim] = Field(default_factory=list)
    evidence: List[ClaimVerification] = Field(default_factory=list)
    violations: List[ViolationSummary] = Field(default_factory=list)
    unblock_plan: Optional[UnblockPlan] = None
    audit_id: str
    mode: FirewallMode
    duration_ms: float = 0.0


class QuickCheckResult(BaseModel):
    """Cheap heuristic verdict used ahead of the full pipeline"""

    safe: bool
    concerns: List[str] = Field(default_factory=list)
    claims_checked: int = Field(default=0, ge=0)
    duration_ms: float = 0.0


class AuditEntry(BaseModel):
    """Durable record of one firewall decision"""

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    id: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    agent_id: str = "unknown"
    action: str
    target: str
    allowed: bool
    reason: str
    claim_count: int = Field(default=0, ge=0)
    violation_count: int = Field(default=0, ge=0)
    violations: List[str] = Field(default_factory=list)
    duration_ms: float = Field(default=0.0, ge=0.0)
    mode: FirewallMode


class AuditStats(BaseModel):
    """Aggregate view over audit entries"""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    total: int = 0
    allowed: int = 0
    blocked: int = 0
    by_violation: Dict[str, int] = Field(default_factory=dict)
    by_mode: Dict[str, int] = Field(default_factory=dict)
    avg_duration_ms: float = 0.0
