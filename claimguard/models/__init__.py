"""
ClaimGuard Models
Data models for claims, evidence, calibration and firewall decisions
"""

from .claim import Claim, ClaimLocation, ClaimType
from .evidence import (
    SOURCE_RELIABILITY,
    ClaimVerification,
    EvidenceChain,
    EvidenceStep,
    SourceEvidence,
    StepLocation,
    Verdict,
    VerificationSource,
)
from .calibration import (
    CalibrationBucket,
    CalibrationDataPoint,
    CalibrationModel,
    StoredCalibrationData,
)
from .firewall import (
    WRITE_ACTIONS,
    AuditEntry,
    AuditStats,
    FirewallAction,
    FirewallMode,
    FirewallRequest,
    FirewallResult,
    Intent,
    IntentScope,
    IntentType,
    IntentValidation,
    PolicyDecision,
    PolicySeverity,
    PolicyViolation,
    QuickCheckResult,
    UnblockAction,
    UnblockPlan,
    UnblockStep,
    ViolationSummary,
)

__all__ = [
    # Claims
    "Claim",
    "ClaimLocation",
    "ClaimType",
    # Evidence
    "SOURCE_RELIABILITY",
    "ClaimVerification",
    "EvidenceChain",
    "EvidenceStep",
    "SourceEvidence",
    "StepLocation",
    "Verdict",
    "VerificationSource",
    # Calibration
    "CalibrationBucket",
    "CalibrationDataPoint",
    "CalibrationModel",
    "StoredCalibrationData",
    # Firewall
    "WRITE_ACTIONS",
    "AuditEntry",
    "AuditStats",
    "FirewallAction",
    "FirewallMode",
    "FirewallRequest",
    "FirewallResult",
    "Intent",
    "IntentScope",
    "IntentType",
    "IntentValidation",
    "PolicyDecision",
    "PolicySeverity",
    "PolicyViolation",
    "QuickCheckResult",
    "UnblockAction",
    "UnblockPlan",
    "UnblockStep",
    "ViolationSummary",
]
