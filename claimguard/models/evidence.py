"""
Evidence Models - Per-source verification results and evidence chains

SourceEvidence is one verifier's answer for one claim. An EvidenceChain
combines all answers for a claim into a verdict, a confidence and a
human-readable explanation.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .claim import Claim, ClaimType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VerificationSource(str, Enum):
    """Independent sources a claim can be checked against"""
    TRUTHPACK = "truthpack"
    PACKAGE_MANIFEST = "package_manifest"
    FILESYSTEM = "filesystem"
    PATTERN_MATCH = "pattern_match"
    VERSION_CONTROL = "version_control"
    TYPE_CHECKER = "type_checker"
    RUNTIME = "runtime"


# Fixed trust multiplier per source used when aggregating evidence
SOURCE_RELIABILITY: Dict[VerificationSource, float] = {
    VerificationSource.RUNTIME: 0.99,
    VerificationSource.PACKAGE_MANIFEST: 0.99,
    VerificationSource.TYPE_CHECKER: 0.98,
    VerificationSource.TRUTHPACK: 0.95,
    VerificationSource.PATTERN_MATCH: 0.90,
    VerificationSource.FILESYSTEM: 0.85,
    VerificationSource.VERSION_CONTROL: 0.80,
}


class Verdict(str, Enum):
    """Five-level outcome of combining evidence for a claim"""
    CONFIRMED = "confirmed"
    LIKELY = "likely"
    UNCERTAIN = "uncertain"
    UNLIKELY = "unlikely"
    DISMISSED = "dismissed"


class SourceEvidence(BaseModel):
    """
    One source's verdict on one claim.

    Evidence carrying an ``error`` means the verifier failed; it has zero
    evidentiary weight but never aborts the batch it belongs to.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    source: VerificationSource
    verified: bool
    confidence: float = Field(..., ge=0.0, le=1.0)
    details: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
    timestamped_at: datetime = Field(default_factory=_utcnow)
    duration_ms: float = Field(default=0.0, ge=0.0)

    @property
    def is_valid(self) -> bool:
        """True when the evidence carries weight (no verifier error)"""
        return self.error is None


class StepLocation(BaseModel):
    """File position backing an evidence step"""

    model_config = ConfigDict(frozen=True)

    file: str
    line: Optional[int] = None
    column: Optional[int] = None


class EvidenceStep(BaseModel):
    """Single explained step of an evidence chain"""

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    step: int = Field(..., ge=1)
    source: VerificationSource
    claim: str
    evidence: str
    supports: bool
    confidence: float = Field(..., ge=0.0, le=1.0)
    location: Optional[StepLocation] = None
    metadata: Optional[Dict[str, Any]] = None


class EvidenceChain(BaseModel):
    """
    Explainable record of how a verdict was reached for one claim.

    Built once per claim per evaluation and never mutated afterwards.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    id: str
    claim_id: str
    claim_type: ClaimType
    claim_value: str
    verdict: Verdict
    confidence: float = Field(..., ge=0.0, le=1.0)
    chain: List[EvidenceStep] = Field(default_factory=list)
    reasoning: str
    created_at: datetime = Field(default_factory=_utcnow)
    duration_ms: float = Field(default=0.0, ge=0.0)


class ClaimVerification(BaseModel):
    """
    Everything gathered for a single claim during evidence resolution.

    ``found`` is true when at least one non-errored source verified the
    claim. ``calibrated_confidence`` is the chain confidence corrected by the
    calibrator, or the raw chain confidence when no calibration applies.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    claim: Claim
    evidence: List[SourceEvidence] = Field(default_factory=list)
    chain: EvidenceChain
    calibrated_confidence: float = Field(..., ge=0.0, le=1.0)
    found: bool
    consensus: bool = False
    discrepancies: List[str] = Field(default_factory=list)

    @property
    def claim_id(self) -> str:
        return self.claim.id
