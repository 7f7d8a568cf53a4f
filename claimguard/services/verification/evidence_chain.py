"""
Evidence chain builder

Turns the evidence gathered for one claim into a weighted confidence, a
verdict and a short prose explanation. Every decision the firewall makes can
be traced back to the chain built here.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from claimguard.models import (
    SOURCE_RELIABILITY,
    Claim,
    ClaimType,
    EvidenceChain,
    EvidenceStep,
    SourceEvidence,
    StepLocation,
    Verdict,
    VerificationSource,
)

# (min confidence, min verified ratio, verdict), checked top to bottom
VERDICT_LADDER: Tuple[Tuple[float, float, Verdict], ...] = (
    (0.9, 0.8, Verdict.CONFIRMED),
    (0.7, 0.6, Verdict.LIKELY),
    (0.3, 0.3, Verdict.UNCERTAIN),
    (0.1, 0.0, Verdict.UNLIKELY),
)

VERDICT_SENTENCES: Dict[Verdict, str] = {
    Verdict.CONFIRMED: "Multiple reliable sources confirm this claim is valid.",
    Verdict.LIKELY: "Evidence suggests this claim is probably valid, but could not be fully confirmed.",
    Verdict.UNCERTAIN: "Insufficient evidence to determine validity. Manual review recommended.",
    Verdict.UNLIKELY: "Limited supporting evidence found. This may be a hallucination.",
    Verdict.DISMISSED: "No supporting evidence found. This is likely a hallucination that should be fixed.",
}

CLAIM_DESCRIPTIONS: Dict[ClaimType, str] = {
    ClaimType.IMPORT: "Code imports module '{}'",
    ClaimType.FUNCTION_CALL: "Code calls function '{}'",
    ClaimType.TYPE_REFERENCE: "Code references type '{}'",
    ClaimType.API_ENDPOINT: "Code calls API endpoint '{}'",
    ClaimType.ENV_VARIABLE: "Code uses environment variable '{}'",
    ClaimType.FILE_REFERENCE: "Code references file '{}'",
    ClaimType.PACKAGE_DEPENDENCY: "Code depends on package '{}'",
}


@dataclass
class ChainBuilderConfig:
    include_metadata: bool = True
    max_reasoning_length: int = 500


def weighted_confidence(evidence: Sequence[SourceEvidence]) -> float:
    """Reliability-weighted mean of effective confidence over non-errored evidence."""
    weighted_sum = 0.0
    total_weight = 0.0
    for item in evidence:
        if not item.is_valid:
            continue
        weight = SOURCE_RELIABILITY.get(item.source, 0.5)
        effective = item.confidence if item.verified else 1.0 - item.confidence
        weighted_sum += effective * weight
        total_weight += weight

    if total_weight == 0:
        return 0.0
    return min(1.0, max(0.0, weighted_sum / total_weight))


def classify(confidence: float, evidence: Sequence[SourceEvidence]) -> Verdict:
    valid = [item for item in evidence if item.is_valid]
    if not valid:
        return Verdict.UNCERTAIN

    ratio = sum(1 for item in valid if item.verified) / len(valid)
    for min_confidence, min_ratio, verdict in VERDICT_LADDER:
        if confidence >= min_confidence and ratio >= min_ratio:
            return verdict
    return Verdict.DISMISSED


def describe_claim(claim: Claim) -> str:
    template = CLAIM_DESCRIPTIONS.get(claim.type)
    return template.format(claim.value) if template else f"Code claims '{claim.value}'"


def _describe_truthpack(evidence: SourceEvidence, claim: Claim) -> str:
    if evidence.verified:
        location = evidence.details.get("location")
        if isinstance(location, dict) and location.get("file"):
            return f"Found in truthpack at {location['file']}:{location.get('line')}"
        return f"Found in truthpack ({claim.type.value} registry)"
    return f"Not found in truthpack (searched {claim.type.value} definitions)"


def _describe_pattern(evidence: SourceEvidence, claim: Claim) -> str:
    if evidence.verified:
        match = evidence.details.get("matchedLine")
        return f'Found via pattern match: "{match[:60]}..."' if match else "Found via pattern match in codebase"
    return f"Not found via pattern match (searched {evidence.details.get('filesSearched', 'N/A')} files)"


def _describe_filesystem(evidence: SourceEvidence, claim: Claim) -> str:
    if evidence.verified:
        if evidence.details.get("foundIn"):
            return f"Declared in {evidence.details['foundIn']}"
        path = evidence.details.get("resolvedPath")
        return f"File exists at: {path}" if path else "File found in filesystem"
    return "File not found in filesystem"


def _describe_version_control(evidence: SourceEvidence, claim: Claim) -> str:
    return "Present in the git working tree" if evidence.verified else "Not found in version control"


def _describe_manifest(evidence: SourceEvidence, claim: Claim) -> str:
    if evidence.verified:
        if evidence.details.get("isBuiltin"):
            return "Node.js built-in module"
        version = evidence.details.get("version")
        group = evidence.details.get("dependencyType", "dependencies")
        return f"Found in {group}: version {version}" if version else "Found in package.json"
    return "Not found in package.json dependencies"


def _describe_type_checker(evidence: SourceEvidence, claim: Claim) -> str:
    if evidence.verified:
        defined_at = evidence.details.get("definedAt")
        return f"Type declarations confirm: defined at {defined_at}" if defined_at else "Type declarations are installed"
    return "Type information could not resolve the reference"


def _describe_runtime(evidence: SourceEvidence, claim: Claim) -> str:
    if evidence.verified:
        return "Set in the running process environment"
    return f"Runtime check failed: {evidence.details.get('reason', 'resource not accessible')}"


EVIDENCE_DESCRIBERS: Dict[VerificationSource, Callable[[SourceEvidence, Claim], str]] = {
    VerificationSource.TRUTHPACK: _describe_truthpack,
    VerificationSource.PATTERN_MATCH: _describe_pattern,
    VerificationSource.FILESYSTEM: _describe_filesystem,
    VerificationSource.VERSION_CONTROL: _describe_version_control,
    VerificationSource.PACKAGE_MANIFEST: _describe_manifest,
    VerificationSource.TYPE_CHECKER: _describe_type_checker,
    VerificationSource.RUNTIME: _describe_runtime,
}


def describe_evidence(evidence: SourceEvidence, claim: Claim) -> str:
    if evidence.error:
        return f"Error during verification: {evidence.error}"
    describer = EVIDENCE_DESCRIBERS.get(evidence.source)
    if describer is None:
        return "Verified" if evidence.verified else "Not verified"
    return describer(evidence, claim)


def extract_location(details: Dict[str, Any]) -> Optional[StepLocation]:
    location = details.get("location")
    if isinstance(location, dict) and location.get("file"):
        return StepLocation(file=str(location["file"]), line=location.get("line"), column=location.get("column"))

    file = details.get("file") or details.get("resolvedPath") or details.get("definedAt")
    if file:
        return StepLocation(file=str(file), line=details.get("line"))
    return None


class EvidenceChainBuilder:
    """Builds explainable evidence chains."""

    def __init__(self, config: Optional[ChainBuilderConfig] = None) -> None:
        self.config = config or ChainBuilderConfig()

    def build(
        self,
        claim: Claim,
        evidence: Sequence[SourceEvidence],
        started: Optional[float] = None,
    ) -> EvidenceChain:
        started = time.perf_counter() if started is None else started
        steps = self._steps(claim, evidence)
        confidence = weighted_confidence(evidence)
        verdict = classify(confidence, evidence)

        return EvidenceChain(
            id=f"chain-{claim.type.value}-{uuid.uuid4().hex[:12]}",
            claim_id=claim.id,
            claim_type=claim.type,
            claim_value=claim.value,
            verdict=verdict,
            confidence=confidence,
            chain=steps,
            reasoning=self._reasoning(claim, steps, verdict, confidence),
            duration_ms=max(0.0, (time.perf_counter() - started) * 1000),
        )

    def _steps(self, claim: Claim, evidence: Sequence[SourceEvidence]) -> List[EvidenceStep]:
        claim_description = describe_claim(claim)
        return [
            EvidenceStep(
                step=index,
                source=item.source,
                claim=claim_description,
                evidence=describe_evidence(item, claim),
                supports=item.verified and item.is_valid,
                confidence=item.confidence,
                location=extract_location(item.details),
                metadata=dict(item.details) if self.config.include_metadata else None,
            )
            for index, item in enumerate(evidence, start=1)
        ]

    def _reasoning(
        self,
        claim: Claim,
        steps: Sequence[EvidenceStep],
        verdict: Verdict,
        confidence: float,
    ) -> str:
        parts = [f'The claim "{claim.value}" ({claim.type.value}) was {verdict.value}.']

        supporting = [step.source.value for step in steps if step.supports]
        opposing = [step.source.value for step in steps if not step.supports]
        if supporting:
            parts.append(f"Supporting evidence from: {', '.join(supporting)}.")
        if opposing:
            parts.append(f"No evidence found in: {', '.join(opposing)}.")

        parts.append(f"Overall confidence: {round(confidence * 100)}%.")
        parts.append(VERDICT_SENTENCES[verdict])

        reasoning = " ".join(parts)
        limit = self.config.max_reasoning_length
        if len(reasoning) > limit:
            reasoning = reasoning[: limit - 3] + "..."
        return reasoning


def format_for_display(chain: EvidenceChain) -> str:
    """Multi-line rendering for terminals and logs."""
    lines = [
        f"┌─ Evidence Chain: {chain.id}",
        f"│  Claim: {chain.claim_value} ({chain.claim_type.value})",
        f"│  Verdict: {chain.verdict.value.upper()} ({round(chain.confidence * 100)}% confidence)",
        "│",
    ]

    for step in chain.chain:
        icon = "✓" if step.supports else "✗"
        lines.append(f"│  {step.step}. [{icon}] {step.source.value} ({round(step.confidence * 100)}%)")
        lines.append(f"│     Claim: {step.claim}")
        lines.append(f"│     Evidence: {step.evidence}")
        if step.location is not None:
            suffix = f":{step.location.line}" if step.location.line else ""
            lines.append(f"│     Location: {step.location.file}{suffix}")

    lines.append("│")
    lines.append(f"│  Reasoning: {chain.reasoning}")
    lines.append(f"└─ Duration: {round(chain.duration_ms)}ms")
    return "\n".join(lines)


def quick_chain(
    claim: Claim,
    verified: bool,
    source: VerificationSource,
    description: str,
) -> EvidenceChain:
    """Single-source chain for callers that already know the answer."""
    evidence = SourceEvidence(
        source=source,
        verified=verified,
        confidence=0.95 if verified else 0.05,
        details={"description": description},
    )
    return EvidenceChainBuilder().build(claim, [evidence])
