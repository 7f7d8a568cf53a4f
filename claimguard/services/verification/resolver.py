"""
Evidence resolver

Fans each claim out to every verifier that supports its type, runs them
concurrently and folds the answers into a ``ClaimVerification``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from claimguard.models import (
    Claim,
    ClaimVerification,
    EvidenceChain,
    SourceEvidence,
    Verdict,
    VerificationSource,
)

from .base import SourceVerifier, VerificationContext
from .calibrator import ConfidenceCalibrator
from .evidence_chain import EvidenceChainBuilder
from .registry import verifiers_for

logger = logging.getLogger(__name__)

CONSENSUS_MIN_SOURCES = 2
CONSENSUS_MIN_CONFIDENCE = 0.7


class EvidenceTimeoutError(TimeoutError):
    """Raised when evidence resolution does not finish within its deadline."""


@dataclass
class ResolutionSummary:
    total: int = 0
    by_verdict: Dict[str, int] = field(default_factory=dict)
    by_source: Dict[str, int] = field(default_factory=dict)
    found: int = 0
    consensus: int = 0


def primary_source(evidence: Sequence[SourceEvidence]) -> Optional[VerificationSource]:
    """Source of the most confident evidence, or None when there is none."""
    if not evidence:
        return None
    return max(evidence, key=lambda item: item.confidence).source


class EvidenceResolver:
    """Gathers and aggregates evidence for claims."""

    def __init__(
        self,
        verifiers: Sequence[SourceVerifier],
        context: VerificationContext,
        calibrator: Optional[ConfidenceCalibrator] = None,
        chain_builder: Optional[EvidenceChainBuilder] = None,
        source_timeout: float = 5.0,
        parallel_limit: int = 10,
    ) -> None:
        self.verifiers = list(verifiers)
        self.context = context
        self.calibrator = calibrator
        self.chain_builder = chain_builder or EvidenceChainBuilder()
        self.source_timeout = source_timeout
        self.parallel_limit = max(1, parallel_limit)

    async def _run_verifier(
        self, verifier: SourceVerifier, claim: Claim, context: VerificationContext
    ) -> SourceEvidence:
        started = time.perf_counter()
        try:
            return await asyncio.wait_for(verifier.verify(claim, context), timeout=self.source_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"{verifier.name.value} timed out after {self.source_timeout}s on claim {claim.id}")
            return SourceEvidence(
                source=verifier.name,
                verified=False,
                confidence=0.0,
                error=f"Timed out after {self.source_timeout}s",
                duration_ms=(time.perf_counter() - started) * 1000,
            )

    async def prepare(self) -> None:
        """Load the calibration file off the event loop."""
        if self.calibrator is not None and not self.calibrator.loaded:
            await asyncio.to_thread(self.calibrator.ensure_loaded)

    async def resolve(self, claim: Claim, context: Optional[VerificationContext] = None) -> ClaimVerification:
        """Resolve one claim. ``context`` overrides the resolver default for this call."""
        started = time.perf_counter()
        await self.prepare()
        context = context or self.context
        applicable = verifiers_for(claim.type, self.verifiers)
        evidence: List[SourceEvidence] = list(
            await asyncio.gather(*(self._run_verifier(verifier, claim, context) for verifier in applicable))
        )

        chain = self.chain_builder.build(claim, evidence, started)
        verifying = [item for item in evidence if item.is_valid and item.verified]

        logger.debug(
            f"Claim {claim.id} ({claim.type.value}={claim.value}): {chain.verdict.value} "
            f"at {chain.confidence:.2f} from {len(evidence)} sources"
        )

        return ClaimVerification(
            claim=claim,
            evidence=evidence,
            chain=chain,
            calibrated_confidence=self._calibrated(claim, chain, verifying),
            found=bool(verifying),
            consensus=len(verifying) >= CONSENSUS_MIN_SOURCES and chain.confidence >= CONSENSUS_MIN_CONFIDENCE,
            discrepancies=self._discrepancies(evidence),
        )

    def _calibrated(self, claim: Claim, chain: EvidenceChain, verifying: Sequence[SourceEvidence]) -> float:
        if self.calibrator is None:
            return chain.confidence
        return self.calibrator.calibrate(chain.confidence, claim.type, primary_source(verifying))

    @staticmethod
    def _discrepancies(evidence: Sequence[SourceEvidence]) -> List[str]:
        discrepancies = [f"{item.source.value} failed: {item.error}" for item in evidence if not item.is_valid]

        valid = [item for item in evidence if item.is_valid]
        confirming = [item.source.value for item in valid if item.verified]
        denying = [item.source.value for item in valid if not item.verified]
        if confirming and denying:
            discrepancies.append(
                f"Sources disagree: {', '.join(confirming)} confirmed but {', '.join(denying)} did not"
            )
        return discrepancies

    async def resolve_all(
        self,
        claims: Sequence[Claim],
        timeout: Optional[float] = None,
        context: Optional[VerificationContext] = None,
    ) -> List[ClaimVerification]:
        """
        Resolve every claim, at most ``parallel_limit`` at a time.

        The whole step shares one deadline; on expiry nothing partial is
        returned and ``EvidenceTimeoutError`` is raised.
        """
        await self.prepare()
        semaphore = asyncio.Semaphore(self.parallel_limit)

        async def _bounded(claim: Claim) -> ClaimVerification:
            async with semaphore:
                return await self.resolve(claim, context)

        gathered = asyncio.gather(*(_bounded(claim) for claim in claims))
        if timeout is None:
            return list(await gathered)

        try:
            return list(await asyncio.wait_for(gathered, timeout=timeout))
        except asyncio.TimeoutError as exc:
            raise EvidenceTimeoutError(
                f"Evidence resolution exceeded {timeout}s for {len(claims)} claims"
            ) from exc

    @staticmethod
    def summarize(results: Sequence[ClaimVerification]) -> ResolutionSummary:
        by_verdict = Counter({verdict.value: 0 for verdict in Verdict})
        by_source: Counter = Counter()
        for result in results:
            by_verdict[result.chain.verdict.value] += 1
            for item in result.evidence:
                if item.is_valid and item.verified:
                    by_source[item.source.value] += 1

        return ResolutionSummary(
            total=len(results),
            by_verdict=dict(by_verdict),
            by_source=dict(by_source),
            found=sum(1 for result in results if result.found),
            consensus=sum(1 for result in results if result.consensus),
        )

    def clear_caches(self) -> None:
        for verifier in self.verifiers:
            verifier.invalidate()
