import asyncio
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT))

from claimguard.config import Settings  # noqa: E402
from claimguard.models import (  # noqa: E402
    Claim,
    ClaimType,
    SourceEvidence,
    Verdict,
    VerificationSource,
)
from claimguard.services.verification import (  # noqa: E402
    EvidenceResolver,
    EvidenceTimeoutError,
    UnknownSourceError,
    VerificationContext,
    default_verifiers,
    verifiers_for,
)


class StubVerifier:
    def __init__(self, name, verified=True, confidence=1.0, delay=0.0, types=None):
        self.name = name
        self.verified = verified
        self.confidence = confidence
        self.delay = delay
        self.types = types
        self.calls = 0
        self.invalidated = 0
        self.contexts = []

    def supports(self, claim_type):
        return self.types is None or claim_type in self.types

    async def verify(self, claim, context):
        self.calls += 1
        self.contexts.append(context)
        if self.delay:
            await asyncio.sleep(self.delay)
        return SourceEvidence(source=self.name, verified=self.verified, confidence=self.confidence)

    def invalidate(self, path=None):
        self.invalidated += 1


class StubCalibrator:
    def __init__(self, value):
        self.value = value
        self.calls = []
        self.loaded = False

    def ensure_loaded(self):
        self.loaded = True

    def calibrate(self, raw_confidence, claim_type=None, source=None):
        self.calls.append((raw_confidence, claim_type, source))
        return self.value


def make_claim(value="lodash", claim_type=ClaimType.IMPORT, claim_id="c1"):
    return Claim(id=claim_id, type=claim_type, value=value)


@pytest.fixture
def context(tmp_path):
    return VerificationContext.for_project(tmp_path)


@pytest.mark.asyncio
async def test_agreeing_sources_reach_consensus(context):
    resolver = EvidenceResolver(
        [
            StubVerifier(VerificationSource.PACKAGE_MANIFEST),
            StubVerifier(VerificationSource.TYPE_CHECKER, confidence=0.95),
        ],
        context,
    )

    result = await resolver.resolve(make_claim())

    assert result.found is True
    assert result.consensus is True
    assert result.discrepancies == []
    assert result.chain.verdict == Verdict.CONFIRMED
    assert result.calibrated_confidence == result.chain.confidence


@pytest.mark.asyncio
async def test_only_applicable_verifiers_run(context):
    env_only = StubVerifier(VerificationSource.RUNTIME, types={ClaimType.ENV_VARIABLE})
    imports = StubVerifier(VerificationSource.PACKAGE_MANIFEST, types={ClaimType.IMPORT})
    resolver = EvidenceResolver([env_only, imports], context)

    result = await resolver.resolve(make_claim())

    assert env_only.calls == 0
    assert imports.calls == 1
    assert [item.source for item in result.evidence] == [VerificationSource.PACKAGE_MANIFEST]
    assert result.consensus is False


@pytest.mark.asyncio
async def test_disagreement_is_reported(context):
    resolver = EvidenceResolver(
        [
            StubVerifier(VerificationSource.PACKAGE_MANIFEST),
            StubVerifier(VerificationSource.FILESYSTEM, verified=False, confidence=0.85),
        ],
        context,
    )

    result = await resolver.resolve(make_claim())

    assert result.found is True
    assert result.discrepancies == [
        "Sources disagree: package_manifest confirmed but filesystem did not"
    ]


@pytest.mark.asyncio
async def test_slow_source_becomes_error_evidence(context):
    slow = StubVerifier(VerificationSource.RUNTIME, delay=1.0)
    fast = StubVerifier(VerificationSource.PACKAGE_MANIFEST)
    resolver = EvidenceResolver([slow, fast], context, source_timeout=0.05)

    result = await resolver.resolve(make_claim())

    timed_out = result.evidence[0]
    assert timed_out.source == VerificationSource.RUNTIME
    assert timed_out.error.startswith("Timed out")
    assert timed_out.confidence == 0.0
    assert result.evidence[1].verified is True
    assert result.found is True
    assert result.discrepancies[0].startswith("runtime failed: Timed out")


@pytest.mark.asyncio
async def test_nothing_verifies(context):
    resolver = EvidenceResolver(
        [StubVerifier(VerificationSource.PACKAGE_MANIFEST, verified=False, confidence=0.99)],
        context,
    )

    result = await resolver.resolve(make_claim())

    assert result.found is False
    assert result.chain.verdict == Verdict.DISMISSED


@pytest.mark.asyncio
async def test_calibrator_receives_primary_source(context):
    calibrator = StubCalibrator(0.42)
    resolver = EvidenceResolver(
        [
            StubVerifier(VerificationSource.FILESYSTEM, confidence=0.9),
            StubVerifier(VerificationSource.PACKAGE_MANIFEST, confidence=1.0),
        ],
        context,
        calibrator=calibrator,
    )

    result = await resolver.resolve(make_claim())

    assert result.calibrated_confidence == 0.42
    raw, claim_type, source = calibrator.calls[0]
    assert raw == result.chain.confidence
    assert claim_type == ClaimType.IMPORT
    assert source == VerificationSource.PACKAGE_MANIFEST


@pytest.mark.asyncio
async def test_per_call_context_overrides_default(context, tmp_path):
    verifier = StubVerifier(VerificationSource.FILESYSTEM)
    resolver = EvidenceResolver([verifier], context)
    request_context = VerificationContext.for_project(tmp_path, file_path="src/lib/index.ts")

    await resolver.resolve_all([make_claim()], context=request_context)
    await resolver.resolve(make_claim())

    assert verifier.contexts == [request_context, context]


@pytest.mark.asyncio
async def test_calibrator_is_loaded_before_resolution(context):
    calibrator = StubCalibrator(0.5)
    resolver = EvidenceResolver([StubVerifier(VerificationSource.RUNTIME)], context, calibrator=calibrator)

    await resolver.resolve_all([make_claim()])

    assert calibrator.loaded is True
    assert len(calibrator.calls) == 1


@pytest.mark.asyncio
async def test_resolve_all_preserves_order(context):
    resolver = EvidenceResolver([StubVerifier(VerificationSource.PACKAGE_MANIFEST)], context, parallel_limit=2)
    claims = [make_claim(value=f"pkg-{i}", claim_id=f"c{i}") for i in range(5)]

    results = await resolver.resolve_all(claims, timeout=5)

    assert [result.claim.id for result in results] == [claim.id for claim in claims]
    assert await resolver.resolve_all([]) == []


@pytest.mark.asyncio
async def test_resolve_all_deadline(context):
    resolver = EvidenceResolver([StubVerifier(VerificationSource.RUNTIME, delay=1.0)], context)

    with pytest.raises(EvidenceTimeoutError) as excinfo:
        await resolver.resolve_all([make_claim()], timeout=0.05)

    assert isinstance(excinfo.value, TimeoutError)
    assert "exceeded" in str(excinfo.value)


@pytest.mark.asyncio
async def test_cancellation_propagates(context):
    resolver = EvidenceResolver([StubVerifier(VerificationSource.RUNTIME, delay=1.0)], context)
    task = asyncio.create_task(resolver.resolve_all([make_claim()]))
    await asyncio.sleep(0.01)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task


@pytest.mark.asyncio
async def test_summarize_counts_every_result(context):
    resolver = EvidenceResolver(
        [
            StubVerifier(VerificationSource.PACKAGE_MANIFEST, types={ClaimType.IMPORT}),
            StubVerifier(VerificationSource.RUNTIME, verified=False, confidence=0.99, types={ClaimType.ENV_VARIABLE}),
        ],
        context,
    )
    results = await resolver.resolve_all([
        make_claim(claim_id="a"),
        make_claim(value="API_KEY", claim_type=ClaimType.ENV_VARIABLE, claim_id="b"),
    ])

    summary = EvidenceResolver.summarize(results)

    assert summary.total == 2
    assert sum(summary.by_verdict.values()) == 2
    assert set(summary.by_verdict) == {verdict.value for verdict in Verdict}
    assert summary.by_source == {"package_manifest": 1}
    assert summary.found == 1


def test_clear_caches_reaches_every_verifier(context):
    verifiers = [StubVerifier(VerificationSource.RUNTIME), StubVerifier(VerificationSource.FILESYSTEM)]
    EvidenceResolver(verifiers, context).clear_caches()

    assert [verifier.invalidated for verifier in verifiers] == [1, 1]


def test_default_verifiers_follow_settings():
    everything = default_verifiers(Settings())
    subset = default_verifiers(Settings(ENABLED_SOURCES=["truthpack", "runtime"]))

    assert len(everything) == 7
    assert [verifier.name for verifier in subset] == [VerificationSource.TRUTHPACK, VerificationSource.RUNTIME]

    env_sources = {verifier.name for verifier in verifiers_for(ClaimType.ENV_VARIABLE, everything)}
    assert env_sources == {VerificationSource.TRUTHPACK, VerificationSource.FILESYSTEM, VerificationSource.RUNTIME}


def test_unknown_source_is_rejected():
    with pytest.raises(UnknownSourceError):
        default_verifiers(Settings(ENABLED_SOURCES=["oracle"]))
