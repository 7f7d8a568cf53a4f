"""
Firewall orchestrator

Gates agent actions: validates intent, extracts claims, resolves evidence,
applies policy and records the decision. The active mode decides what a
negative decision (or a failure) means:

- observe: always allow, annotate what would have been blocked, re-raise errors
- enforce: block on violation, block on error (fail closed)
- lockdown: block every write operation before doing any work
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from claimguard.config import Settings, get_settings
from claimguard.models import (
    WRITE_ACTIONS,
    AuditEntry,
    AuditStats,
    Claim,
    ClaimVerification,
    FirewallMode,
    FirewallRequest,
    FirewallResult,
    PolicyDecision,
    QuickCheckResult,
    UnblockPlan,
    ViolationSummary,
)
from claimguard.services.verification import (
    CalibrationConfig,
    ConfidenceCalibrator,
    EvidenceResolver,
    SourceVerifier,
    VerificationContext,
    default_verifiers,
    primary_source,
)

from .audit_log import AuditLog
from .claim_extractor import ClaimExtractor
from .intent_validator import IntentValidator
from .policy_engine import PolicyContext, PolicyEngine
from .quick_check import QuickChecker
from .unblock_planner import UnblockPlanner

logger = logging.getLogger(__name__)

LOCKDOWN_REASON = "Lockdown mode: All write operations are blocked."
OBSERVE_PREFIX = "[OBSERVE MODE] Would have blocked: "


class FirewallConfigError(ValueError):
    """Raised when the firewall is constructed with an invalid configuration."""


class FirewallDisposedError(RuntimeError):
    """Raised when a disposed firewall is used."""


class FirewallConfig(BaseModel):
    """Validated firewall configuration. Immutable; mode changes produce a copy."""

    model_config = ConfigDict(frozen=True)

    mode: FirewallMode = FirewallMode.ENFORCE
    strict_mode: bool = True
    max_claims_per_request: int = Field(default=50, ge=1, le=1000, strict=True)
    evidence_timeout_ms: float = Field(default=5000, ge=100, le=60000)
    source_timeout_ms: float = Field(default=5000, gt=0)
    parallel_limit: int = Field(default=10, ge=1)
    project_root: Path = Field(default_factory=Path.cwd, validate_default=True)
    truthpack_path: str = ".claimguard/truthpack"
    enable_caching: bool = True
    cache_ttl_seconds: float = Field(default=60, ge=0)
    enable_audit_log: bool = True
    audit_log_path: str = ".claimguard/audit/firewall.log"
    audit_flush_interval_seconds: float = Field(default=5, ge=0)
    audit_buffer_size: int = Field(default=100, ge=1)
    calibration_path: Optional[str] = ".claimguard/calibration.json"
    calibration_min_samples_per_bucket: int = Field(default=10, ge=1)
    calibration_recalibrate_every: int = Field(default=50, ge=1)
    policy_file: Optional[str] = None

    @field_validator("project_root")
    @classmethod
    def _project_root_exists(cls, value: Path) -> Path:
        if not value.is_dir():
            raise ValueError(f"project_root must be an existing directory: {value}")
        return value.resolve()

    @classmethod
    def build(cls, **values: Any) -> "FirewallConfig":
        try:
            return cls(**values)
        except ValidationError as exc:
            raise FirewallConfigError(f"Invalid firewall configuration: {exc}") from exc

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, **overrides: Any) -> "FirewallConfig":
        settings = settings or get_settings()
        values: Dict[str, Any] = {
            "mode": settings.FIREWALL_MODE,
            "strict_mode": settings.STRICT_MODE,
            "max_claims_per_request": settings.MAX_CLAIMS_PER_REQUEST,
            "evidence_timeout_ms": settings.EVIDENCE_TIMEOUT_MS,
            "source_timeout_ms": settings.SOURCE_TIMEOUT_MS,
            "parallel_limit": settings.PARALLEL_LIMIT,
            "project_root": Path(settings.PROJECT_ROOT),
            "truthpack_path": settings.TRUTHPACK_PATH,
            "enable_caching": settings.ENABLE_CACHING,
            "cache_ttl_seconds": settings.QUICK_CHECK_CACHE_TTL,
            "enable_audit_log": settings.ENABLE_AUDIT_LOG,
            "audit_log_path": settings.AUDIT_LOG_PATH,
            "audit_flush_interval_seconds": settings.AUDIT_FLUSH_INTERVAL_SECONDS,
            "audit_buffer_size": settings.AUDIT_BUFFER_SIZE,
            "calibration_path": settings.CALIBRATION_PATH,
            "calibration_min_samples_per_bucket": settings.CALIBRATION_MIN_SAMPLES_PER_BUCKET,
            "calibration_recalibrate_every": settings.CALIBRATION_RECALIBRATE_EVERY,
            "policy_file": settings.POLICY_FILE,
        }
        values.update(overrides)
        return cls.build(**values)

    def resolve(self, relative: str) -> Path:
        path = Path(relative)
        return path if path.is_absolute() else self.project_root / path


class FirewallOrchestrator:
    """Entry point for ``evaluate`` and ``quick_check``."""

    def __init__(
        self,
        config: Optional[FirewallConfig] = None,
        *,
        settings: Optional[Settings] = None,
        verifiers: Optional[Sequence[SourceVerifier]] = None,
        extractor: Optional[ClaimExtractor] = None,
        intent_validator: Optional[IntentValidator] = None,
        policy_engine: Optional[PolicyEngine] = None,
        unblock_planner: Optional[UnblockPlanner] = None,
        calibrator: Optional[ConfidenceCalibrator] = None,
        resolver: Optional[EvidenceResolver] = None,
        audit_log: Optional[AuditLog] = None,
    ) -> None:
        self.config = config or FirewallConfig.from_settings(settings)
        self.context = VerificationContext.for_project(self.config.project_root, self.config.truthpack_path)

        self.extractor = extractor or ClaimExtractor()
        self.intent_validator = intent_validator or IntentValidator()
        self.policy_engine = policy_engine or PolicyEngine(
            policy_file=self.config.resolve(self.config.policy_file) if self.config.policy_file else None
        )
        self.unblock_planner = unblock_planner or UnblockPlanner()
        self.calibrator = calibrator if calibrator is not None else self._default_calibrator()
        self.resolver = resolver or EvidenceResolver(
            verifiers if verifiers is not None else default_verifiers(settings),
            self.context,
            calibrator=self.calibrator,
            source_timeout=self.config.source_timeout_ms / 1000,
            parallel_limit=self.config.parallel_limit,
        )
        if audit_log is not None:
            self.audit_log: Optional[AuditLog] = audit_log
        elif self.config.enable_audit_log:
            self.audit_log = AuditLog(
                self.config.resolve(self.config.audit_log_path),
                buffer_size=self.config.audit_buffer_size,
                flush_interval=self.config.audit_flush_interval_seconds,
            )
        else:
            self.audit_log = None

        self.quick_checker = QuickChecker(
            extractor=self.extractor,
            max_claims=self.config.max_claims_per_request,
            strict_mode=self.config.strict_mode,
            cache_ttl=self.config.cache_ttl_seconds,
            enable_caching=self.config.enable_caching,
        )
        self._disposed = False

        logger.info(
            f"Firewall initialized: mode={self.config.mode.value} strict={self.config.strict_mode} "
            f"root={self.config.project_root}"
        )

    def _default_calibrator(self) -> Optional[ConfidenceCalibrator]:
        if not self.config.calibration_path:
            return None
        return ConfidenceCalibrator(
            CalibrationConfig(
                min_samples_per_bucket=self.config.calibration_min_samples_per_bucket,
                recalibrate_every=self.config.calibration_recalibrate_every,
                data_path=self.config.resolve(self.config.calibration_path),
            )
        )

    # ------------------------------------------------------------------
    # Mode and lifecycle
    # ------------------------------------------------------------------

    @property
    def mode(self) -> FirewallMode:
        return self.config.mode

    def set_mode(self, mode: Union[FirewallMode, str]) -> None:
        self._ensure_open()
        try:
            new_mode = FirewallMode(mode)
        except ValueError as exc:
            raise FirewallConfigError(f"Invalid firewall mode: {mode}") from exc

        previous = self.config.mode
        self.config = self.config.model_copy(update={"mode": new_mode})
        self.quick_checker.clear_cache()
        logger.info(f"Firewall mode changed: {previous.value} -> {new_mode.value}")

    def clear_caches(self) -> None:
        self.quick_checker.clear_cache()
        self.resolver.clear_caches()
        logger.info("Caches cleared")

    async def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        if self.audit_log is not None:
            await self.audit_log.close()
        if self.calibrator is not None:
            self.calibrator.dispose()
        self.quick_checker.clear_cache()
        logger.info("Firewall disposed")

    def _ensure_open(self) -> None:
        if self._disposed:
            raise FirewallDisposedError("Firewall has been disposed; create a new instance")

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    async def evaluate(self, request: Union[FirewallRequest, Dict[str, Any]]) -> FirewallResult:
        self._ensure_open()
        started = time.perf_counter()
        audit_id = f"fw-{uuid.uuid4().hex[:12]}"
        if not isinstance(request, FirewallRequest):
            request = FirewallRequest.model_validate(request)
        mode = self.config.mode

        logger.debug(f"Evaluating {audit_id}: {request.action.value} {request.target} (mode={mode.value})")

        if mode == FirewallMode.LOCKDOWN and request.action in WRITE_ACTIONS:
            return await self._finish(request, self._blocked(LOCKDOWN_REASON), audit_id, mode, started)

        timeout = self.config.evidence_timeout_ms / 1000
        try:
            try:
                intent = await asyncio.wait_for(self.intent_validator.validate(request), timeout=timeout)
            except asyncio.TimeoutError as exc:
                raise TimeoutError(f"Intent validation exceeded {timeout}s") from exc

            if not intent.valid and mode == FirewallMode.ENFORCE:
                decision = self._blocked(f"Invalid intent: {intent.reason or 'Unknown'}")
                return await self._finish(request, decision, audit_id, mode, started)

            claims = self.extractor.extract(request.content, source=request.target)
            limit = self.config.max_claims_per_request
            if len(claims) > limit and mode == FirewallMode.ENFORCE:
                decision = self._blocked(
                    f"Too many claims ({len(claims)} > {limit}). Break into smaller changes."
                )
                return await self._finish(request, decision, audit_id, mode, started, claims=claims)

            evidence = await self.resolver.resolve_all(
                claims, timeout=timeout, context=self._request_context(request)
            )
            decision = self.policy_engine.evaluate(PolicyContext(intent, claims, evidence, self.config))
            plan = None if decision.allowed else self.unblock_planner.plan(decision)
        except Exception as exc:
            if mode == FirewallMode.OBSERVE:
                logger.warning(f"Evaluation {audit_id} failed in observe mode: {exc}")
                raise
            logger.error(f"Evaluation {audit_id} failed, blocking: {exc}")
            decision = self._blocked(f"Evaluation error: {str(exc) or type(exc).__name__}")
            return await self._finish(request, decision, audit_id, mode, started)

        if mode == FirewallMode.OBSERVE and not decision.allowed:
            decision = decision.model_copy(
                update={"allowed": True, "reason": f"{OBSERVE_PREFIX}{decision.reason}"}
            )

        return await self._finish(
            request, decision, audit_id, mode, started, claims=claims, evidence=evidence, plan=plan
        )

    def _request_context(self, request: FirewallRequest) -> VerificationContext:
        # Relative references resolve from the file being written
        return dataclasses.replace(self.context, file_path=Path(request.target))

    @staticmethod
    def _blocked(reason: str) -> PolicyDecision:
        return PolicyDecision(allowed=False, reason=reason, confidence=1.0)

    async def _finish(
        self,
        request: FirewallRequest,
        decision: PolicyDecision,
        audit_id: str,
        mode: FirewallMode,
        started: float,
        claims: Optional[List[Claim]] = None,
        evidence: Optional[List[ClaimVerification]] = None,
        plan: Optional[UnblockPlan] = None,
    ) -> FirewallResult:
        claims = claims or []
        duration_ms = (time.perf_counter() - started) * 1000

        if self.audit_log is not None:
            await self.audit_log.record(
                AuditEntry(
                    id=audit_id,
                    agent_id=request.agent_id or "unknown",
                    action=request.action.value,
                    target=request.target,
                    allowed=decision.allowed,
                    reason=decision.reason,
                    claim_count=len(claims),
                    violation_count=len(decision.violations),
                    violations=[violation.policy for violation in decision.violations],
                    duration_ms=duration_ms,
                    mode=mode,
                )
            )

        logger.info(
            f"Request {'allowed' if decision.allowed else 'blocked'} ({audit_id}): "
            f"{len(decision.violations)} violations, {len(claims)} claims, {round(duration_ms)}ms"
        )

        return FirewallResult(
            allowed=decision.allowed,
            decision=decision,
            claims=claims,
            evidence=evidence or [],
            violations=[
                ViolationSummary(policy=violation.policy, message=violation.message, severity=violation.severity)
                for violation in decision.violations
            ],
            unblock_plan=plan,
            audit_id=audit_id,
            mode=mode,
            duration_ms=duration_ms,
        )

    async def quick_check(self, content: str) -> QuickCheckResult:
        self._ensure_open()
        return self.quick_checker.check(content)

    # ------------------------------------------------------------------
    # Calibration feedback
    # ------------------------------------------------------------------

    async def record_feedback(self, verification: ClaimVerification, was_correct: bool) -> bool:
        """
        Feed the real outcome of a verified claim back into calibration.

        The uncalibrated chain confidence is recorded against the most
        confident verifying source (or, failing that, the most confident
        valid one). Returns False when nothing was recorded.
        """
        self._ensure_open()
        if self.calibrator is None:
            logger.debug(f"Calibration disabled, feedback for {verification.claim_id} ignored")
            return False

        valid = [item for item in verification.evidence if item.is_valid]
        source = primary_source([item for item in valid if item.verified]) or primary_source(valid)
        if source is None:
            logger.warning(f"No usable evidence for claim {verification.claim_id}, feedback ignored")
            return False

        await asyncio.to_thread(
            self.calibrator.record_feedback,
            verification.chain.confidence,
            was_correct,
            verification.claim.type,
            source,
        )
        logger.debug(
            f"Feedback recorded for {verification.claim_id}: correct={was_correct} "
            f"confidence={verification.chain.confidence:.2f} source={source.value}"
        )
        return True

    # ------------------------------------------------------------------
    # Audit queries
    # ------------------------------------------------------------------

    async def audit_history(self, limit: int = 100) -> List[AuditEntry]:
        self._ensure_open()
        if self.audit_log is None:
            return []
        return await self.audit_log.recent(limit)

    async def audit_stats(self, since: Optional[datetime] = None) -> AuditStats:
        self._ensure_open()
        if self.audit_log is None:
            return AuditStats()
        return await self.audit_log.stats(since)
