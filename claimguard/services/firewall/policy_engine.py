"""
Policy engine

Maps claims and their resolved evidence onto categorical violations and an
allow/deny decision. Rule severities and on/off switches can be overridden
from a YAML file.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Sequence, Union

import yaml

from claimguard.models import (
    Claim,
    ClaimType,
    ClaimVerification,
    IntentValidation,
    PolicyDecision,
    PolicySeverity,
    PolicyViolation,
)

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .orchestrator import FirewallConfig

logger = logging.getLogger(__name__)

_POLICY_FILE = Path(__file__).resolve().parent.parent.parent / "config" / "firewall_policies.yaml"

MAX_MESSAGE_LENGTH = 500
MAX_VIOLATIONS = 50
LOW_CONFIDENCE_THRESHOLD = 0.5
EXCESSIVE_UNVERIFIED_CLAIMS = 10

_UNSAFE_CHARS = re.compile(r"[<>]")


class PolicyConfigError(ValueError):
    """Raised when the policy override file is malformed."""


@dataclass
class PolicyContext:
    intent: Optional[IntentValidation]
    claims: Sequence[Claim]
    evidence: Sequence[ClaimVerification]
    config: Optional["FirewallConfig"] = None

    @property
    def strict_mode(self) -> bool:
        return self.config.strict_mode if self.config is not None else True

    def unfound(self, *claim_types: ClaimType) -> List[Claim]:
        """Claims of the given types (all types when none given) with no verifying evidence."""
        found = {item.claim_id for item in self.evidence if item.found}
        return [
            claim
            for claim in self.claims
            if (not claim_types or claim.type in claim_types) and claim.id not in found
        ]


@dataclass
class Policy:
    """A named rule producing at most one violation per evaluation."""

    name: str
    description: str
    severity: PolicySeverity
    evaluate: Callable[[PolicyContext, "Policy"], Optional[PolicyViolation]]
    enabled: bool = True


def sanitize(message: str) -> str:
    return _UNSAFE_CHARS.sub("", message[:MAX_MESSAGE_LENGTH])


def _ghost_rule(label: str, suggestion: Callable[[Claim], str], *claim_types: ClaimType):
    def _evaluate(ctx: PolicyContext, policy: Policy) -> Optional[PolicyViolation]:
        ghosts = ctx.unfound(*claim_types)
        if not ghosts:
            return None
        return PolicyViolation(
            policy=policy.name,
            severity=policy.severity,
            message=f"{label}: {', '.join(claim.value for claim in ghosts)}",
            claim=ghosts[0],
            suggestion=suggestion(ghosts[0]),
        )

    return _evaluate


def _low_confidence(ctx: PolicyContext, policy: Policy) -> Optional[PolicyViolation]:
    low = [claim for claim in ctx.claims if claim.raw_confidence < LOW_CONFIDENCE_THRESHOLD]
    if len(ctx.claims) > 3 and len(low) > len(ctx.claims) * 0.3:
        return PolicyViolation(
            policy=policy.name,
            severity=policy.severity,
            message=f"{len(low)} of {len(ctx.claims)} claims have low confidence",
            suggestion="Consider adding more context to improve verification",
        )
    return None


def _excessive_claims(ctx: PolicyContext, policy: Policy) -> Optional[PolicyViolation]:
    unverified = len(ctx.unfound())
    if unverified > EXCESSIVE_UNVERIFIED_CLAIMS:
        return PolicyViolation(
            policy=policy.name,
            severity=policy.severity,
            message=f"{unverified} unverified claims - consider breaking into smaller changes",
            suggestion="Large changes with many unverified claims are risky",
        )
    return None


def _default_policies() -> Dict[str, Policy]:
    policies = [
        Policy(
            name="ghost-route",
            description="Block references to non-existent API endpoints",
            severity=PolicySeverity.ERROR,
            evaluate=_ghost_rule(
                "GHOST ROUTE",
                lambda claim: f'Register route "{claim.value}" in the routes truthpack',
                ClaimType.API_ENDPOINT,
            ),
        ),
        Policy(
            name="ghost-env",
            description="Block usage of undeclared environment variables",
            severity=PolicySeverity.ERROR,
            evaluate=_ghost_rule(
                "GHOST ENV",
                lambda claim: f'Declare "{claim.value}" in .env.example and the env truthpack',
                ClaimType.ENV_VARIABLE,
            ),
        ),
        Policy(
            name="ghost-type",
            description="Warn when referencing undefined types",
            severity=PolicySeverity.WARNING,
            evaluate=_ghost_rule(
                "GHOST TYPE",
                lambda claim: "Define type in contracts or ensure import exists",
                ClaimType.TYPE_REFERENCE,
            ),
        ),
        Policy(
            name="ghost-import",
            description="Block imports that cannot be verified",
            severity=PolicySeverity.ERROR,
            evaluate=_ghost_rule(
                "GHOST IMPORT",
                lambda claim: "Verify packages exist in package.json or are valid local imports",
                ClaimType.IMPORT,
                ClaimType.PACKAGE_DEPENDENCY,
            ),
        ),
        Policy(
            name="ghost-file",
            description="Block references to non-existent files",
            severity=PolicySeverity.ERROR,
            evaluate=_ghost_rule(
                "GHOST FILE",
                lambda claim: "Ensure file exists or create it before referencing",
                ClaimType.FILE_REFERENCE,
            ),
        ),
        Policy(
            name="low-confidence",
            description="Warn about claims with low confidence",
            severity=PolicySeverity.WARNING,
            evaluate=_low_confidence,
        ),
        Policy(
            name="excessive-claims",
            description="Warn when change has too many unverified claims",
            severity=PolicySeverity.WARNING,
            evaluate=_excessive_claims,
        ),
    ]
    return {policy.name: policy for policy in policies}


def _load_policy_file(path: Path) -> Dict[str, dict]:
    if not path.exists():
        return {}

    with open(path, "r", encoding="utf-8") as handle:
        try:
            data = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise PolicyConfigError(f"Invalid policy file {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise PolicyConfigError(f"Policy file {path} must contain a mapping")

    overrides: Dict[str, dict] = {}
    for item in data.get("rules", []) or []:
        if not isinstance(item, dict) or "name" not in item:
            raise PolicyConfigError(f"Every rule in {path} needs a name")
        overrides[item["name"]] = item
    return overrides


def load_policies(path: Optional[Union[str, Path]] = None) -> Dict[str, Policy]:
    """Default rules with per-rule ``enabled``/``severity`` overrides applied."""
    base = _default_policies()
    overrides = _load_policy_file(Path(path) if path is not None else _POLICY_FILE)

    for name, item in overrides.items():
        policy = base.get(name)
        if policy is None:
            logger.warning(f"Ignoring override for unknown policy {name}")
            continue
        try:
            severity = PolicySeverity(item.get("severity", policy.severity.value))
        except ValueError as exc:
            raise PolicyConfigError(f"Invalid severity for policy {name}: {item.get('severity')}") from exc
        base[name] = replace(policy, severity=severity, enabled=bool(item.get("enabled", policy.enabled)))

    return base


class PolicyEngine:
    """Evaluates the enabled rules in registration order."""

    def __init__(self, policies: Optional[Dict[str, Policy]] = None, policy_file: Optional[Union[str, Path]] = None) -> None:
        self._policies: Dict[str, Policy] = policies if policies is not None else load_policies(policy_file)

    @property
    def policies(self) -> List[Policy]:
        return list(self._policies.values())

    def add_policy(self, policy: Policy) -> None:
        if policy.name in self._policies:
            raise ValueError(f'Policy with name "{policy.name}" already exists')
        self._policies[policy.name] = policy

    def remove_policy(self, name: str) -> bool:
        return self._policies.pop(name, None) is not None

    def evaluate(self, context: PolicyContext) -> PolicyDecision:
        started = time.perf_counter()
        violations: List[PolicyViolation] = []

        for policy in self._policies.values():
            if not policy.enabled:
                continue
            try:
                violation = policy.evaluate(context, policy)
            except Exception as exc:
                logger.warning(f"Policy {policy.name} failed: {exc}")
                violation = PolicyViolation(
                    policy=policy.name,
                    severity=PolicySeverity.WARNING,
                    message=f"Policy evaluation error: {exc}",
                )
            if violation is None:
                continue

            violations.append(
                violation.model_copy(
                    update={
                        "message": sanitize(violation.message),
                        "suggestion": sanitize(violation.suggestion) if violation.suggestion else None,
                    }
                )
            )
            if len(violations) >= MAX_VIOLATIONS:
                break

        by_severity = {severity.value: 0 for severity in PolicySeverity}
        for violation in violations:
            by_severity[violation.severity.value] += 1

        errors = [violation for violation in violations if violation.severity == PolicySeverity.ERROR]
        allowed = not errors if context.strict_mode else True
        reason = sanitize(f"Blocked: {'; '.join(error.message for error in errors)}") if errors else "Allowed"

        return PolicyDecision(
            allowed=allowed,
            reason=reason,
            violations=violations,
            confidence=self._confidence(context, by_severity),
            violations_by_severity=by_severity,
            evaluation_time_ms=(time.perf_counter() - started) * 1000,
        )

    @staticmethod
    def _confidence(context: PolicyContext, by_severity: Dict[str, int]) -> float:
        if context.evidence:
            base = sum(item.calibrated_confidence for item in context.evidence) / len(context.evidence)
        else:
            base = 1.0
        penalty = 0.3 * by_severity[PolicySeverity.ERROR.value] + 0.1 * by_severity[PolicySeverity.WARNING.value]
        return max(0.0, min(1.0, base - penalty))
