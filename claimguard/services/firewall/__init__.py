"""Agent firewall: claim extraction, policy evaluation and gating."""

from .audit_log import AuditLog  # noqa: F401
from .claim_extractor import ClaimExtractor, ExtractionStats  # noqa: F401
from .intent_validator import IntentValidator, ValidationRule  # noqa: F401
from .orchestrator import (  # noqa: F401
    FirewallConfig,
    FirewallConfigError,
    FirewallDisposedError,
    FirewallOrchestrator,
)
from .policy_engine import (  # noqa: F401
    Policy,
    PolicyConfigError,
    PolicyContext,
    PolicyEngine,
    load_policies,
)
from .quick_check import QuickChecker  # noqa: F401
from .unblock_planner import UnblockPlanner, format_plan  # noqa: F401

__all__ = [
    "AuditLog",
    "ClaimExtractor",
    "ExtractionStats",
    "IntentValidator",
    "ValidationRule",
    "FirewallConfig",
    "FirewallConfigError",
    "FirewallDisposedError",
    "FirewallOrchestrator",
    "Policy",
    "PolicyConfigError",
    "PolicyContext",
    "PolicyEngine",
    "load_policies",
    "QuickChecker",
    "UnblockPlanner",
    "format_plan",
]
