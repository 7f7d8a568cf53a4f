"""Claim verification: source verifiers, evidence chains and calibration."""

from .base import (  # noqa: F401
    BaseSourceVerifier,
    SourceVerifier,
    VerificationContext,
)
from .calibrator import (  # noqa: F401
    CalibrationConfig,
    CalibrationStats,
    ConfidenceCalibrator,
)
from .evidence_chain import (  # noqa: F401
    ChainBuilderConfig,
    EvidenceChainBuilder,
    format_for_display,
    quick_chain,
)
from .filesystem import FilesystemVerifier  # noqa: F401
from .package_manifest import PackageManifestVerifier  # noqa: F401
from .pattern_match import PatternMatchVerifier  # noqa: F401
from .registry import (  # noqa: F401
    UnknownSourceError,
    default_verifiers,
    verifiers_for,
)
from .resolver import (  # noqa: F401
    EvidenceResolver,
    EvidenceTimeoutError,
    ResolutionSummary,
    primary_source,
)
from .runtime import RuntimeVerifier  # noqa: F401
from .truthpack import TruthpackVerifier  # noqa: F401
from .type_checker import TypeCheckerVerifier  # noqa: F401
from .version_control import VersionControlVerifier  # noqa: F401

__all__ = [
    "BaseSourceVerifier",
    "SourceVerifier",
    "VerificationContext",
    "CalibrationConfig",
    "CalibrationStats",
    "ConfidenceCalibrator",
    "ChainBuilderConfig",
    "EvidenceChainBuilder",
    "format_for_display",
    "quick_chain",
    "FilesystemVerifier",
    "PackageManifestVerifier",
    "PatternMatchVerifier",
    "UnknownSourceError",
    "default_verifiers",
    "verifiers_for",
    "EvidenceResolver",
    "EvidenceTimeoutError",
    "ResolutionSummary",
    "primary_source",
    "RuntimeVerifier",
    "TruthpackVerifier",
    "TypeCheckerVerifier",
    "VersionControlVerifier",
]
