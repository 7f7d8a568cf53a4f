"""Fixed set of verification sources and helpers for selecting them."""

from __future__ import annotations

from typing import Callable, Dict, Iterable, List, Optional

from claimguard.config import Settings, get_settings
from claimguard.models import ClaimType, VerificationSource

from .base import SourceVerifier
from .filesystem import FilesystemVerifier
from .package_manifest import PackageManifestVerifier
from .pattern_match import PatternMatchVerifier
from .runtime import RuntimeVerifier
from .truthpack import TruthpackVerifier
from .type_checker import TypeCheckerVerifier
from .version_control import VersionControlVerifier


class UnknownSourceError(KeyError):
    """Raised when a requested verification source does not exist."""


def _factories(settings: Settings) -> Dict[VerificationSource, Callable[[], SourceVerifier]]:
    truthpack_ttl = settings.TRUTHPACK_CACHE_TTL if settings.ENABLE_CACHING else 0
    manifest_ttl = settings.MANIFEST_CACHE_TTL if settings.ENABLE_CACHING else 0
    return {
        VerificationSource.TRUTHPACK: lambda: TruthpackVerifier(ttl_seconds=truthpack_ttl),
        VerificationSource.PACKAGE_MANIFEST: lambda: PackageManifestVerifier(ttl_seconds=manifest_ttl),
        VerificationSource.FILESYSTEM: FilesystemVerifier,
        VerificationSource.PATTERN_MATCH: PatternMatchVerifier,
        VerificationSource.VERSION_CONTROL: VersionControlVerifier,
        VerificationSource.TYPE_CHECKER: TypeCheckerVerifier,
        VerificationSource.RUNTIME: RuntimeVerifier,
    }


def default_verifiers(settings: Optional[Settings] = None) -> List[SourceVerifier]:
    """Build one fresh instance of every enabled source."""
    settings = settings or get_settings()
    factories = _factories(settings)

    verifiers: List[SourceVerifier] = []
    for name in settings.ENABLED_SOURCES:
        try:
            source = VerificationSource(name)
        except ValueError as exc:
            raise UnknownSourceError(name) from exc
        verifiers.append(factories[source]())
    return verifiers


def verifiers_for(claim_type: ClaimType, verifiers: Iterable[SourceVerifier]) -> List[SourceVerifier]:
    """Return the verifiers that have something to say about ``claim_type``."""
    return [verifier for verifier in verifiers if verifier.supports(claim_type)]
