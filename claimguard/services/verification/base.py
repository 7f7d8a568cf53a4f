"""Shared contract and helpers for source verifiers."""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, FrozenSet, Optional, Protocol, Union, runtime_checkable

from claimguard.models import Claim, ClaimType, SourceEvidence, VerificationSource
from claimguard.services.cache import FileCache

logger = logging.getLogger(__name__)

_ENV_PREFIXES = re.compile(r"^(?:process\.env\.|import\.meta\.env\.)")


@dataclass(frozen=True)
class VerificationContext:
    """Where a claim should be checked."""

    project_root: Path
    truthpack_path: Path
    file_path: Optional[Path] = None

    @classmethod
    def for_project(
        cls,
        project_root: Union[str, Path],
        truthpack_path: Union[str, Path] = ".claimguard/truthpack",
        file_path: Optional[Union[str, Path]] = None,
    ) -> "VerificationContext":
        root = Path(project_root).resolve()
        truthpack = Path(truthpack_path)
        if not truthpack.is_absolute():
            truthpack = root / truthpack
        return cls(
            project_root=root,
            truthpack_path=truthpack,
            file_path=Path(file_path) if file_path is not None else None,
        )


@runtime_checkable
class SourceVerifier(Protocol):
    """Protocol every verification source implements."""

    name: VerificationSource

    def supports(self, claim_type: ClaimType) -> bool:  # pragma: no cover - interface
        """Whether this source has anything to say about ``claim_type``."""

    async def verify(self, claim: Claim, context: VerificationContext) -> SourceEvidence:  # pragma: no cover - interface
        """Produce evidence for one claim. Never raises."""

    def invalidate(self, path: Optional[Union[str, Path]] = None) -> None:  # pragma: no cover - interface
        """Drop cached file contents."""


class BaseSourceVerifier:
    """
    Common plumbing for verifiers.

    Subclasses declare ``name`` and ``claim_types`` and implement
    ``_verify``. Any exception raised there is turned into error evidence
    here so that one failing source never aborts a batch.
    """

    name: VerificationSource
    claim_types: FrozenSet[ClaimType] = frozenset()

    def __init__(self, cache: Optional[FileCache] = None) -> None:
        self.cache = cache

    def supports(self, claim_type: ClaimType) -> bool:
        return ClaimType(claim_type) in self.claim_types

    async def verify(self, claim: Claim, context: VerificationContext) -> SourceEvidence:
        started = time.perf_counter()
        try:
            return await self._verify(claim, context, started)
        except Exception as exc:
            logger.warning(f"{self.name.value} verifier failed for claim {claim.id}: {exc}")
            return self._evidence(False, 0.0, started, error=str(exc) or type(exc).__name__)

    async def _verify(
        self, claim: Claim, context: VerificationContext, started: float
    ) -> SourceEvidence:  # pragma: no cover - interface
        raise NotImplementedError

    def invalidate(self, path: Optional[Union[str, Path]] = None) -> None:
        if self.cache is not None:
            self.cache.invalidate(path)

    def _evidence(
        self,
        verified: bool,
        confidence: float,
        started: float,
        error: Optional[str] = None,
        **details: Any,
    ) -> SourceEvidence:
        return SourceEvidence(
            source=self.name,
            verified=verified,
            confidence=confidence,
            details={key: value for key, value in details.items() if value is not None},
            error=error,
            duration_ms=(time.perf_counter() - started) * 1000,
        )

    def _unsupported(self, claim: Claim, started: float, confidence: float = 0.0) -> SourceEvidence:
        return self._evidence(
            False,
            confidence,
            started,
            reason=f"Claim type {claim.type.value} not supported by {self.name.value}",
        )


def env_variable_name(value: str) -> str:
    """Strip ``process.env.`` / ``import.meta.env.`` from an env claim value."""
    return _ENV_PREFIXES.sub("", value.strip())


def package_root_name(specifier: str) -> str:
    """
    Reduce an import specifier to the package it names.

    ``lodash/get`` -> ``lodash``; ``@scope/pkg/sub`` -> ``@scope/pkg``;
    ``node:fs`` -> ``fs``.
    """
    name = specifier.strip()
    if name.startswith("node:"):
        name = name[len("node:"):]
    parts = name.split("/")
    if name.startswith("@"):
        return "/".join(parts[:2])
    return parts[0]


def relative_to_root(path: Path, root: Path) -> str:
    try:
        return str(path.relative_to(root))
    except ValueError:
        return str(path)
