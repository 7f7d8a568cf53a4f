"""
Package manifest verifier

Confirms imports and package dependencies against ``package.json`` and the
runtime's built-in module list.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from claimguard.models import Claim, ClaimType, SourceEvidence, VerificationSource
from claimguard.services.cache import FileCache

from .base import BaseSourceVerifier, VerificationContext, package_root_name

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60

DEPENDENCY_GROUPS = (
    "dependencies",
    "devDependencies",
    "peerDependencies",
    "optionalDependencies",
)

BUILTIN_MODULES = frozenset({
    "fs", "path", "os", "crypto", "http", "https", "url", "util", "stream",
    "buffer", "events", "child_process", "cluster", "dns", "net", "readline",
    "tls", "zlib", "assert", "async_hooks", "fs/promises", "path/posix",
    "path/win32", "querystring", "timers", "timers/promises", "perf_hooks",
    "worker_threads", "v8", "vm", "inspector", "trace_events", "string_decoder",
})


def _read_manifest(path: Path) -> Optional[Dict[str, Any]]:
    if not path.is_file():
        return None
    try:
        with open(path, "r", encoding="utf-8") as handle:
            document = json.load(handle)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.warning(f"Could not parse {path}: {exc}")
        return None
    return document if isinstance(document, dict) else None


def is_builtin(specifier: str) -> bool:
    name = specifier.strip()
    if name.startswith("node:"):
        name = name[len("node:"):]
    return name in BUILTIN_MODULES or name.split("/")[0] in BUILTIN_MODULES


class PackageManifestVerifier(BaseSourceVerifier):
    """Checks that an imported package is declared or built in."""

    name = VerificationSource.PACKAGE_MANIFEST
    claim_types = frozenset({ClaimType.IMPORT, ClaimType.PACKAGE_DEPENDENCY})

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, cache: Optional[FileCache] = None) -> None:
        super().__init__(cache or FileCache(ttl_seconds))

    async def _verify(self, claim: Claim, context: VerificationContext, started: float) -> SourceEvidence:
        if is_builtin(claim.value):
            return self._evidence(True, 1.0, started, packageName=claim.value, isBuiltin=True)

        manifest = await self.cache.get(context.project_root / "package.json", _read_manifest)
        if manifest is None:
            return self._evidence(False, 0.5, started, reason="Could not load package.json")

        package_name = package_root_name(claim.value)
        for group in DEPENDENCY_GROUPS:
            declared = manifest.get(group) or {}
            if isinstance(declared, dict) and package_name in declared:
                return self._evidence(
                    True,
                    1.0,
                    started,
                    packageName=package_name,
                    version=declared[package_name],
                    dependencyType=group,
                )

        logger.debug(f"Package {package_name} not declared in package.json")
        return self._evidence(
            False,
            0.99,
            started,
            reason="Package not found in package.json",
            packageName=package_name,
        )
