"""
Version control verifier

A shallow check: the project must be a repository, and a referenced file
must exist on disk. Presence is used as a proxy for "tracked"; no VCS
process is spawned.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

from claimguard.models import Claim, ClaimType, SourceEvidence, VerificationSource

from .base import BaseSourceVerifier, VerificationContext


def _exists(path: Path) -> bool:
    return path.exists()


class VersionControlVerifier(BaseSourceVerifier):
    """Confirms file references inside a git working tree."""

    name = VerificationSource.VERSION_CONTROL
    claim_types = frozenset({ClaimType.FILE_REFERENCE, ClaimType.FUNCTION_CALL, ClaimType.TYPE_REFERENCE})

    async def _verify(self, claim: Claim, context: VerificationContext, started: float) -> SourceEvidence:
        # .git may be a directory or, for worktrees and submodules, a file
        if not await asyncio.to_thread(_exists, context.project_root / ".git"):
            return self._evidence(False, 0.3, started, reason="Not a git repository")

        if claim.type == ClaimType.FILE_REFERENCE:
            root = context.project_root.resolve()
            target = (root / claim.value.lstrip("/")).resolve()
            if not target.is_relative_to(root):
                return self._evidence(
                    False, 0.7, started, reason="Outside the repository", searchedValue=claim.value
                )
            if await asyncio.to_thread(_exists, target):
                return self._evidence(True, 0.8, started, tracked=True, path=claim.value)

        return self._evidence(
            False,
            0.7,
            started,
            reason="Not found in version control",
            searchedValue=claim.value,
        )
