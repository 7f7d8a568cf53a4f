"""
Filesystem verifier

Resolves relative imports and file references on disk, and looks for
environment variables declared in the usual ``.env`` files.
"""

from __future__ import annotations

import asyncio
import re
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from claimguard.models import Claim, ClaimType, SourceEvidence, VerificationSource

from .base import BaseSourceVerifier, VerificationContext, env_variable_name, relative_to_root

# Search order matters: the first existing candidate wins
EXTENSIONS = ("", ".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs", ".json")
INDEX_FILES = ("index.ts", "index.tsx", "index.js", "index.jsx")
ENV_FILES = (".env", ".env.local", ".env.development", ".env.production", ".env.example")


def resolve_reference(base_dir: Path, reference: str) -> Tuple[Optional[Path], bool]:
    """
    Find the file a relative reference points at.

    Returns ``(path, via_index)``; ``path`` is None when nothing matched.
    """
    target = (base_dir / reference).resolve()
    for extension in EXTENSIONS:
        candidate = Path(f"{target}{extension}")
        if candidate.is_file():
            return candidate, False

    for index in INDEX_FILES:
        candidate = target / index
        if candidate.is_file():
            return candidate, True

    return None, False


def find_env_declaration(project_root: Path, var_name: str) -> Optional[Dict[str, Any]]:
    pattern = re.compile(rf"^{re.escape(var_name)}\s*=")
    for env_file in ENV_FILES:
        path = project_root / env_file
        if not path.is_file():
            continue
        with open(path, "r", encoding="utf-8", errors="replace") as handle:
            for line_number, line in enumerate(handle, start=1):
                stripped = line.strip()
                if stripped.startswith("#"):
                    continue
                if pattern.match(stripped):
                    return {
                        "foundIn": env_file,
                        "line": line_number,
                        "isExample": env_file.endswith(".example"),
                    }
    return None


class FilesystemVerifier(BaseSourceVerifier):
    """Checks that referenced files and env declarations exist on disk."""

    name = VerificationSource.FILESYSTEM
    claim_types = frozenset({ClaimType.FILE_REFERENCE, ClaimType.IMPORT, ClaimType.ENV_VARIABLE})

    async def _verify(self, claim: Claim, context: VerificationContext, started: float) -> SourceEvidence:
        if claim.type == ClaimType.ENV_VARIABLE:
            return await self._verify_env(claim, context, started)
        return await self._verify_path(claim, context, started)

    async def _verify_path(self, claim: Claim, context: VerificationContext, started: float) -> SourceEvidence:
        reference = claim.value
        if not reference.startswith((".", "/")):
            # Bare specifiers belong to the package manifest
            return self._evidence(False, 0.3, started, reason="Not a relative import")

        if reference.startswith("/"):
            base_dir = context.project_root
            reference = reference.lstrip("/")
        elif context.file_path is not None:
            file_path = context.file_path
            if not file_path.is_absolute():
                file_path = context.project_root / file_path
            base_dir = file_path.parent
        else:
            base_dir = context.project_root

        resolved, via_index = await asyncio.to_thread(resolve_reference, base_dir, reference)
        if resolved is not None and not resolved.is_relative_to(context.project_root.resolve()):
            return self._evidence(
                False,
                0.85,
                started,
                reason="Resolves outside the project root",
                searchedPath=claim.value,
            )
        if resolved is not None:
            return self._evidence(
                True,
                0.9 if via_index else 1.0,
                started,
                resolvedPath=relative_to_root(resolved, context.project_root),
                isIndexFile=via_index or None,
            )

        return self._evidence(
            False,
            0.85,
            started,
            reason="File not found",
            searchedPath=claim.value,
            triedExtensions=list(EXTENSIONS),
        )

    async def _verify_env(self, claim: Claim, context: VerificationContext, started: float) -> SourceEvidence:
        var_name = env_variable_name(claim.value)
        found = await asyncio.to_thread(find_env_declaration, context.project_root, var_name)
        if found is not None:
            return self._evidence(True, 1.0, started, variableName=var_name, **found)

        return self._evidence(
            False,
            0.85,
            started,
            reason="Environment variable not found in .env files",
            variableName=var_name,
            searchedFiles=list(ENV_FILES),
        )
