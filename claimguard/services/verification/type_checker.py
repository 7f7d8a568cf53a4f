"""
Type checker verifier

Looks for type declarations in ``.d.ts`` files and for installed type
packages. Requires a ``tsconfig.json`` at the project root.
"""

from __future__ import annotations

import asyncio
import json
import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

from claimguard.models import Claim, ClaimType, SourceEvidence, VerificationSource

from .base import BaseSourceVerifier, VerificationContext, package_root_name, relative_to_root

MAX_DECLARATION_FILES = 50


def find_type_declaration(root: Path, type_name: str) -> Optional[Dict[str, Any]]:
    pattern = re.compile(rf"(?:interface|type|class|enum)\s+{re.escape(type_name)}\b")
    checked = 0
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in ("node_modules", ".git"))
        for filename in sorted(filenames):
            if not filename.endswith(".d.ts"):
                continue
            if checked >= MAX_DECLARATION_FILES:
                return None
            checked += 1

            path = Path(dirpath) / filename
            try:
                text = path.read_text(encoding="utf-8", errors="replace")
            except OSError:
                continue
            for line_number, line in enumerate(text.splitlines(), start=1):
                if pattern.search(line):
                    return {"definedAt": relative_to_root(path, root), "line": line_number}
    return None


def has_type_package(root: Path, specifier: str) -> bool:
    package_name = package_root_name(specifier)
    modules = root / "node_modules"

    types_name = package_name.lstrip("@").replace("/", "__") if package_name.startswith("@") else package_name
    if (modules / "@types" / types_name).is_dir():
        return True

    package_dir = modules / package_name
    if (package_dir / "index.d.ts").is_file():
        return True

    manifest = package_dir / "package.json"
    if manifest.is_file():
        try:
            document = json.loads(manifest.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return False
        return isinstance(document, dict) and bool(document.get("types") or document.get("typings"))

    return False


class TypeCheckerVerifier(BaseSourceVerifier):
    """Checks declarations visible to the TypeScript compiler."""

    name = VerificationSource.TYPE_CHECKER
    claim_types = frozenset({ClaimType.TYPE_REFERENCE, ClaimType.IMPORT, ClaimType.FUNCTION_CALL})

    async def _verify(self, claim: Claim, context: VerificationContext, started: float) -> SourceEvidence:
        root = context.project_root
        if not await asyncio.to_thread((root / "tsconfig.json").is_file):
            return self._evidence(False, 0.5, started, reason="No tsconfig.json found")

        if claim.type == ClaimType.TYPE_REFERENCE:
            found = await asyncio.to_thread(find_type_declaration, root, claim.value)
            if found is not None:
                return self._evidence(True, 0.98, started, typeName=claim.value, **found)

        if claim.type == ClaimType.IMPORT and not claim.value.startswith((".", "/")):
            if await asyncio.to_thread(has_type_package, root, claim.value):
                return self._evidence(
                    True,
                    0.95,
                    started,
                    packageName=package_root_name(claim.value),
                    hasTypes=True,
                )

        return self._evidence(
            False,
            0.5,
            started,
            reason="Could not verify with type information",
            searchedValue=claim.value,
        )
