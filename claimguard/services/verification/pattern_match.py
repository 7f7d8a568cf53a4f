"""
Pattern match verifier

Line-level regex search for function and type declarations across the
project's source files. This is not a parser: multi-line or decorated
declarations can be missed, and that trade-off keeps the walk fast.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Pattern

from claimguard.models import Claim, ClaimType, SourceEvidence, VerificationSource

from .base import BaseSourceVerifier, VerificationContext, relative_to_root

logger = logging.getLogger(__name__)

SOURCE_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx")
IGNORED_DIRS = frozenset({"node_modules", "dist", "build", ".next", "coverage", ".git"})
MAX_FILES = 500
MAX_FILE_BYTES = 1024 * 1024


def patterns_for(claim_type: ClaimType, value: str) -> List[Pattern[str]]:
    name = re.escape(value)
    if claim_type == ClaimType.FUNCTION_CALL:
        return [
            re.compile(rf"function\s+{name}\s*[(<]"),
            re.compile(rf"(?:const|let|var)\s+{name}\s*=\s*(?:async\s+)?(?:function|\()"),
            re.compile(rf"(?:export\s+)?(?:async\s+)?function\s+{name}\b"),
            re.compile(rf"{name}\s*[=:]\s*(?:async\s+)?\([^)]*\)\s*=>"),
        ]
    if claim_type == ClaimType.TYPE_REFERENCE:
        return [
            re.compile(rf"(?:interface|type|class|enum)\s+{name}\b"),
            re.compile(rf"export\s+(?:interface|type|class|enum)\s+{name}\b"),
        ]
    return []


def iter_source_files(root: Path, limit: int = MAX_FILES) -> Iterator[Path]:
    """Walk ``root`` in sorted order, skipping build output and vendored code."""
    yielded = 0
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in IGNORED_DIRS)
        for filename in sorted(filenames):
            if not filename.endswith(SOURCE_EXTENSIONS) or filename.endswith(".d.ts"):
                continue
            yield Path(dirpath) / filename
            yielded += 1
            if yielded >= limit:
                return


def search_declarations(root: Path, patterns: List[Pattern[str]]) -> Dict[str, Any]:
    searched = 0
    for path in iter_source_files(root):
        try:
            if path.stat().st_size > MAX_FILE_BYTES:
                continue
            text = path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            logger.debug(f"Skipping unreadable file {path}: {exc}")
            continue

        searched += 1
        for line_number, line in enumerate(text.splitlines(), start=1):
            for pattern in patterns:
                if pattern.search(line):
                    return {
                        "found": True,
                        "matchedLine": line.strip()[:100],
                        "pattern": pattern.pattern,
                        "location": {"file": relative_to_root(path, root), "line": line_number},
                        "filesSearched": searched,
                    }

    return {"found": False, "filesSearched": searched}


class PatternMatchVerifier(BaseSourceVerifier):
    """Finds declarations of functions and types by regex."""

    name = VerificationSource.PATTERN_MATCH
    claim_types = frozenset({ClaimType.FUNCTION_CALL, ClaimType.TYPE_REFERENCE})

    async def _verify(self, claim: Claim, context: VerificationContext, started: float) -> SourceEvidence:
        patterns = patterns_for(claim.type, claim.value)
        if not patterns:
            return self._unsupported(claim, started, confidence=0.3)

        result = await asyncio.to_thread(search_declarations, context.project_root, patterns)
        found = result.pop("found")
        if found:
            return self._evidence(True, 0.9, started, **result)

        return self._evidence(
            False,
            0.9,
            started,
            reason=f"No declaration found for {claim.value}",
            **result,
        )
