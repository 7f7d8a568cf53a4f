"""
Claim extractor

Pulls checkable assertions out of generated source text with line-level
regular expressions. Function calls are not extracted; they only arrive
from callers that build claims themselves.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Pattern, Tuple

from claimguard.models import Claim, ClaimLocation, ClaimType

DEFAULT_CLAIM_CONFIDENCE = 0.8
CONTEXT_RADIUS = 50

BUILTIN_TYPES = frozenset({
    "string", "number", "boolean", "void", "null", "undefined", "any",
    "unknown", "never", "object", "Array", "Promise", "Record", "Partial",
    "Required", "Pick", "Omit",
})

# (claim type, pattern); group 1 or 2 holds the claim value
EXTRACTION_PATTERNS: Tuple[Tuple[ClaimType, Pattern[str]], ...] = (
    (ClaimType.IMPORT, re.compile(r"""import\s+(?:\{[^}]+\}|\*\s+as\s+\w+|\w+)\s+from\s+['"]([^'"]+)['"]""")),
    (ClaimType.TYPE_REFERENCE, re.compile(r":\s*([A-Z]\w*)(?:<[^>]+>)?")),
    (ClaimType.API_ENDPOINT, re.compile(r"""['"`](/api/[^'"`]+)['"`]""")),
    (ClaimType.ENV_VARIABLE, re.compile(r"process\.env\.(\w+)|import\.meta\.env\.(\w+)")),
    (ClaimType.FILE_REFERENCE, re.compile(r"""['"`](\.\.?/[^'"`]+\.[a-z]+)['"`]""", re.IGNORECASE)),
    (ClaimType.PACKAGE_DEPENDENCY, re.compile(r"""from\s+['"]([^./'"][^'"]+)['"]""")),
)


@dataclass
class ExtractionStats:
    total_claims: int = 0
    by_type: Dict[str, int] = field(default_factory=dict)
    avg_confidence: float = 0.0


def claim_id(claim_type: ClaimType, source: str, line: int, column: int, value: str) -> str:
    """Stable id: same type, position and value always give the same id."""
    digest = hashlib.sha256(f"claim-{claim_type.value}:{source}:{line}:{column}:{value}".encode("utf-8"))
    return f"claim-{digest.hexdigest()[:16]}"


def _position(content: str, index: int) -> Tuple[int, int]:
    line = content.count("\n", 0, index) + 1
    column = index - (content.rfind("\n", 0, index) + 1) + 1
    return line, column


class ClaimExtractor:
    """Regex-based claim extraction for JavaScript/TypeScript content."""

    def __init__(self, source: str = "unknown", confidence: float = DEFAULT_CLAIM_CONFIDENCE) -> None:
        self.source = source
        self.confidence = confidence

    def extract(self, content: str, source: Optional[str] = None) -> List[Claim]:
        source = source or self.source
        claims: List[Claim] = []
        for claim_type, pattern in EXTRACTION_PATTERNS:
            for match in pattern.finditer(content):
                group = 1 if match.group(1) is not None else 2
                value = match.group(group)
                if claim_type == ClaimType.TYPE_REFERENCE and value in BUILTIN_TYPES:
                    continue
                claims.append(self._claim(claim_type, value, match.start(group), content, source))
        return claims

    def extract_with_stats(self, content: str, source: Optional[str] = None) -> Tuple[List[Claim], ExtractionStats]:
        claims = self.extract(content, source)
        by_type = {claim_type.value: 0 for claim_type in ClaimType}
        for claim in claims:
            by_type[claim.type.value] += 1

        stats = ExtractionStats(
            total_claims=len(claims),
            by_type=by_type,
            avg_confidence=sum(claim.raw_confidence for claim in claims) / len(claims) if claims else 0.0,
        )
        return claims, stats

    def _claim(self, claim_type: ClaimType, value: str, index: int, content: str, source: str) -> Claim:
        line, column = _position(content, index)
        return Claim(
            id=claim_id(claim_type, source, line, column, value),
            type=claim_type,
            value=value,
            location=ClaimLocation(line=line, column=column, length=len(value)),
            raw_confidence=self.confidence,
            context=content[max(0, index - CONTEXT_RADIUS): index + len(value) + CONTEXT_RADIUS],
        )
