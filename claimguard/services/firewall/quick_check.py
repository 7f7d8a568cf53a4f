"""Cheap content heuristics run ahead of full evidence resolution."""

from __future__ import annotations

import hashlib
import logging
import re
import time
from typing import Optional, Pattern, Tuple

from claimguard.models import QuickCheckResult
from claimguard.services.cache import TTLCache

from .claim_extractor import ClaimExtractor

logger = logging.getLogger(__name__)

CONCERN_PATTERNS: Tuple[Tuple[Pattern[str], str], ...] = (
    (re.compile(r"\beval\s*\("), "Contains eval() which can execute arbitrary code"),
    (re.compile(r"\bnew\s+Function\s*\("), "Contains Function constructor which can execute arbitrary code"),
    (re.compile(r"rm\s+-rf\s+[/~]"), "Contains dangerous rm -rf command targeting root or home"),
    (re.compile(r"DROP\s+TABLE", re.IGNORECASE), "Contains SQL DROP TABLE statement"),
    (re.compile(r"DELETE\s+FROM\s+\w+\s*;?\s*$", re.IGNORECASE | re.MULTILINE), "Contains DELETE without WHERE clause"),
    (re.compile(r"exec\s*\([^)]*\$"), "Contains shell exec with variable injection risk"),
    (re.compile(r"process\.env\.\w+\s*="), "Modifies process.env which affects global state"),
    (re.compile(r"""require\s*\(\s*[^'"]"""), "Dynamic require with non-literal path"),
    (re.compile(r"fs\.(?:unlink|rmdir|rm)Sync\s*\("), "Synchronous file deletion detected"),
    (re.compile(r"child_process"), "Uses child_process which can execute system commands"),
)

DEEP_IMPORT = re.compile(
    r"""from\s+['"](@[^/]+/[^/]+/[^/]+/[^/]+/[^'"]+|[^@][^/]+/[^/]+/[^/]+/[^/]+/[^'"]+)['"]"""
)

LOW_CONFIDENCE = 0.5
MEDIUM_CONFIDENCE = 0.8
MEDIUM_CLAIMS_LIMIT = 3


def content_key(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


class QuickChecker:
    """Pattern-table scan plus claim-confidence heuristics, cached by content hash."""

    def __init__(
        self,
        extractor: Optional[ClaimExtractor] = None,
        max_claims: int = 50,
        strict_mode: bool = True,
        cache_ttl: float = 60.0,
        enable_caching: bool = True,
    ) -> None:
        self.extractor = extractor or ClaimExtractor()
        self.max_claims = max_claims
        self.strict_mode = strict_mode
        self.enable_caching = enable_caching
        self.cache: TTLCache[QuickCheckResult] = TTLCache(ttl_seconds=cache_ttl)

    def check(self, content: str) -> QuickCheckResult:
        started = time.perf_counter()
        key = content_key(content)

        if self.enable_caching:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug("Quick check cache hit")
                return cached.model_copy(update={"duration_ms": (time.perf_counter() - started) * 1000})

        claims = self.extractor.extract(content)
        concerns = [message for pattern, message in CONCERN_PATTERNS if pattern.search(content)]

        low = [claim for claim in claims if claim.raw_confidence < LOW_CONFIDENCE]
        if low:
            concerns.append(f"{len(low)} claim(s) with low confidence (may be hallucinated)")

        if len(claims) > self.max_claims:
            concerns.append(f"Too many claims ({len(claims)}) - consider breaking into smaller changes")

        if self.strict_mode:
            medium = [claim for claim in claims if LOW_CONFIDENCE <= claim.raw_confidence < MEDIUM_CONFIDENCE]
            if len(medium) > MEDIUM_CLAIMS_LIMIT:
                concerns.append(f"{len(medium)} claims with medium confidence - verification recommended")

        for match in DEEP_IMPORT.finditer(content):
            concerns.append(f'Suspiciously deep import path: "{match.group(1)[:50]}..."')

        result = QuickCheckResult(
            safe=not concerns,
            concerns=concerns,
            claims_checked=len(claims),
            duration_ms=(time.perf_counter() - started) * 1000,
        )
        if self.enable_caching:
            self.cache.set(key, result)

        logger.debug(f"Quick check: safe={result.safe} concerns={len(concerns)} claims={len(claims)}")
        return result

    def clear_cache(self) -> None:
        self.cache.clear()
