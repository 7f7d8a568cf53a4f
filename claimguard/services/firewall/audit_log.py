"""
Audit log

Buffered, append-only JSONL record of firewall decisions. Delivery is
at-least-once: a failed flush puts entries back at the front of the buffer,
so a crash mid-flush can duplicate lines. Only a backlog grown past
``max_pending`` during a sustained write failure loses its oldest entries.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Union

from pydantic import ValidationError

from claimguard.models import AuditEntry, AuditStats

logger = logging.getLogger(__name__)

FLUSH_ATTEMPTS = 3
INITIAL_RETRY_DELAY = 0.1


def _append_lines(path: Path, lines: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a", encoding="utf-8") as handle:
        handle.write(lines)


def _read_entries(path: Path) -> List[AuditEntry]:
    if not path.exists():
        return []

    entries: List[AuditEntry] = []
    with open(path, "r", encoding="utf-8") as handle:
        for line in handle:
            line = line.strip()
            if not line:
                continue
            try:
                entries.append(AuditEntry.model_validate_json(line))
            except ValidationError as exc:
                logger.debug(f"Skipping malformed audit line in {path}: {exc}")
    return entries


class AuditLog:
    """Owns the audit buffer and its backing file."""

    def __init__(
        self,
        path: Union[str, Path],
        buffer_size: int = 100,
        flush_interval: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        max_pending: Optional[int] = None,
    ) -> None:
        self.path = Path(path)
        self.buffer_size = buffer_size
        self.max_pending = max(max_pending if max_pending is not None else buffer_size * 10, buffer_size)
        self.dropped = 0
        self.flush_interval = flush_interval
        self._clock = clock
        self._sleep = sleep
        self._buffer: List[AuditEntry] = []
        self._last_flush = clock()
        self._lock = asyncio.Lock()
        self._failing = False

    @property
    def pending(self) -> int:
        return len(self._buffer)

    async def record(self, entry: AuditEntry) -> None:
        self._buffer.append(entry)
        self._trim_backlog()
        due = self._clock() - self._last_flush >= self.flush_interval
        # While writes fail, only the interval triggers another attempt
        full = len(self._buffer) >= self.buffer_size and not self._failing
        if full or due:
            await self.flush()

    def _trim_backlog(self) -> None:
        overflow = len(self._buffer) - self.max_pending
        if overflow > 0:
            del self._buffer[:overflow]
            self.dropped += overflow
            logger.warning(f"Audit backlog above {self.max_pending} entries, dropped {overflow} oldest")

    async def flush(self) -> bool:
        """Write buffered entries. Returns False when every attempt failed."""
        async with self._lock:
            self._last_flush = self._clock()
            if not self._buffer:
                return True

            entries, self._buffer = self._buffer, []
            lines = "".join(entry.model_dump_json(by_alias=True) + "\n" for entry in entries)

            delay = INITIAL_RETRY_DELAY
            for attempt in range(1, FLUSH_ATTEMPTS + 1):
                try:
                    await asyncio.to_thread(_append_lines, self.path, lines)
                    logger.debug(f"Flushed {len(entries)} audit entries to {self.path}")
                    self._failing = False
                    return True
                except OSError as exc:
                    if attempt == FLUSH_ATTEMPTS:
                        logger.error(f"Failed to write audit log after {attempt} attempts: {exc}")
                        break
                    logger.warning(f"Audit log write retry {attempt}: {exc}")
                    await self._sleep(delay)
                    delay *= 2

            self._buffer = entries + self._buffer
            self._failing = True
            self._trim_backlog()
            return False

    async def recent(self, limit: int = 100) -> List[AuditEntry]:
        """Last ``limit`` entries, persisted ones first, then those still buffered."""
        entries = await asyncio.to_thread(_read_entries, self.path)
        entries.extend(self._buffer)
        return entries[-limit:] if limit > 0 else []

    async def stats(self, since: Optional[datetime] = None) -> AuditStats:
        entries = await asyncio.to_thread(_read_entries, self.path)
        entries.extend(self._buffer)
        if since is not None:
            if since.tzinfo is None:
                since = since.replace(tzinfo=timezone.utc)
            entries = [entry for entry in entries if entry.timestamp >= since]

        by_violation: dict = {}
        by_mode: dict = {}
        allowed = 0
        for entry in entries:
            allowed += 1 if entry.allowed else 0
            by_mode[entry.mode.value] = by_mode.get(entry.mode.value, 0) + 1
            for violation in entry.violations:
                by_violation[violation] = by_violation.get(violation, 0) + 1

        total = len(entries)
        return AuditStats(
            total=total,
            allowed=allowed,
            blocked=total - allowed,
            by_violation=by_violation,
            by_mode=by_mode,
            avg_duration_ms=sum(entry.duration_ms for entry in entries) / total if total else 0.0,
        )

    async def clear(self) -> None:
        self._buffer.clear()
        if self.path.exists():
            await asyncio.to_thread(self.path.write_text, "", "utf-8")
        logger.info(f"Audit log cleared: {self.path}")

    async def close(self) -> None:
        await self.flush()
