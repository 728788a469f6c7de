"""
execution/ledger.py - Append-only transfer ledger sinks.

The router writes one LedgerEntry per terminal outcome. Sinks only append;
there is no update or delete path.
"""

import asyncio
import json
from pathlib import Path
from typing import List, Protocol, Union, runtime_checkable

from core.models import LedgerEntry


@runtime_checkable
class LedgerSink(Protocol):
    """Anything that can append a ledger entry."""

    async def record(self, entry: LedgerEntry) -> None:
        ...


class InMemoryLedger:
    """Ledger kept in process memory (tests, dry runs)."""

    def __init__(self):
        self._entries: List[LedgerEntry] = []

    async def record(self, entry: LedgerEntry) -> None:
        self._entries.append(entry)

    @property
    def entries(self) -> List[LedgerEntry]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)


class JsonlLedger:
    """
    One JSON object per line, appended to `path`.

    Writes are serialized with a lock so concurrent routes never interleave
    partial lines.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    async def record(self, entry: LedgerEntry) -> None:
        line = json.dumps(entry.to_dict(), ensure_ascii=False)
        async with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")

    def read_all(self) -> List[dict]:
        """All entries written so far, oldest first."""
        if not self.path.exists():
            return []
        with open(self.path, "r", encoding="utf-8") as f:
            return [json.loads(line) for line in f if line.strip()]
