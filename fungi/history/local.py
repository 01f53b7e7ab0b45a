"""Local fungi history — the append-only audit trail of our own programs.

Every installed FungiState is recorded here. Entries are never removed
or edited, so the ancestry of the current program can always be
reconstructed. When given a path the history is also written as JSON
lines and can be restored on the next boot.
"""

from __future__ import annotations

import logging
from pathlib import Path

import orjson

from fungi.exceptions import StorageExhausted
from fungi.types import FungiState, HistoryEntry

logger = logging.getLogger(__name__)


class FungiHistory:
    """Append-only log of (program, fitness) pairs in creation order."""

    def __init__(self, path: Path | None = None) -> None:
        self._entries: list[HistoryEntry] = []
        self._path = path

    def record(self, state: FungiState) -> HistoryEntry:
        """Append a state. Raises StorageExhausted if it cannot be persisted."""
        entry = HistoryEntry(
            rule_system=state.rule_system,
            fitness=state.fitness,
            sequence=state.created_at,
        )
        if self._path is not None:
            self._append_line(entry)
        self._entries.append(entry)
        return entry

    def all(self) -> list[HistoryEntry]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    # ── Persistence ──────────────────────────────────────────────

    def load(self) -> int:
        """Restore entries written by a previous run. Returns count loaded."""
        if self._path is None or not self._path.exists():
            return 0
        loaded = 0
        for line in self._path.read_bytes().splitlines():
            if not line.strip():
                continue
            try:
                self._entries.append(HistoryEntry.model_validate(orjson.loads(line)))
                loaded += 1
            except (orjson.JSONDecodeError, ValueError) as e:
                logger.warning("Skipping unreadable history line: %s", e)
        logger.info("Loaded %d history entries from %s", loaded, self._path)
        return loaded

    def _append_line(self, entry: HistoryEntry) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("ab") as f:
                f.write(orjson.dumps(entry.model_dump(mode="json")) + b"\n")
        except OSError as e:
            raise StorageExhausted(f"Cannot append to history at {self._path}: {e}") from e
