"""The current-state cell — the one place a fungus' live program lives.

Readers call ``get()`` and keep the reference they got; it is an
immutable FungiState, so a concurrent replace can never tear it.
Writers hold ``writer()`` for the whole read-modify-write section and
swap the new state in with ``install()``.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fungi.exceptions import EmptyRuleSystem
from fungi.types import FungiState


class StateCell:
    def __init__(self, initial: FungiState | None = None) -> None:
        self._state = initial or FungiState()
        self._lock = asyncio.Lock()

    def get(self) -> FungiState:
        return self._state

    @property
    def busy(self) -> bool:
        """True while a writer holds the cell."""
        return self._lock.locked()

    @asynccontextmanager
    async def writer(self) -> AsyncIterator["StateCell"]:
        async with self._lock:
            yield self

    def install(self, state: FungiState) -> None:
        """Swap in ``state``. Caller must hold ``writer()``."""
        if not self._lock.locked():
            raise RuntimeError("StateCell.install() called without holding writer()")
        if state.rule_system.is_empty:
            raise EmptyRuleSystem("refusing to install an empty rule system")
        self._state = state
