"""Unit of work for multi-step invoice writes.

With MONGO_TRANSACTIONS enabled every write joins one transaction and an
exception aborts all of them. Without it each step registers an undo action
and an exception runs those newest-first. Undo failures are logged, never
raised, so the original error reaches the caller.
"""

import logging
from typing import Awaitable, Callable, List, Tuple

from database import database

logger = logging.getLogger(__name__)


class UnitOfWork:
    def __init__(self, name: str):
        self.name = name
        self.session = None
        self._transaction = None
        self._compensations: List[Tuple[str, Callable[[], Awaitable]]] = []

    @property
    def transactional(self) -> bool:
        return self.session is not None

    async def __aenter__(self):
        self._transaction = database.transaction()
        self.session = await self._transaction.__aenter__()
        return self

    def on_rollback(self, description: str, action: Callable[[], Awaitable]) -> None:
        """Register an undo step; skipped when a real transaction is open."""
        if not self.transactional:
            self._compensations.append((description, action))

    async def __aexit__(self, exc_type, exc, tb):
        if exc_type is None:
            await self._transaction.__aexit__(None, None, None)
            return False

        logger.warning(f"{self.name} failed, rolling back: {exc}")
        try:
            await self._transaction.__aexit__(exc_type, exc, tb)
        finally:
            await self._compensate()
        return False

    async def _compensate(self) -> None:
        while self._compensations:
            description, action = self._compensations.pop()
            try:
                await action()
            except Exception as e:
                logger.error(f"{self.name}: rollback step '{description}' failed: {e}")
