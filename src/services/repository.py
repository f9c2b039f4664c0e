"""Typed persistence for grievances, departments and AI logs.

Key layout inside the :class:`~src.services.store.KeyValueStore`::

    grievance:<id>              -> Grievance document
    all_grievances              -> [id, ...]   most-recent-first
    user_grievances:<user_id>   -> [id, ...]   most-recent-first
    departments                 -> [Department, ...] creation order
    ai_log:<log_id>             -> AIClassificationLog document

Indexes are plain id lists; callers prepend on insert so reading an
index yields newest first without sorting.
"""

from __future__ import annotations

import asyncio
import weakref
from typing import Final

import structlog

from src.models.department import Department
from src.models.grievance import AIClassificationLog, Grievance
from src.services.store import KeyValueStore

logger = structlog.get_logger(__name__)

GLOBAL_INDEX: Final[str] = "all_grievances"
_GRIEVANCE_PREFIX: Final[str] = "grievance:"
_USER_INDEX_PREFIX: Final[str] = "user_grievances:"
_DEPARTMENTS_KEY: Final[str] = "departments"
_AI_LOG_PREFIX: Final[str] = "ai_log:"


def user_index(user_id: str) -> str:
    """Index key holding one submitter's grievance ids."""
    return f"{_USER_INDEX_PREFIX}{user_id}"


def lock_for(locks: weakref.WeakValueDictionary[str, asyncio.Lock], key: str) -> asyncio.Lock:
    """Return the lock for *key*, creating it on first use.

    The entry disappears once no coroutine holds or waits on the lock.
    """
    lock = locks.get(key)
    if lock is None:
        lock = locks[key] = asyncio.Lock()
    return lock


class GrievanceRepository:
    """Repository over a key-value store.

    Index prepends are serialised per index key so that two concurrent
    submissions cannot overwrite each other's id.
    """

    __slots__ = ("_index_locks", "_store")

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        self._index_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    @property
    def store(self) -> KeyValueStore:
        return self._store

    # -- grievances ---------------------------------------------------------

    async def get(self, grievance_id: str) -> Grievance | None:
        raw = await self._store.get(f"{_GRIEVANCE_PREFIX}{grievance_id}")
        if raw is None:
            return None
        return Grievance.model_validate(raw)

    async def save(self, grievance: Grievance) -> None:
        await self._store.set(f"{_GRIEVANCE_PREFIX}{grievance.id}", grievance.to_wire())

    async def prepend_to_index(self, index_key: str, grievance_id: str) -> None:
        async with lock_for(self._index_locks, index_key):
            ids: list[str] = await self._store.get(index_key) or []
            ids.insert(0, grievance_id)
            await self._store.set(index_key, ids)

    async def index_ids(self, index_key: str) -> list[str]:
        return await self._store.get(index_key) or []

    async def list_by_index(self, index_key: str) -> list[Grievance]:
        """Load every grievance referenced by *index_key*, in index order.

        Ids whose document is missing are skipped.
        """
        ids = await self.index_ids(index_key)
        loaded = await asyncio.gather(*(self.get(grievance_id) for grievance_id in ids))
        return [grievance for grievance in loaded if grievance is not None]

    # -- departments --------------------------------------------------------

    async def list_departments(self) -> list[Department]:
        raw = await self._store.get(_DEPARTMENTS_KEY) or []
        return [Department.model_validate(item) for item in raw]

    async def save_departments(self, departments: list[Department]) -> None:
        await self._store.set(_DEPARTMENTS_KEY, [department.to_wire() for department in departments])

    # -- AI logs ------------------------------------------------------------

    async def add_ai_log(self, entry: AIClassificationLog) -> None:
        await self._store.set(f"{_AI_LOG_PREFIX}{entry.id}", entry.to_wire())

    async def list_ai_logs(self) -> list[AIClassificationLog]:
        """Every AI log entry, newest first."""
        entries = [AIClassificationLog.model_validate(raw) for raw in await self._store.scan_prefix(_AI_LOG_PREFIX)]
        entries.sort(key=lambda entry: entry.timestamp, reverse=True)
        return entries
