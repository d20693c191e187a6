"""
Hierarchical aggregate document store.

Documents live at slash-separated paths:

    users/{tenant}/historical/root/hourly/{YYYY-MM-DD}/hours/{HH}
    users/{tenant}/historical/root/daily/{YYYY-MM-DD}
    users/{tenant}/historical/root/weekly/{YYYY-Www}
    users/{tenant}/historical/root/monthly/{YYYY-MM}

Every document has an integer version; conditional writes give the
optimistic read-modify-write used by `run_transaction`.
"""

from __future__ import annotations
import abc
import asyncio
import copy
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from . import canon, exceptions

logger = logging.getLogger(__name__)

Mutation = Callable[[Optional[Dict[str, Any]]], Optional[Dict[str, Any]]]


@dataclass(frozen=True)
class Snapshot:
    path: str
    data: Dict[str, Any]
    version: int


class DocumentStore(abc.ABC):
    @abc.abstractmethod
    async def get(self, path: str) -> Optional[Snapshot]: ...

    @abc.abstractmethod
    async def put(
        self, path: str, data: Dict[str, Any], *, expected_version: Optional[int] = None
    ) -> int:
        """
        Write `data` at `path` and return the new version.

        expected_version: None writes unconditionally; 0 requires the document
        to be absent; n requires the stored version to still be n. A mismatch
        raises VersionConflict.
        """

    @abc.abstractmethod
    async def children(self, prefix: str) -> Dict[str, Snapshot]:
        """Direct child documents of `prefix`, keyed by their last path segment."""

    async def exists(self, path: str) -> bool:
        return await self.get(path) is not None


class InMemoryDocumentStore(DocumentStore):
    """
    Process-local store. Reads take their snapshot and then yield to the
    event loop (for `latency` seconds) like a network round trip, so
    concurrent read-modify-write cycles genuinely interleave.
    """

    def __init__(self, latency: float = 0.0):
        self._docs: Dict[str, Snapshot] = {}
        self._lock = asyncio.Lock()
        self.latency = latency
        self.writes = 0
        self.conflicts = 0

    async def get(self, path: str) -> Optional[Snapshot]:
        snap = self._docs.get(path)
        out = None if snap is None else Snapshot(path, copy.deepcopy(snap.data), snap.version)
        await asyncio.sleep(self.latency)
        return out

    async def put(
        self, path: str, data: Dict[str, Any], *, expected_version: Optional[int] = None
    ) -> int:
        async with self._lock:
            current = self._docs.get(path)
            current_version = current.version if current else 0
            if expected_version is not None and expected_version != current_version:
                self.conflicts += 1
                raise exceptions.VersionConflict(
                    f"{path}: expected version {expected_version}, found {current_version}"
                )
            version = current_version + 1
            self._docs[path] = Snapshot(path, copy.deepcopy(data), version)
            self.writes += 1
            return version

    async def children(self, prefix: str) -> Dict[str, Snapshot]:
        head = prefix.rstrip("/") + "/"
        out: Dict[str, Snapshot] = {}
        for path, snap in self._docs.items():
            if path.startswith(head) and "/" not in path[len(head):]:
                out[path[len(head):]] = Snapshot(path, copy.deepcopy(snap.data), snap.version)
        await asyncio.sleep(self.latency)
        return out

    def dump(self) -> Dict[str, Dict[str, Any]]:
        """Plain copy of every document, keyed by path."""
        return {p: copy.deepcopy(s.data) for p, s in sorted(self._docs.items())}


async def run_transaction(
    store: DocumentStore,
    path: str,
    mutate: Mutation,
    *,
    max_attempts: int = 5,
    backoff_s: float = 0.0,
) -> Optional[Dict[str, Any]]:
    """
    Atomic read-modify-write of one document with optimistic retries.

    `mutate` receives the current data (None if absent) and returns the
    document to write, or None to leave it untouched. It may run more than
    once and must not have side effects.
    """
    exceptions.require(max_attempts >= 1, "max_attempts must be >= 1")
    for attempt in range(1, max_attempts + 1):
        snap = await store.get(path)
        new = mutate(None if snap is None else snap.data)
        if new is None:
            return None
        try:
            await store.put(path, new, expected_version=snap.version if snap else 0)
            return new
        except exceptions.VersionConflict:
            logger.debug("Conflict on %s (attempt %d/%d); retrying", path, attempt, max_attempts)
            await asyncio.sleep(backoff_s * attempt)
    raise exceptions.MergeConflict(f"{path}: gave up after {max_attempts} attempts")


## Paths
def tenant_root(tenant_id: str) -> str:
    exceptions.require(
        bool(tenant_id) and "/" not in tenant_id,
        f"Invalid tenant id {tenant_id!r}",
        exceptions.DocumentError,
    )
    return canon.ROOT_TEMPLATE.format(tenant=tenant_id)


def hours_prefix(tenant_id: str, date_key: str) -> str:
    return f"{tenant_root(tenant_id)}/{canon.HOURLY}/{date_key}/hours"


def hourly_path(tenant_id: str, date_key: str, hour_key: str) -> str:
    return f"{hours_prefix(tenant_id, date_key)}/{hour_key}"


def daily_path(tenant_id: str, date_key: str) -> str:
    return f"{tenant_root(tenant_id)}/{canon.DAILY}/{date_key}"


def weekly_path(tenant_id: str, week_key: str) -> str:
    return f"{tenant_root(tenant_id)}/{canon.WEEKLY}/{week_key}"


def monthly_path(tenant_id: str, month_key: str) -> str:
    return f"{tenant_root(tenant_id)}/{canon.MONTHLY}/{month_key}"
