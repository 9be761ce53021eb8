"""Persistence adapter: remote document store with a local-mirror fallback.

Every call tries the remote store first, off the event loop. Any failure
(network, auth, timeout, driver error) is logged and the same operation is
served by the in-process mirror instead. Successful remote reads and writes
are copied into the mirror so that reads stay consistent if the remote store
drops out later in the same process. Writes that only reached the mirror
are replayed to the remote store on its next successful call. Only when
both paths fail does the caller see a ``PersistenceError``.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Collection, Dict, List, Mapping, Optional, Sequence, Set, Tuple, TypeVar

from ..core.config import settings
from ..utils.errors import PersistenceError
from .document_store import DocumentStore, Filter, InMemoryDocumentStore, Order, SqlDocumentStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class PersistenceAdapter:
    def __init__(
        self,
        remote: Optional[DocumentStore],
        mirror: Optional[InMemoryDocumentStore] = None,
        probe_timeout: float = settings.CONNECTIVITY_PROBE_TIMEOUT,
    ):
        self.remote = remote
        self.mirror = mirror if mirror is not None else InMemoryDocumentStore()
        self.probe_timeout = probe_timeout
        # (collection, doc_id) written only to the mirror while the remote was down
        self._pending: Set[Tuple[str, str]] = set()

    async def _remote(self, op: str, collection: str, method: str, *args: Any) -> tuple[bool, Any]:
        """Run ``method`` on the remote store; ``(False, None)`` on failure."""
        if self.remote is None:
            return False, None
        try:
            if self._pending:
                await asyncio.to_thread(self._replay_pending)
            return True, await asyncio.to_thread(getattr(self.remote, method), *args)
        except Exception as exc:
            logger.warning(
                "Remote %s on %s failed, using local mirror: %s",
                op,
                collection,
                exc,
                extra={"collection": collection, "operation": op},
            )
            return False, None

    def _replay_pending(self) -> None:
        """Copy documents written during an outage to the remote store.

        The mirror copy wins: it holds every change made while offline.
        """
        for collection, doc_id in sorted(self._pending):
            doc = self.mirror.get(collection, doc_id)
            if doc is not None:
                self.remote.put(collection, doc_id, doc)
            self._pending.discard((collection, doc_id))
            logger.info("Replayed offline write %s/%s to remote store", collection, doc_id)

    def _local(self, op: str, collection: str, fn: Callable[..., T], *args: Any) -> T:
        try:
            return fn(*args)
        except Exception as exc:
            logger.error("Local mirror %s on %s failed: %s", op, collection, exc)
            raise PersistenceError(
                "write failed" if op != "read" else "read failed",
                {"collection": collection},
            ) from exc

    async def fetch_collection(
        self,
        name: str,
        filters: Sequence[Filter] = (),
        order: Optional[Order] = None,
    ) -> List[Dict[str, Any]]:
        ok, rows = await self._remote("read", name, "query", name, list(filters), order)
        if ok:
            for row in rows or []:
                self.mirror.put(name, row["id"], row)
            return rows or []
        return self._local("read", name, self.mirror.query, name, list(filters), order)

    async def fetch_one(self, name: str, doc_id: str) -> Optional[Dict[str, Any]]:
        if not doc_id:
            return None
        ok, row = await self._remote("read", name, "get", name, doc_id)
        if ok:
            if row is not None:
                self.mirror.put(name, doc_id, row)
            return row
        return self._local("read", name, self.mirror.get, name, doc_id)

    async def write(self, name: str, doc_id: Optional[str], data: Mapping[str, Any]) -> str:
        doc_id = doc_id or new_id()
        ok, stored = await self._remote("write", name, "put", name, doc_id, data)
        self._local("write", name, self.mirror.put, name, doc_id, stored if ok else data)
        if not ok and self.remote is not None:
            self._pending.add((name, doc_id))
        return doc_id

    async def update(self, name: str, doc_id: str, patch: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        """Merge ``patch`` into a document; returns the merged record or ``None`` if absent."""
        return await self.update_if(name, doc_id, {}, patch)

    async def update_if(
        self,
        name: str,
        doc_id: str,
        expected: Mapping[str, Collection[Any]],
        patch: Mapping[str, Any],
    ) -> Optional[Dict[str, Any]]:
        """Conditional merge: applies only while ``expected`` still holds.

        Returns the merged record, or ``None`` when the document is missing
        or the precondition failed at write time.
        """
        ok, merged = await self._remote(
            "write",
            name,
            "compare_and_set",
            name,
            doc_id,
            expected,
            patch,
        )
        if ok:
            if merged is not None:
                self._local("write", name, self.mirror.put, name, doc_id, merged)
            return merged
        merged = self._local("write", name, self.mirror.compare_and_set, name, doc_id, expected, patch)
        if merged is not None and self.remote is not None:
            self._pending.add((name, doc_id))
        return merged

    async def check_connection(self) -> bool:
        """Probe the remote store; ``False`` when unreachable within the timeout."""
        if self.remote is None:
            return False
        try:
            await asyncio.wait_for(asyncio.to_thread(self.remote.ping), timeout=self.probe_timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning("Connectivity probe timed out after %.1fs", self.probe_timeout)
            return False
        except Exception as exc:
            logger.warning("Connectivity probe failed: %s", exc)
            return False


_adapter: Optional[PersistenceAdapter] = None


def get_persistence() -> PersistenceAdapter:
    """Process-wide adapter built from settings."""
    global _adapter
    if _adapter is None:
        remote: Optional[DocumentStore] = None
        if settings.REMOTE_STORE_ENABLED:
            from ..database import SessionLocal

            remote = SqlDocumentStore(SessionLocal)
        mirror = InMemoryDocumentStore()
        if settings.SEED_LOCAL_MIRROR:
            from ..services.seed import demo_documents

            mirror = InMemoryDocumentStore(demo_documents())
        _adapter = PersistenceAdapter(remote, mirror)
    return _adapter
