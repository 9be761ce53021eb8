"""Document store backends.

Both backends satisfy the same synchronous contract so the persistence
adapter can swap one for the other per call:

- ``SqlDocumentStore`` keeps documents in the ``documents`` table and is the
  system of record ("remote").
- ``InMemoryDocumentStore`` is the process-local mirror used when the remote
  store cannot be reached. Tests build a fresh one per test.

Documents are plain dicts. Reads return deep copies with the document id
injected under ``"id"``; writes never store ``"id"`` in the body.
"""

from __future__ import annotations

import copy
import threading
from typing import Any, Collection, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import select, update
from sqlalchemy.orm import sessionmaker

from .. import models

# (field, op, value); op is one of "==", "!=", "in", ">=", "<="
Filter = Tuple[str, str, Any]
# (field, descending)
Order = Tuple[str, bool]

_OPS = {"==", "!=", "in", ">=", "<="}
# Optimistic-concurrency retries before giving up on a contended document
_CAS_ATTEMPTS = 5


def _matches(data: Mapping[str, Any], filters: Sequence[Filter]) -> bool:
    for field, op, value in filters:
        current = data.get(field)
        if op == "==":
            if current != value:
                return False
        elif op == "!=":
            if current == value:
                return False
        elif op == "in":
            if current not in value:
                return False
        elif op == ">=":
            if current is None or current < value:
                return False
        elif op == "<=":
            if current is None or current > value:
                return False
        else:
            raise ValueError(f"Unsupported filter operator: {op}")
    return True


def _expected_ok(data: Mapping[str, Any], expected: Mapping[str, Collection[Any]]) -> bool:
    return all(data.get(field) in allowed for field, allowed in expected.items())


def _sort(rows: List[Dict[str, Any]], order: Optional[Order]) -> List[Dict[str, Any]]:
    if not order:
        return rows
    field, descending = order
    # Missing values sort last either way
    present = [r for r in rows if r.get(field) is not None]
    missing = [r for r in rows if r.get(field) is None]
    present.sort(key=lambda r: r[field], reverse=descending)
    return present + missing


def _with_id(doc_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(dict(data))
    out["id"] = doc_id
    return out


def _body(data: Mapping[str, Any]) -> Dict[str, Any]:
    return {k: copy.deepcopy(v) for k, v in data.items() if k != "id"}


def validate_filters(filters: Iterable[Filter]) -> List[Filter]:
    out = list(filters or [])
    for f in out:
        if len(f) != 3 or f[1] not in _OPS:
            raise ValueError(f"Invalid filter: {f!r}")
    return out


class DocumentStore:
    """Contract shared by the remote store and the local mirror."""

    def query(self, collection: str, filters: Sequence[Filter] = (), order: Optional[Order] = None) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def put(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def patch(self, collection: str, doc_id: str, changes: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        """Merge ``changes`` into an existing document; ``None`` if absent."""
        return self.compare_and_set(collection, doc_id, {}, changes)

    def compare_and_set(
        self,
        collection: str,
        doc_id: str,
        expected: Mapping[str, Collection[Any]],
        changes: Mapping[str, Any],
    ) -> Optional[Dict[str, Any]]:
        """Merge ``changes`` only if each ``expected[field]`` holds the current value.

        Returns the merged document, or ``None`` when the document is missing
        or a precondition no longer holds.
        """
        raise NotImplementedError

    def ping(self) -> None:
        raise NotImplementedError


class InMemoryDocumentStore(DocumentStore):
    def __init__(self, seed: Optional[Mapping[str, Mapping[str, Mapping[str, Any]]]] = None):
        self._lock = threading.RLock()
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        for collection, docs in (seed or {}).items():
            for doc_id, data in docs.items():
                self.put(collection, doc_id, data)

    def query(self, collection, filters=(), order=None):
        filters = validate_filters(filters)
        with self._lock:
            rows = [
                _with_id(doc_id, data)
                for doc_id, data in self._data.get(collection, {}).items()
                if _matches(data, filters)
            ]
        return _sort(rows, order)

    def get(self, collection, doc_id):
        with self._lock:
            data = self._data.get(collection, {}).get(doc_id)
            return _with_id(doc_id, data) if data is not None else None

    def put(self, collection, doc_id, data):
        with self._lock:
            self._data.setdefault(collection, {})[doc_id] = _body(data)
            return _with_id(doc_id, self._data[collection][doc_id])

    def compare_and_set(self, collection, doc_id, expected, changes):
        with self._lock:
            current = self._data.get(collection, {}).get(doc_id)
            if current is None or not _expected_ok(current, expected):
                return None
            current.update(_body(changes))
            return _with_id(doc_id, current)

    def ping(self) -> None:
        return None


class SqlDocumentStore(DocumentStore):
    """Documents persisted through SQLAlchemy.

    String ``==``/``in`` filters are pushed into the query; every write
    bumps ``version`` and conditional writes only land on the version they
    read.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def _select(self, collection: str, filters: Sequence[Filter]):
        stmt = select(models.Document).where(models.Document.collection == collection)
        # String equality and membership run in SQL; the rest is checked in Python
        for field, op, value in filters:
            column = models.Document.data[field].as_string()
            if op == "==" and isinstance(value, str):
                stmt = stmt.where(column == value)
            elif op == "in" and value and all(isinstance(v, str) for v in value):
                stmt = stmt.where(column.in_(list(value)))
        return stmt

    def query(self, collection, filters=(), order=None):
        filters = validate_filters(filters)
        with self._session_factory() as db:
            rows = [
                _with_id(row.doc_id, row.data or {})
                for row in db.scalars(self._select(collection, filters))
                if _matches(row.data or {}, filters)
            ]
        return _sort(rows, order)

    def get(self, collection, doc_id):
        with self._session_factory() as db:
            row = db.get(models.Document, (collection, doc_id))
            return _with_id(row.doc_id, row.data or {}) if row is not None else None

    def put(self, collection, doc_id, data):
        body = _body(data)
        with self._session_factory() as db:
            row = db.get(models.Document, (collection, doc_id))
            if row is None:
                db.add(models.Document(collection=collection, doc_id=doc_id, data=body, version=1))
            else:
                row.data = body
                row.version = (row.version or 0) + 1
            db.commit()
        return _with_id(doc_id, body)

    def compare_and_set(self, collection, doc_id, expected, changes):
        for _ in range(_CAS_ATTEMPTS):
            with self._session_factory() as db:
                row = db.get(models.Document, (collection, doc_id))
                if row is None:
                    return None
                current = dict(row.data or {})
                if not _expected_ok(current, expected):
                    return None
                merged = {**current, **_body(changes)}
                seen = row.version
                result = db.execute(
                    update(models.Document)
                    .where(
                        models.Document.collection == collection,
                        models.Document.doc_id == doc_id,
                        models.Document.version == seen,
                    )
                    .values(data=merged, version=seen + 1)
                    .execution_options(synchronize_session=False)
                )
                db.commit()
                if result.rowcount == 1:
                    return _with_id(doc_id, merged)
            # Another writer got in between read and write; re-read and retry.
        return None

    def ping(self) -> None:
        with self._session_factory() as db:
            db.get(models.Document, (models.Collections.SYSTEM, models.Collections.PING_DOC))
