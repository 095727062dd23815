"""
Document store contract shared by the hosted (sqlite) and local fallback backends.

Documents are plain dicts with camelCase keys. Every stored document carries an
``id`` and a ``createdAt`` timestamp assigned by the store.
"""

from __future__ import annotations

import copy
import re
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Literal, Optional, Sequence, Tuple

from utils.errors import ConditionFailed, NotFound

Document = Dict[str, Any]
Snapshot = List[Document]
SnapshotCallback = Callable[[Snapshot], None]
Unsubscribe = Callable[[], None]

COLLECTIONS = ("users", "products", "orders", "transactions", "sessions")

_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def new_id() -> str:
    return uuid.uuid4().hex


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def check_field(name: str) -> str:
    if not _FIELD_RE.match(name):
        raise ValueError(f"invalid field name {name!r}")
    return name


def stamp(record: Document, doc_id: Optional[str] = None) -> Document:
    """Copy of record with id and createdAt filled in."""
    doc = copy.deepcopy(dict(record))
    doc.pop("id", None)
    doc.setdefault("createdAt", now_iso())
    doc["id"] = doc_id or new_id()
    return doc


@dataclass(frozen=True)
class WriteOp:
    kind: Literal["create", "update", "increment"]
    collection: str
    doc_id: str
    data: Document = field(default_factory=dict)
    field: Optional[str] = None
    delta: float = 0
    minimum: Optional[float] = None
    unique: Tuple[str, ...] = ()


class WriteBatch:
    """
    Ordered list of writes committed all-or-nothing by DocumentStore.commit.

    Ids for created documents are assigned up front, so later ops in the same
    batch can reference them.
    """

    def __init__(self) -> None:
        self.ops: List[WriteOp] = []

    def create(
        self, collection: str, record: Document, unique: Sequence[str] = ()
    ) -> str:
        """
        Queue a new document. Each field named in unique must not already hold
        the same value in the collection, or the whole batch is rejected.
        """
        doc_id = new_id()
        self.ops.append(
            WriteOp(
                "create",
                collection,
                doc_id,
                stamp(record, doc_id),
                unique=tuple(check_field(name) for name in unique),
            )
        )
        return doc_id

    def update(self, collection: str, doc_id: str, partial: Document) -> "WriteBatch":
        data = {k: v for k, v in partial.items() if k != "id"}
        self.ops.append(WriteOp("update", collection, doc_id, copy.deepcopy(data)))
        return self

    def increment(
        self,
        collection: str,
        doc_id: str,
        field_name: str,
        delta: float,
        minimum: Optional[float] = None,
    ) -> "WriteBatch":
        """
        Add delta to a numeric field, evaluated against the committed value.
        If the result would be below minimum, the whole batch is rejected.
        """
        self.ops.append(
            WriteOp(
                "increment",
                collection,
                doc_id,
                field=check_field(field_name),
                delta=delta,
                minimum=minimum,
            )
        )
        return self

    @property
    def collections(self) -> List[str]:
        seen: List[str] = []
        for op in self.ops:
            if op.collection not in seen:
                seen.append(op.collection)
        return seen

    def __len__(self) -> int:
        return len(self.ops)


def apply_op(op: WriteOp, current: Optional[Document]) -> Document:
    """
    Return the new version of a document after op. Pure; raises NotFound or
    ConditionFailed without touching anything.
    """
    if op.kind == "create":
        return copy.deepcopy(op.data)

    if current is None:
        raise NotFound(f"{op.collection}/{op.doc_id} does not exist")

    updated = copy.deepcopy(current)
    if op.kind == "update":
        updated.update(copy.deepcopy(op.data))
        updated["id"] = op.doc_id
        return updated

    value = (updated.get(op.field) or 0) + op.delta
    if op.minimum is not None and value < op.minimum:
        raise ConditionFailed(op.collection, op.doc_id, op.field)
    updated[op.field] = value
    return updated


def matches(doc: Document, filters: Dict[str, Any]) -> bool:
    return all(doc.get(k) == v for k, v in filters.items())


def unique_clash(op: WriteOp, field_name: str) -> ConditionFailed:
    value = op.data.get(field_name)
    return ConditionFailed(
        op.collection,
        op.doc_id,
        field_name,
        f"{op.collection}.{field_name} {value!r} is already taken",
    )


def check_unique(op: WriteOp, docs: Iterable[Document]) -> None:
    """
    Raise ConditionFailed if a unique field of op clashes with docs.
    Missing or None values never clash.
    """
    docs = list(docs)
    for name in op.unique:
        if op.data.get(name) is None:
            continue
        if any(matches(doc, {name: op.data.get(name)}) for doc in docs):
            raise unique_clash(op, name)


class DocumentStore(ABC):
    """
    create / update / subscribe over named collections, plus atomic batches.

    Subscribers get the full collection snapshot. The local backend delivers
    synchronously after each write; the hosted backend delivers on a later loop
    iteration, so callers must not assume their own writes are visible yet.
    """

    offline: bool = False

    def __init__(self) -> None:
        self._subscribers: Dict[str, List[SnapshotCallback]] = {}

    async def create(
        self, collection: str, record: Document, unique: Sequence[str] = ()
    ) -> str:
        batch = WriteBatch()
        doc_id = batch.create(collection, record, unique)
        await self.commit(batch)
        return doc_id

    async def update(self, collection: str, doc_id: str, partial: Document) -> None:
        """Shallow merge of partial into an existing document."""
        await self.commit(WriteBatch().update(collection, doc_id, partial))

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Document]: ...

    @abstractmethod
    async def find(self, collection: str, **filters: Any) -> Snapshot: ...

    @abstractmethod
    async def all(self, collection: str) -> Snapshot: ...

    @abstractmethod
    async def commit(self, batch: WriteBatch) -> List[str]:
        """Apply every op in batch or none. Returns ids of created documents."""

    @abstractmethod
    def _deliver_initial(self, collection: str, callback: SnapshotCallback) -> None: ...

    async def drain(self) -> None:
        """Wait for pending subscriber deliveries. Nothing to wait for by default."""

    async def close(self) -> None:
        self._subscribers.clear()

    def subscribe(self, collection: str, callback: SnapshotCallback) -> Unsubscribe:
        callbacks = self._subscribers.setdefault(collection, [])
        callbacks.append(callback)
        self._deliver_initial(collection, callback)

        def unsubscribe() -> None:
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    def _callbacks(self, collection: str) -> List[SnapshotCallback]:
        return list(self._subscribers.get(collection, []))
