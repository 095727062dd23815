from __future__ import annotations

import asyncio
import copy
import json
import os
from typing import Any, Dict, List, Optional

from db.store import (
    Document,
    DocumentStore,
    Snapshot,
    SnapshotCallback,
    WriteBatch,
    apply_op,
    check_unique,
    matches,
)
from utils.logger import get_logger

_logger = get_logger(__name__)

FILE_PREFIX = "shop_"


class LocalStore(DocumentStore):
    """
    Offline fallback: collections kept in memory and mirrored to
    ``<folder>/shop_<collection>.json``. With folder=None nothing touches disk.

    Subscribers are called synchronously, right after the write lands.
    """

    offline = True

    def __init__(self, folder: Optional[str] = None) -> None:
        super().__init__()
        self.folder = folder
        self._data: Dict[str, List[Document]] = {}
        self._lock = asyncio.Lock()

    def _file(self, collection: str) -> str:
        return os.path.join(self.folder, f"{FILE_PREFIX}{collection}.json")

    def _load(self, collection: str) -> List[Document]:
        if collection in self._data:
            return self._data[collection]
        docs: List[Document] = []
        if self.folder and os.path.exists(self._file(collection)):
            with open(self._file(collection), "r", encoding="utf-8") as f:
                docs = json.load(f) or []
        self._data[collection] = docs
        return docs

    def _write_tmp(self, collection: str, docs: List[Document]) -> str:
        tmp = self._file(collection) + ".tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(docs, f, ensure_ascii=False, indent=2)
        return tmp

    def _persist(self, staged: Dict[str, List[Document]]) -> None:
        """
        Write every staged collection, or leave the files as they were.
        All temp files are written before any of them replaces its target.
        """
        if not self.folder:
            return
        os.makedirs(self.folder, exist_ok=True)
        tmp_files: Dict[str, str] = {}
        replaced: List[str] = []
        try:
            for collection, docs in staged.items():
                tmp_files[collection] = self._write_tmp(collection, docs)
            for collection, tmp in tmp_files.items():
                os.replace(tmp, self._file(collection))
                replaced.append(collection)
        except OSError:
            for collection in replaced:
                # self._data still holds the committed version
                os.replace(
                    self._write_tmp(collection, self._data[collection]),
                    self._file(collection),
                )
            raise
        finally:
            for tmp in tmp_files.values():
                if os.path.exists(tmp):
                    os.remove(tmp)

    # ---------------------------
    # Reads
    # ---------------------------

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        for doc in self._load(collection):
            if doc["id"] == doc_id:
                return copy.deepcopy(doc)
        return None

    async def find(self, collection: str, **filters: Any) -> Snapshot:
        return [
            copy.deepcopy(doc) for doc in self._load(collection) if matches(doc, filters)
        ]

    async def all(self, collection: str) -> Snapshot:
        return copy.deepcopy(self._load(collection))

    # ---------------------------
    # Writes
    # ---------------------------

    async def commit(self, batch: WriteBatch) -> List[str]:
        if not batch.ops:
            return []

        async with self._lock:
            # stage every op on copies first; nothing is visible until all pass
            staged = {c: copy.deepcopy(self._load(c)) for c in batch.collections}
            created: List[str] = []
            for op in batch.ops:
                docs = staged[op.collection]
                index = next(
                    (i for i, d in enumerate(docs) if d["id"] == op.doc_id), None
                )
                current = docs[index] if index is not None else None
                updated = apply_op(op, current)
                if op.kind == "create":
                    check_unique(op, docs)
                    docs.append(updated)
                    created.append(op.doc_id)
                else:
                    docs[index] = updated

            self._persist(staged)
            self._data.update(staged)

        _logger.debug(f"Committed {len(batch)} op(s) on {batch.collections} (local)")
        for collection in batch.collections:
            self._notify(collection)
        return created

    # ---------------------------
    # Subscriptions
    # ---------------------------

    def _deliver_initial(self, collection: str, callback: SnapshotCallback) -> None:
        callback(copy.deepcopy(self._load(collection)))

    def _notify(self, collection: str) -> None:
        for callback in self._callbacks(collection):
            try:
                callback(copy.deepcopy(self._data[collection]))
            except Exception:
                _logger.exception(f"Subscriber on '{collection}' failed")
