# src/taskmirror/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The cache / subscription / filter pipeline depends on Protocols instead of a
concrete backend. The remote document store is an external collaborator:
the local SQLite store and the test fakes both satisfy the same contract.
"""

from dataclasses import dataclass
from typing import Any, Callable, Protocol

from .query import Predicate

Record = dict[str, Any]
# Raw document payload as the store keeps it (camelCase fields, see task_codec).


@dataclass(frozen=True, slots=True)
class Document:
    """One pushed or fetched document: store-assigned id + raw payload."""

    id: str
    data: Record


@dataclass(frozen=True, slots=True)
class Increment:
    """Patch value: add `by` to the stored number. A missing or non-numeric field counts as 0."""

    by: int | float = 1


def apply_patch(current: Record, patch: Record) -> Record:
    """Shallow merge of `patch` over `current`, resolving Increment values."""
    out = dict(current)
    for key, value in patch.items():
        if isinstance(value, Increment):
            base = out.get(key)
            if isinstance(base, bool) or not isinstance(base, (int, float)):
                base = 0
            value = base + value.by
        out[key] = value
    return out


WRITE_KINDS = ("update", "merge", "delete")


@dataclass(frozen=True, slots=True)
class WriteOp:
    """
    One write of an atomic batch (see RemoteTaskStore.commit).

    update: patch an existing document; a missing one fails the whole batch.
    merge:  patch the document, creating it when it does not exist.
    delete: remove the document; a missing one is not an error.
    """

    kind: str
    collection: str
    doc_id: str
    data: Record | None = None

    def __post_init__(self) -> None:
        if self.kind not in WRITE_KINDS:
            raise ValueError(f"Unsupported write kind: {self.kind!r}")

    @classmethod
    def update(cls, collection: str, doc_id: str, patch: Record) -> WriteOp:
        return cls("update", collection, doc_id, dict(patch))

    @classmethod
    def merge(cls, collection: str, doc_id: str, patch: Record) -> WriteOp:
        return cls("merge", collection, doc_id, dict(patch))

    @classmethod
    def delete(cls, collection: str, doc_id: str) -> WriteOp:
        return cls("delete", collection, doc_id)


SnapshotCallback = Callable[[list[Document]], None]
ErrorCallback = Callable[[BaseException], None]


class Subscription(Protocol):
    """Handle for a live query. Cancelling must stop further callbacks."""

    def cancel(self) -> None: ...


class RemoteTaskStore(Protocol):
    """
    Document collection with live queries.

    query(...) pushes the FULL current result set on open and again on every
    change that affects the collection. Delivery happens later, from the
    event loop; the call itself never blocks.
    """

    def query(
            self,
            collection: str,
            predicates: list[Predicate],
            *,
            on_snapshot: SnapshotCallback,
            on_error: ErrorCallback,
    ) -> Subscription: ...

    async def fetch(self, collection: str, predicates: list[Predicate]) -> list[Document]: ...

    async def get(self, collection: str, doc_id: str) -> Record | None: ...

    async def create(self, collection: str, data: Record) -> str: ...

    async def mutate(self, collection: str, doc_id: str, patch: Record) -> None: ...

    async def delete(self, collection: str, doc_id: str) -> None: ...

    async def commit(self, ops: list[WriteOp]) -> None:
        """Apply every write or none of them. Live queries see the batch as one change."""
        ...
