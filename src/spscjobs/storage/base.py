"""Protocol definition for the document store."""

from __future__ import annotations

from typing import Any, Callable, Iterable, Protocol, runtime_checkable

Document = dict[str, Any]
Filter = tuple[str, str, Any]  # (field path, operator, value)


@runtime_checkable
class DocumentStore(Protocol):
    """Key-value document persistence addressed by ``(collection, key)``.

    Field paths use dots for nesting (``"metadata.source_url"``).
    """

    def get(self, collection: str, key: str) -> Document | None:
        """Return the document at *key*, or ``None``."""
        ...

    def set(self, collection: str, key: str, data: Document, *, merge: bool = False) -> None:
        """Write *data*; with *merge* only the given top-level fields change."""
        ...

    def update(self, collection: str, key: str, patch: Document) -> None:
        """Apply *patch* to an existing document, raising if it is missing."""
        ...

    def increment(self, collection: str, key: str, field: str, amount: int = 1) -> None:
        """Atomically add *amount* to a numeric field."""
        ...

    def delete(self, collection: str, key: str) -> None:
        """Remove the document at *key* (no-op if absent)."""
        ...

    def modify(
        self,
        collection: str,
        key: str,
        mutate: Callable[[Document | None], Document | None],
    ) -> Document | None:
        """Atomically read, transform and write one document.

        *mutate* receives the current document (or ``None``) and returns the
        replacement; returning ``None`` leaves the stored value untouched.
        """
        ...

    def query(
        self,
        collection: str,
        where: Iterable[Filter] = (),
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Document]:
        """Return documents matching every filter in *where*."""
        ...

    def close(self) -> None:
        ...
