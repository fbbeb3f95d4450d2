import dataclasses
import threading

from .types import TokenRecord


class TokenStore:
    """Ordered collection of TokenRecords keyed by a unique id.

    Records are immutable snapshots; every change swaps in a new record under
    the store lock, so readers never observe a half-applied update.
    Unknown ids are reported as None/False, never raised.
    """

    def __init__(self):
        self._records: list[TokenRecord] = []
        self._next_id = 1
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._records)

    def _index_of(self, token_id: int) -> int:
        for i, rec in enumerate(self._records):
            if rec.id == token_id:
                return i
        return -1

    def add(self, credential: str) -> TokenRecord:
        with self._lock:
            # ids come from a counter, not len(), so they are never reused
            record = TokenRecord(id=self._next_id, credential=credential)
            self._next_id += 1
            self._records.append(record)
            return record

    def get(self, token_id: int) -> TokenRecord | None:
        with self._lock:
            i = self._index_of(token_id)
            return self._records[i] if i != -1 else None

    def update(self, token_id: int, **changes) -> TokenRecord | None:
        if "id" in changes:
            raise TypeError("token id cannot be updated")
        for field in ("usage", "limit"):
            if changes.get(field) is not None and changes[field] < 0:
                raise ValueError(f"{field} must be non-negative")
        with self._lock:
            i = self._index_of(token_id)
            if i == -1:
                return None
            self._records[i] = dataclasses.replace(self._records[i], **changes)
            return self._records[i]

    def delete(self, token_id: int) -> bool:
        with self._lock:
            i = self._index_of(token_id)
            if i == -1:
                return False
            del self._records[i]
            return True

    def snapshot(self) -> list[TokenRecord]:
        with self._lock:
            return list(self._records)

    def charge(self, token_id: int, cost: int) -> TokenRecord | None:
        """Add cost to a record's usage, treating unset usage as zero."""
        if cost < 0:
            raise ValueError("cost must be non-negative")
        with self._lock:
            i = self._index_of(token_id)
            if i == -1:
                return None
            rec = self._records[i]
            self._records[i] = dataclasses.replace(rec, usage=(rec.usage or 0) + cost)
            return self._records[i]
