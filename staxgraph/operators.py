"""Pull-based query operators over the graph indexes."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterator, Optional

from .encoding import (
    U32_SIZE,
    decode_u32,
    encode_u32,
    ofv_relationship_prefix,
)
from .store import Collection, TxnContext


class QueryOperator(ABC):
    """An iterator of object ids that can be rewound with :meth:`reset`."""

    def __iter__(self) -> "QueryOperator":
        return self

    @abstractmethod
    def __next__(self) -> int:
        """Return the next id or raise StopIteration."""

    @abstractmethod
    def reset(self) -> None:
        """Rewind the operator to its first id."""


class _PrefixScan(QueryOperator):
    """Scan keys of a fixed length under a prefix, yielding a trailing u32."""

    def __init__(
        self, col: Collection, ctx: TxnContext, prefix: bytes, key_len: int
    ) -> None:
        self._col = col
        self._ctx = ctx
        self._prefix = prefix
        self._key_len = key_len
        self._cursor: Optional[Iterator[tuple[bytes, bytes]]] = None
        self.reset()

    def reset(self) -> None:
        self._cursor = self._col.seek(self._ctx, self._prefix)

    def __next__(self) -> int:
        if self._cursor is None:
            raise StopIteration
        entry = next(self._cursor, None)
        if entry is None:
            self._cursor = None
            raise StopIteration
        key = entry[0]
        if len(key) != self._key_len or not key.startswith(self._prefix):
            self._cursor = None
            raise StopIteration
        return decode_u32(key[self._key_len - U32_SIZE :])


class IndexScanOperator(_PrefixScan):
    """Objects whose ``field_id`` holds ``value_id``, read from the FVO index."""

    def __init__(
        self, col: Collection, ctx: TxnContext, field_id: int, value_id: int
    ) -> None:
        self.field_id = field_id
        self.value_id = value_id
        prefix = encode_u32(field_id) + encode_u32(value_id)
        super().__init__(col, ctx, prefix, U32_SIZE * 3)

    def reset(self) -> None:
        super().reset()


class ForwardScanOperator(_PrefixScan):
    """Targets of ``source_id``'s relationships of one type, read from OFV."""

    def __init__(
        self, col: Collection, ctx: TxnContext, source_id: int, field_id: int
    ) -> None:
        self.source_id = source_id
        self.field_id = field_id
        prefix = ofv_relationship_prefix(source_id, field_id)
        super().__init__(col, ctx, prefix, U32_SIZE + 1 + U32_SIZE * 2)

    def reset(self) -> None:
        super().reset()


class IntersectOperator(QueryOperator):
    """Ids produced by both inputs; each input must yield ascending ids."""

    def __init__(self, left: QueryOperator, right: QueryOperator) -> None:
        self._left = left
        self._right = right
        self._left_val: Optional[int] = None
        self._right_val: Optional[int] = None
        self.reset()

    def reset(self) -> None:
        self._left.reset()
        self._right.reset()
        self._left_val = next(self._left, None)
        self._right_val = next(self._right, None)

    def __next__(self) -> int:
        while self._left_val is not None and self._right_val is not None:
            if self._left_val < self._right_val:
                self._left_val = next(self._left, None)
            elif self._right_val < self._left_val:
                self._right_val = next(self._right, None)
            else:
                found = self._left_val
                self._left_val = next(self._left, None)
                self._right_val = next(self._right, None)
                return found
        raise StopIteration


class QueryPipeline:
    """The consumer end of an operator tree."""

    def __init__(self, source: Optional[QueryOperator]) -> None:
        self._source = source

    def __iter__(self) -> "QueryPipeline":
        return self

    def __next__(self) -> int:
        if self._source is None:
            raise StopIteration
        return next(self._source)