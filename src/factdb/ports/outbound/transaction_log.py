"""Outbound port for the transaction log.

Every committed transaction report is appended to the log, which can be
read back as a range of transactions.
"""

from __future__ import annotations

from typing import Iterator, Protocol, runtime_checkable

from factdb.domain.entities import TxReport


@runtime_checkable
class TransactionLog(Protocol):
    """Protocol for an append-only log of committed transactions."""

    def append(self, report: TxReport) -> None:
        """Record a committed transaction."""
        ...

    def tx_range(self, start: int | None = None, end: int | None = None) -> Iterator[TxReport]:
        """Iterate transactions with ``start <= tx_id < end``.

        Args:
            start: First transaction id, or None for the beginning of the log
            end: Exclusive upper bound, or None for the end of the log
        """
        ...

    def last(self) -> TxReport | None:
        """Return the most recent transaction, or None if the log is empty."""
        ...

    def __len__(self) -> int:
        ...
