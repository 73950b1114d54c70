"""In-memory transaction log adapter.

A simple in-memory implementation of TransactionLog. Reports are kept in
commit order and are lost when the process exits.

Usage:
    log = InMemoryTransactionLog()
    log.append(report)
    recent = list(log.tx_range(start=report.tx_id))
"""

from __future__ import annotations

import bisect
from typing import Iterator

from factdb.domain.entities import TxReport


class InMemoryTransactionLog:
    """In-memory implementation of TransactionLog.

    Transaction ids are allocated in increasing order, so the log stays
    sorted by ``tx_id`` and range reads are a bisection.
    """

    def __init__(self) -> None:
        """Initialize an empty log."""
        self._reports: list[TxReport] = []
        self._tx_ids: list[int] = []

    def append(self, report: TxReport) -> None:
        """Record a committed transaction.

        Raises:
            ValueError: If ``report`` is not newer than the last logged transaction
        """
        if self._tx_ids and report.tx_id <= self._tx_ids[-1]:
            raise ValueError(
                f"Transaction {report.tx_id} is not newer than {self._tx_ids[-1]}"
            )
        self._reports.append(report)
        self._tx_ids.append(int(report.tx_id))

    def tx_range(self, start: int | None = None, end: int | None = None) -> Iterator[TxReport]:
        """Iterate transactions with ``start <= tx_id < end``."""
        lo = 0 if start is None else bisect.bisect_left(self._tx_ids, start)
        hi = len(self._tx_ids) if end is None else bisect.bisect_left(self._tx_ids, end)
        return iter(self._reports[lo:hi])

    def last(self) -> TxReport | None:
        return self._reports[-1] if self._reports else None

    def __len__(self) -> int:
        return len(self._reports)
