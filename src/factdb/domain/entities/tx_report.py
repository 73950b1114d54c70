"""Transaction report returned by a successful transact."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Hashable

from factdb.domain.entities.datom import Datom
from factdb.domain.value_objects import EntityId, TxId


@dataclass
class TxReport:
    """Outcome of one transaction batch.

    Attributes:
        tx_id: Entity id of the transaction
        tx_instant: Commit time recorded as ``db/txInstant``
        tempids: Temporary id -> permanent entity id, for every tempid in the batch
        tx_data: Datoms written, in write order
    """

    tx_id: TxId
    tx_instant: datetime
    tempids: dict[Hashable, EntityId] = field(default_factory=dict)
    tx_data: list[Datom] = field(default_factory=list)

    @property
    def basis_t(self) -> int:
        """Basis of the database value produced by this transaction."""
        return int(self.tx_id)

    def resolve_tempid(self, tempid: Any) -> EntityId:
        """Return the permanent id a temporary id was replaced with.

        Raises:
            KeyError: If the tempid was not part of the batch
        """
        try:
            return self.tempids[tempid]
        except KeyError:
            raise KeyError(f"Tempid {tempid!r} not found in transaction {self.tx_id}") from None

    def __len__(self) -> int:
        return len(self.tx_data)
