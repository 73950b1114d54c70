"""Outbound adapters - implementations for external dependencies.

Outbound adapters implement the transaction log port.
"""

from factdb.adapters.outbound.memory_log import InMemoryTransactionLog

__all__ = ["InMemoryTransactionLog"]
