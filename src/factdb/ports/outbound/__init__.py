"""Outbound ports for the fact database."""

from factdb.ports.outbound.transaction_log import TransactionLog

__all__ = ["TransactionLog"]
