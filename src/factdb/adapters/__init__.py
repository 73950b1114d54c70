"""Adapters layer - implementations of ports.

Adapters connect the application to external systems:
- Inbound adapters: EDN reader, datalog parser, REST API
- Outbound adapters: transaction log storage
"""
