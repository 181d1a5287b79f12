"""
Reconciliation Kernel

Shared infrastructure for the shipment reconciliation engines:
- Structured JSON logging with session-scoped context
- Typed exception hierarchy with machine-readable codes
"""

__version__ = "0.1.0"
