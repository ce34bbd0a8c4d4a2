"""
Procurement Kernel - reconciliation core

Lowest layer of the procurement reconciliation system:
- Key normalisation and typed procurement records
- Tolerant quantity coercion over loosely formatted documents
- Typed, coded exceptions
- Structured JSON logging
- SQLAlchemy persistence primitives for the document store
"""

__version__ = "0.1.0"
