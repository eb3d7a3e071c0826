"""
Fulfillment Kernel

Shared foundation for the document lineage reconciliation engine:
- Typed error taxonomy with machine-readable codes
- Structured JSON logging with request-scoped context
- Injectable clock
- Workflow value objects for per-document status tables
- SQLAlchemy declarative base and session utilities
"""

__version__ = "0.1.0"
