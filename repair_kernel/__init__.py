"""
Repair Kernel

Shared foundation for the repair-order workflow core:
- Money and quantity value objects with explicit rounding
- Job / JobItem / EstimateItem / InventoryRecord domain entities
- Typed exception hierarchy with machine-readable codes
- Structured JSON logging
- SQLAlchemy base, engine and ORM models
"""

__version__ = "0.1.0"
