"""
Services layer for CryptoStore.

This module contains the business logic services:
- PricingService: resolves catalog prices (pure read)
- OrderLedger: order persistence and the order state machine
- InventoryLedger: per-variant stock, decremented once per paid order
- ReconciliationService: order creation and settlement verification
- SettlementSweepService: optional background re-verification thread

Thread Model:
    Main Thread (Flask)
    ├── Request threads call ReconciliationService directly
    └── SettlementSweep thread (optional, periodic verify)

All services are stateless apart from the database; they can be shared
across threads without locks.
"""

from .pricing_service import PricingService
from .order_ledger import OrderLedger
from .inventory_ledger import InventoryLedger
from .reconciliation_service import ReconciliationService
from .sweep_service import SettlementSweepService, SweepReport

__all__ = [
    "PricingService",
    "OrderLedger",
    "InventoryLedger",
    "ReconciliationService",
    "SettlementSweepService",
    "SweepReport",
]
