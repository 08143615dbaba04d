"""
pos_services -- order lifecycle and backend reconciliation.

Usage:
    from pos_services import OrderLifecycleManager, SqlReconciliationGateway
"""

from pos_services.gateway import (
    BackendRef,
    CaptureResult,
    PaymentRequest,
    ReconciliationGateway,
)
from pos_services.order_lifecycle import OrderLifecycleManager
from pos_services.sql_gateway import SqlReconciliationGateway
from pos_services.sync import PersistQueue, SyncState

__all__ = [
    "BackendRef",
    "CaptureResult",
    "PaymentRequest",
    "ReconciliationGateway",
    "OrderLifecycleManager",
    "SqlReconciliationGateway",
    "PersistQueue",
    "SyncState",
]
