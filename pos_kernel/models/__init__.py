"""ORM models of the backend record store."""

from pos_kernel.models.order_record import OrderRecord, OrderRecordStatus
from pos_kernel.models.sale_record import SaleRecord
from pos_kernel.models.validation_settings import ValidationSettingsRecord

__all__ = [
    "OrderRecord",
    "OrderRecordStatus",
    "SaleRecord",
    "ValidationSettingsRecord",
]
