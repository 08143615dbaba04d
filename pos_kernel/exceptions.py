"""
Typed Exception Hierarchy for the POS Kernel.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from PosKernelError:

    PosKernelError (base)
    |
    +-- InvalidInputError
    |   +-- NegativeQuantityError
    |   +-- NegativePriceError
    |   +-- TaxRateOutOfRangeError
    |   +-- InvalidDiscountError
    |
    +-- OrderError
    |   +-- OrderNotFoundError
    |   +-- LineNotFoundError
    |   +-- OrderCompletedError
    |   +-- LocationOccupiedError
    |   +-- MissingSaleIdError
    |   +-- PaymentIncompleteError
    |
    +-- ReconciliationError
        +-- BackendUnavailableError
        +-- BackendOrderNotFoundError
        +-- UnsupportedPayloadVersionError
        +-- MalformedPayloadError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Input           | NEGATIVE_QUANTITY           | Line quantity below zero
                | NEGATIVE_PRICE              | Unit price below zero
                | TAX_RATE_OUT_OF_RANGE       | VAT/withholding rate outside [0, 100]
                | INVALID_DISCOUNT            | Negative discount or percent > 100
----------------|-----------------------------|-----------------------------------------
Order           | ORDER_NOT_FOUND             | Local id not in the order set
                | LINE_NOT_FOUND              | Sequence number not in the order
                | ORDER_COMPLETED             | Mutating a completed (terminal) order
                | LOCATION_OCCUPIED           | Location held by another pending order
                | MISSING_SALE_ID             | Completion without a sale identifier
                | PAYMENT_INCOMPLETE          | Tenders do not cover the amount due
----------------|-----------------------------|-----------------------------------------
Reconciliation  | BACKEND_UNAVAILABLE         | Backend call failed (network, storage)
                | BACKEND_ORDER_NOT_FOUND     | Fetch by id returned nothing
                | UNSUPPORTED_PAYLOAD_VERSION | Wire payload schema version unknown
                | MALFORMED_PAYLOAD           | Wire payload fields missing or unparsable

===============================================================================
HANDLING PATTERNS
===============================================================================

InvalidInputError subclasses are precondition violations raised by the
engines before any arithmetic runs; callers should let them surface.

ReconciliationError subclasses are recoverable. Fire-and-forget persists
catch them at the sync boundary, log them and mark the order unsynced.
BackendOrderNotFoundError means "no existing order", never a crash.
"""


class PosKernelError(Exception):
    """
    Base exception for all POS kernel errors.

    All subclasses must have a `code` class attribute
    for machine-readable error identification.
    """

    code: str = "POS_KERNEL_ERROR"


# Input validation exceptions


class InvalidInputError(PosKernelError):
    """Base exception for rejected engine inputs."""

    code: str = "INVALID_INPUT"


class NegativeQuantityError(InvalidInputError):
    """Line quantity is negative."""

    code: str = "NEGATIVE_QUANTITY"

    def __init__(self, quantity: str):
        self.quantity = quantity
        super().__init__(f"Quantity cannot be negative: {quantity}")


class NegativePriceError(InvalidInputError):
    """Unit price is negative."""

    code: str = "NEGATIVE_PRICE"

    def __init__(self, product_id: str, price: str):
        self.product_id = product_id
        self.price = price
        super().__init__(f"Price cannot be negative for product {product_id}: {price}")


class TaxRateOutOfRangeError(InvalidInputError):
    """A VAT or withholding rate is outside [0, 100]."""

    code: str = "TAX_RATE_OUT_OF_RANGE"

    def __init__(self, rate_kind: str, rate: str):
        self.rate_kind = rate_kind
        self.rate = rate
        super().__init__(f"{rate_kind} rate must be within [0, 100]: {rate}")


class InvalidDiscountError(InvalidInputError):
    """Discount is negative or the percentage exceeds 100."""

    code: str = "INVALID_DISCOUNT"

    def __init__(self, percent: str, value: str):
        self.percent = percent
        self.value = value
        super().__init__(f"Invalid discount: percent={percent}, value={value}")


# Order exceptions


class OrderError(PosKernelError):
    """Base exception for order lifecycle errors."""

    code: str = "ORDER_ERROR"


class OrderNotFoundError(OrderError):
    """No order with the given local id."""

    code: str = "ORDER_NOT_FOUND"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class LineNotFoundError(OrderError):
    """No line with the given sequence number (or product id) in the order."""

    code: str = "LINE_NOT_FOUND"

    def __init__(self, order_id: str, line_ref: int | str):
        self.order_id = order_id
        self.line_ref = line_ref
        super().__init__(f"Line {line_ref} not found in order {order_id}")


class OrderCompletedError(OrderError):
    """Completed orders are terminal and read-only."""

    code: str = "ORDER_COMPLETED"

    def __init__(self, order_id: str, operation: str):
        self.order_id = order_id
        self.operation = operation
        super().__init__(f"Cannot {operation} completed order {order_id}")


class LocationOccupiedError(OrderError):
    """Another pending order already holds the location."""

    code: str = "LOCATION_OCCUPIED"

    def __init__(self, location_id: str, holder_order_id: str):
        self.location_id = location_id
        self.holder_order_id = holder_order_id
        super().__init__(
            f"Location {location_id} is held by pending order {holder_order_id}"
        )


class MissingSaleIdError(OrderError):
    """Payment result did not carry a sale identifier."""

    code: str = "MISSING_SALE_ID"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Payment result for order {order_id} has no sale id")


class PaymentIncompleteError(OrderError):
    """Tendered amounts do not cover the amount due."""

    code: str = "PAYMENT_INCOMPLETE"

    def __init__(self, order_id: str, amount_due: str, remaining: str):
        self.order_id = order_id
        self.amount_due = amount_due
        self.remaining = remaining
        super().__init__(
            f"Order {order_id} still owes {remaining} of {amount_due}"
        )


# Reconciliation exceptions


class ReconciliationError(PosKernelError):
    """Base exception for backend reconciliation failures."""

    code: str = "RECONCILIATION_FAILURE"


class BackendUnavailableError(ReconciliationError):
    """Backend call failed before producing a result."""

    code: str = "BACKEND_UNAVAILABLE"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Backend {operation} failed: {reason}")


class BackendOrderNotFoundError(ReconciliationError):
    """Backend has no order for the given backend id."""

    code: str = "BACKEND_ORDER_NOT_FOUND"

    def __init__(self, backend_id: str):
        self.backend_id = backend_id
        super().__init__(f"Backend order not found: {backend_id}")


class UnsupportedPayloadVersionError(ReconciliationError):
    """Wire payload carries a schema version this mapper cannot read."""

    code: str = "UNSUPPORTED_PAYLOAD_VERSION"

    def __init__(self, schema_version: object):
        self.schema_version = schema_version
        super().__init__(f"Unsupported payload schema version: {schema_version}")


class MalformedPayloadError(ReconciliationError):
    """Wire payload has a known version but fields that cannot be read."""

    code: str = "MALFORMED_PAYLOAD"

    def __init__(self, backend_id: str | None, reason: str):
        self.backend_id = backend_id
        self.reason = reason
        super().__init__(f"Malformed payload for backend order {backend_id}: {reason}")
