# Overview: Database model package; re-exports every model and domain constant.

from .tenancy import Business
from .catalog import Location, Product, Customer, Supplier
from .inventory import (
    StockBalance,
    StockMovement,
    ImmutableMovementError,
    MOVEMENT_INBOUND,
    MOVEMENT_OUTBOUND,
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_TRANSFER_OUT,
    MOVEMENT_TRANSFER_IN,
    MOVEMENT_RETURN,
    MOVEMENT_TYPES,
    DECREMENTING_TYPES,
    REF_ORDER,
    REF_QUOTE_CONFIRMATION,
    REF_CANCELLATION,
    REF_RETURN,
    REF_PURCHASE,
    REF_TRANSFER,
    REF_MANUAL,
)
from .documents import DocumentSequence
from .registers import Till, CashShift, SHIFT_STATUS_OPEN, SHIFT_STATUS_CLOSED
from .sales import (
    Order,
    OrderLine,
    Payment,
    ORDER_STATUS_QUOTE,
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_RETURNED,
    PAYMENT_CASH,
    PAYMENT_DEBIT_CARD,
    PAYMENT_CREDIT_CARD,
    PAYMENT_TRANSFER,
    PAYMENT_CUSTOMER_CREDIT,
    PAYMENT_MIXED,
    PAYMENT_METHODS,
)
from .purchasing import Purchase, PurchaseLine
from .deliveries import (
    Delivery,
    DELIVERY_ASSIGNED,
    DELIVERY_IN_TRANSIT,
    DELIVERY_DELIVERED,
    DELIVERY_FAILED,
    DELIVERY_RESCHEDULED,
    DELIVERY_TRANSITIONS,
)

__all__ = [
    "Business",
    "Location",
    "Product",
    "Customer",
    "Supplier",
    "StockBalance",
    "StockMovement",
    "ImmutableMovementError",
    "MOVEMENT_INBOUND",
    "MOVEMENT_OUTBOUND",
    "MOVEMENT_ADJUSTMENT",
    "MOVEMENT_TRANSFER_OUT",
    "MOVEMENT_TRANSFER_IN",
    "MOVEMENT_RETURN",
    "MOVEMENT_TYPES",
    "DECREMENTING_TYPES",
    "REF_ORDER",
    "REF_QUOTE_CONFIRMATION",
    "REF_CANCELLATION",
    "REF_RETURN",
    "REF_PURCHASE",
    "REF_TRANSFER",
    "REF_MANUAL",
    "DocumentSequence",
    "Till",
    "CashShift",
    "SHIFT_STATUS_OPEN",
    "SHIFT_STATUS_CLOSED",
    "Order",
    "OrderLine",
    "Payment",
    "ORDER_STATUS_QUOTE",
    "ORDER_STATUS_COMPLETED",
    "ORDER_STATUS_CANCELLED",
    "ORDER_STATUS_RETURNED",
    "PAYMENT_CASH",
    "PAYMENT_DEBIT_CARD",
    "PAYMENT_CREDIT_CARD",
    "PAYMENT_TRANSFER",
    "PAYMENT_CUSTOMER_CREDIT",
    "PAYMENT_MIXED",
    "PAYMENT_METHODS",
    "Purchase",
    "PurchaseLine",
    "Delivery",
    "DELIVERY_ASSIGNED",
    "DELIVERY_IN_TRANSIT",
    "DELIVERY_DELIVERED",
    "DELIVERY_FAILED",
    "DELIVERY_RESCHEDULED",
    "DELIVERY_TRANSITIONS",
]
