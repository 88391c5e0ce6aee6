# Overview: Status and type vocabularies shared by models and services.

from __future__ import annotations

from enum import Enum


class InventoryTransactionType(str, Enum):
    PURCHASE_RECEIPT = "PURCHASE_RECEIPT"
    SALE = "SALE"
    ADJUSTMENT_IN = "ADJUSTMENT_IN"
    ADJUSTMENT_OUT = "ADJUSTMENT_OUT"
    TRANSFER_OUT = "TRANSFER_OUT"
    TRANSFER_IN = "TRANSFER_IN"
    CYCLE_COUNT_ADJUSTMENT = "CYCLE_COUNT_ADJUSTMENT"
    RETURN_RESTOCK = "RETURN_RESTOCK"
    RETURN_DISPOSE = "RETURN_DISPOSE"
    KIT_ASSEMBLY_CONSUME = "KIT_ASSEMBLY_CONSUME"
    KIT_ASSEMBLY_PRODUCE = "KIT_ASSEMBLY_PRODUCE"


class LocationType(str, Enum):
    STORE = "STORE"
    WAREHOUSE = "WAREHOUSE"
    BACKROOM = "BACKROOM"
    OTHER = "OTHER"


class TransferStatus(str, Enum):
    PENDING = "PENDING"
    IN_TRANSIT = "IN_TRANSIT"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class StockCountType(str, Enum):
    FULL = "FULL"
    CYCLE = "CYCLE"


class StockCountStatus(str, Enum):
    PENDING = "PENDING"
    COUNTING = "COUNTING"
    REVIEW = "REVIEW"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class StockCountItemStatus(str, Enum):
    PENDING = "PENDING"
    COUNTED = "COUNTED"
    APPROVED = "APPROVED"
    RECOUNT_REQUESTED = "RECOUNT_REQUESTED"
    SKIPPED = "SKIPPED"


class OrderType(str, Enum):
    POS = "POS"
    ONLINE = "ONLINE"
    MANUAL = "MANUAL"


class OrderStatus(str, Enum):
    PENDING_PAYMENT = "PENDING_PAYMENT"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    RETURNED = "RETURNED"
    PARTIALLY_RETURNED = "PARTIALLY_RETURNED"
    SUSPENDED = "SUSPENDED"


class ReturnStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"


class ReturnItemCondition(str, Enum):
    SELLABLE = "SELLABLE"
    DAMAGED = "DAMAGED"
    DEFECTIVE = "DEFECTIVE"
    DISPOSED = "DISPOSED"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    CREDIT_CARD = "CREDIT_CARD"
    DEBIT_CARD = "DEBIT_CARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    MOBILE_MONEY = "MOBILE_MONEY"
    STORE_CREDIT = "STORE_CREDIT"
    OTHER = "OTHER"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class PurchaseOrderStatus(str, Enum):
    DRAFT = "DRAFT"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    SENT = "SENT"
    PARTIALLY_RECEIVED = "PARTIALLY_RECEIVED"
    FULLY_RECEIVED = "FULLY_RECEIVED"
    CANCELLED = "CANCELLED"
