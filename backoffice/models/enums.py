"""
Enumerations shared by the models, schemas and services
"""
from enum import Enum


class PartyType(str, Enum):
    CLIENT = "client"
    SUPPLIER = "supplier"


class InvoiceType(str, Enum):
    REGULAR = "regular"
    RETURN = "return"


class Currency(str, Enum):
    USD = "usd"
    EURO = "euro"


class ShippingStatus(str, Enum):
    """Derived fulfilment classification cached on the invoice"""
    UNSHIPPED = "unshipped"
    PARTIALLY_SHIPPED = "partially_shipped"
    FULLY_SHIPPED = "fully_shipped"


class ShipmentStatus(str, Enum):
    """Lifecycle of a single shipping invoice"""
    PENDING = "pending"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class SourceType(str, Enum):
    """What caused a ledger entry"""
    MANUAL = "manual"
    CLIENT_INVOICE = "client_invoice"
    SUPPLIER_INVOICE = "supplier_invoice"
    ADJUSTMENT = "adjustment"
    QUOTATION = "quotation"
    RETURN = "return"
    TRIGGER = "trigger"


def sql_in(enum_cls) -> str:
    """Render enum values for a CHECK constraint"""
    return ", ".join(f"'{member.value}'" for member in enum_cls)
