"""
Back Office SQLAlchemy Models
Database models for the transaction, ledger and shipping stores
"""
from dataclasses import dataclass
from typing import Type

from .enums import (
    PartyType, InvoiceType, Currency, ShippingStatus, ShipmentStatus, SourceType
)
from .party import Client, Supplier
from .product import Product, ProductVariant
from .invoice import ClientInvoice, SupplierInvoice, ClientReceipt, SupplierReceipt
from .shipping import ClientShippingInvoice, SupplierShippingInvoice
from .history import ProductHistory


@dataclass(frozen=True)
class PartyModels:
    """The tables that belong to one side of the ledger"""
    party: Type
    invoice: Type
    receipt: Type
    shipping_invoice: Type
    party_fk: str
    invoice_source: SourceType


PARTY_MODELS = {
    PartyType.CLIENT: PartyModels(
        party=Client,
        invoice=ClientInvoice,
        receipt=ClientReceipt,
        shipping_invoice=ClientShippingInvoice,
        party_fk="client_id",
        invoice_source=SourceType.CLIENT_INVOICE,
    ),
    PartyType.SUPPLIER: PartyModels(
        party=Supplier,
        invoice=SupplierInvoice,
        receipt=SupplierReceipt,
        shipping_invoice=SupplierShippingInvoice,
        party_fk="supplier_id",
        invoice_source=SourceType.SUPPLIER_INVOICE,
    ),
}


def get_party_models(party) -> PartyModels:
    return PARTY_MODELS[PartyType(party)]


__all__ = [
    "PartyType",
    "InvoiceType",
    "Currency",
    "ShippingStatus",
    "ShipmentStatus",
    "SourceType",
    "Client",
    "Supplier",
    "Product",
    "ProductVariant",
    "ClientInvoice",
    "SupplierInvoice",
    "ClientReceipt",
    "SupplierReceipt",
    "ClientShippingInvoice",
    "SupplierShippingInvoice",
    "ProductHistory",
    "PartyModels",
    "PARTY_MODELS",
    "get_party_models",
]
