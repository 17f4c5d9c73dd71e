"""
Shipping Invoice API endpoints
"""

from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from backoffice.api import deps
from backoffice.models import PartyType, ShipmentStatus
from backoffice.schemas.shipping import (
    ShippingInvoice, ShippingInvoiceCreate, ShippingProduct, ShippingStatusUpdate,
    ShippingValidation, VariantQuantities
)
from backoffice.services.shipping import ShippingInvoiceService

router = APIRouter()


@router.get("/{party}", response_model=List[ShippingInvoice])
def list_shipping_invoices(
    party: PartyType = Depends(deps.get_party),
    status_filter: Optional[ShipmentStatus] = Query(None, alias="status"),
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    party_id: Optional[int] = None,
    search: Optional[str] = None,
    db: Session = Depends(deps.get_db)
):
    """
    All shipping invoices, newest first. search matches shipping or tracking numbers.
    """
    return ShippingInvoiceService(db, party).get_all_shipping_invoices(
        status=status_filter,
        start_date=start_date,
        end_date=end_date,
        party_id=party_id,
        search=search,
    )


@router.get("/{party}/invoices/{invoice_id}", response_model=List[ShippingInvoice])
def get_invoice_shipments(
    invoice_id: int,
    party: PartyType = Depends(deps.get_party),
    db: Session = Depends(deps.get_db)
):
    service = ShippingInvoiceService(db, party)
    # Raises NotFoundError for unknown invoices
    service.get_shipped_quantities(invoice_id)
    return service.get_shipping_invoices(invoice_id)


@router.get("/{party}/invoices/{invoice_id}/quantities", response_model=Dict[int, VariantQuantities])
def get_shipped_quantities(
    invoice_id: int,
    party: PartyType = Depends(deps.get_party),
    db: Session = Depends(deps.get_db)
):
    """
    Ordered, shipped and remaining quantity per variant of the invoice.
    """
    return ShippingInvoiceService(db, party).get_shipped_quantities(invoice_id)


@router.post("/{party}/invoices/{invoice_id}/validate", response_model=ShippingValidation)
def validate_shipping_quantities(
    invoice_id: int,
    products: List[ShippingProduct],
    party: PartyType = Depends(deps.get_party),
    db: Session = Depends(deps.get_db)
):
    return ShippingInvoiceService(db, party).validate_shipping_quantities(invoice_id, products)


@router.post(
    "/{party}/invoices/{invoice_id}",
    response_model=ShippingInvoice,
    status_code=status.HTTP_201_CREATED
)
def create_shipping_invoice(
    invoice_id: int,
    shipping_in: ShippingInvoiceCreate,
    party: PartyType = Depends(deps.get_party),
    db: Session = Depends(deps.get_db)
):
    """
    Ship part of an invoice. Rejected with 422 when any line exceeds what remains.
    """
    return ShippingInvoiceService(db, party).create_shipping_invoice(
        invoice_id,
        shipping_in.products,
        shipping_in,
    )


@router.patch("/{party}/{shipping_invoice_id}/status", response_model=ShippingInvoice)
def update_shipping_status(
    shipping_invoice_id: int,
    update: ShippingStatusUpdate,
    party: PartyType = Depends(deps.get_party),
    db: Session = Depends(deps.get_db)
):
    return ShippingInvoiceService(db, party).update_shipping_invoice_status(
        shipping_invoice_id, update.status, update.delivered_at
    )


@router.delete("/{party}/{shipping_invoice_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_shipping_invoice(
    shipping_invoice_id: int,
    party: PartyType = Depends(deps.get_party),
    db: Session = Depends(deps.get_db)
):
    ShippingInvoiceService(db, party).delete_shipping_invoice(shipping_invoice_id)
