"""
Invoice and Receipt API endpoints
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from backoffice.api import deps
from backoffice.models import PartyType
from backoffice.schemas.invoice import Invoice, InvoiceCreate, Receipt, ReceiptCreate
from backoffice.services.invoicing import InvoiceService, ReceiptService

router = APIRouter()
receipts_router = APIRouter()


@router.post("/{party}", response_model=Invoice, status_code=status.HTTP_201_CREATED)
def create_invoice(
    invoice_in: InvoiceCreate,
    party: PartyType = Depends(deps.get_party),
    db: Session = Depends(deps.get_db)
):
    """
    Create an invoice, moving stock for each line and updating the party balance.
    """
    return InvoiceService(db, party).create_invoice(invoice_in)


@router.delete("/{party}/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_invoice(
    invoice_id: int,
    party: PartyType = Depends(deps.get_party),
    db: Session = Depends(deps.get_db)
):
    """
    Delete an invoice and reverse its stock and balance effects.
    """
    InvoiceService(db, party).delete_invoice(invoice_id)


@receipts_router.post("/{party}", response_model=Receipt, status_code=status.HTTP_201_CREATED)
def create_receipt(
    receipt_in: ReceiptCreate,
    party: PartyType = Depends(deps.get_party),
    db: Session = Depends(deps.get_db)
):
    return ReceiptService(db, party).create_receipt(receipt_in)


@receipts_router.delete("/{party}/{receipt_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_receipt(
    receipt_id: int,
    party: PartyType = Depends(deps.get_party),
    db: Session = Depends(deps.get_db)
):
    ReceiptService(db, party).delete_receipt(receipt_id)
