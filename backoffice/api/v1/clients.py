"""
Client API endpoints
"""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from backoffice.api import deps
from backoffice.schemas.ledger import ClientPurchaseHistoryRecord
from backoffice.services.ledger import ProductHistoryService

router = APIRouter()


@router.get("/{client_id}/purchase-history", response_model=List[ClientPurchaseHistoryRecord])
def get_client_purchase_history(client_id: int, db: Session = Depends(deps.get_db)):
    """
    Products a client has bought, with quantities per size and colour.
    """
    return ProductHistoryService(db).get_client_purchase_history(client_id)
