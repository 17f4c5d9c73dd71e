"""
Client Balance API endpoints
"""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from backoffice.api import deps
from backoffice.schemas.balance import BalanceBreakdown, ReconciliationBatch, ReconciliationResult
from backoffice.services.balance import BalanceReconciliationService

router = APIRouter()


@router.post("/clients/{client_id}/reconcile", response_model=ReconciliationResult)
def reconcile_client_balance(client_id: int, db: Session = Depends(deps.get_db)):
    """
    Replay a client's invoices and receipts and correct the stored balance if it drifted.
    """
    return BalanceReconciliationService(db).reconcile_client_balance(client_id)


@router.post("/reconcile-all", response_model=ReconciliationBatch)
def reconcile_all_client_balances(db: Session = Depends(deps.get_db)):
    """
    Reconcile every client; failures are reported per client.
    """
    return BalanceReconciliationService(db).reconcile_all_client_balances()


@router.get("/clients/{client_id}/breakdown", response_model=BalanceBreakdown)
def get_client_balance_breakdown(client_id: int, db: Session = Depends(deps.get_db)):
    return BalanceReconciliationService(db).get_client_balance_breakdown(client_id)


@router.get("/issues", response_model=List[ReconciliationResult])
def get_clients_with_balance_issues(db: Session = Depends(deps.get_db)):
    """
    Clients whose stored balance differs from their history. Nothing is written.
    """
    return BalanceReconciliationService(db).get_clients_with_balance_issues()
