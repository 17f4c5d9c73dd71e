"""
Product History API endpoints
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import Response
from sqlalchemy.orm import Session

from backoffice.api import deps
from backoffice.models import Product, ProductVariant, SourceType
from backoffice.schemas.ledger import (
    CustomerPurchaseHistory, InventorySummary, LedgerEntry, LedgerEntryDetail,
    ProductHistorySummary, ProductWithHistory, StockAdjustment, StockAdjustmentResult,
    VariantSalesDetail
)
from backoffice.services.ledger import ProductHistoryRecorder, ProductHistoryService

router = APIRouter()


def _require_product(db: Session, product_id: int) -> Product:
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Product {product_id} not found"
        )
    return product


@router.get("/history", response_model=List[ProductWithHistory])
def list_products_with_history(db: Session = Depends(deps.get_db)):
    """
    Every product with its sales totals, best sellers first.
    """
    return ProductHistoryService(db).get_all_products_with_history()


@router.get("/variants/{variant_id}/history", response_model=List[LedgerEntryDetail])
def get_variant_history(
    variant_id: int,
    limit: Optional[int] = Query(None, ge=1, le=1000),
    db: Session = Depends(deps.get_db)
):
    return ProductHistoryService(db).get_variant_history(variant_id, limit=limit)


@router.get("/{product_id}/history", response_model=List[LedgerEntryDetail])
def get_product_history(
    product_id: int,
    variant_id: Optional[int] = None,
    source_type: Optional[SourceType] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    client_id: Optional[int] = None,
    limit: Optional[int] = Query(None, ge=1, le=1000),
    db: Session = Depends(deps.get_db)
):
    """
    Ledger entries for a product, newest first, with optional filters.
    """
    _require_product(db, product_id)
    return ProductHistoryService(db).get_product_history(
        product_id=product_id,
        variant_id=variant_id,
        source_type=source_type,
        start_date=start_date,
        end_date=end_date,
        client_id=client_id,
        limit=limit,
    )


@router.get("/{product_id}/timeline", response_model=List[LedgerEntryDetail])
def get_product_timeline(
    product_id: int,
    limit: Optional[int] = Query(None, ge=1, le=1000),
    db: Session = Depends(deps.get_db)
):
    _require_product(db, product_id)
    return ProductHistoryService(db).get_product_timeline(product_id, limit=limit)


@router.get("/{product_id}/inventory-summary", response_model=InventorySummary)
def get_inventory_summary(
    product_id: int,
    variant_id: Optional[int] = None,
    db: Session = Depends(deps.get_db)
):
    return ProductHistoryService(db).get_inventory_summary(product_id, variant_id)


@router.get("/{product_id}/summary", response_model=ProductHistorySummary)
def get_product_history_summary(product_id: int, db: Session = Depends(deps.get_db)):
    """
    Sales, purchase and adjustment totals. Return invoices are not counted as sales.
    """
    return ProductHistoryService(db).get_product_history_summary(product_id)


@router.get("/{product_id}/variants", response_model=List[VariantSalesDetail])
def get_variant_sales_details(product_id: int, db: Session = Depends(deps.get_db)):
    return ProductHistoryService(db).get_variant_sales_details(product_id)


@router.get("/{product_id}/customers", response_model=List[CustomerPurchaseHistory])
def get_customer_purchase_history(product_id: int, db: Session = Depends(deps.get_db)):
    return ProductHistoryService(db).get_customer_purchase_history(product_id)


@router.get("/{product_id}/history/export")
def export_product_history(product_id: int, db: Session = Depends(deps.get_db)):
    """
    Download the product's ledger as CSV.
    """
    _require_product(db, product_id)
    content = ProductHistoryService(db).export_product_history_csv(product_id)
    return Response(
        content=content,
        media_type="text/csv",
        headers={
            "Content-Disposition": f'attachment; filename="product_{product_id}_history.csv"'
        },
    )


@router.post("/{product_id}/variants/{variant_id}/adjust", response_model=StockAdjustmentResult)
def adjust_variant_stock(
    product_id: int,
    variant_id: int,
    adjustment: StockAdjustment,
    db: Session = Depends(deps.get_db)
):
    """
    Manual stock change. Send quantity_change for a relative change or
    new_quantity for a stock count.
    """
    if (adjustment.quantity_change is None) == (adjustment.new_quantity is None):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Provide exactly one of quantity_change or new_quantity"
        )

    variant = db.query(ProductVariant).filter(ProductVariant.id == variant_id).first()
    if not variant or variant.product_id != product_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Variant {variant_id} not found on product {product_id}"
        )

    recorder = ProductHistoryRecorder(db)
    if adjustment.new_quantity is not None:
        variant, entry = recorder.set_quantity(
            variant_id, adjustment.new_quantity,
            source_type=adjustment.source_type, notes=adjustment.notes
        )
    else:
        variant, entry = recorder.apply_change(
            product_id, variant_id, adjustment.quantity_change,
            adjustment.source_type, notes=adjustment.notes
        )

    return StockAdjustmentResult(
        variant_id=variant.id,
        quantity=variant.quantity,
        entry=LedgerEntry.model_validate(entry) if entry is not None else None,
    )
