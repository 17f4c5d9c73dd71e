"""
Analytics API endpoints
"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backoffice.api import deps
from backoffice.schemas.analytics import (
    InventoryValueData, LowStockVariant, ProductSalesData, TimeInterval,
    TimeSeriesPoint, TopSellerData
)
from backoffice.services.analytics import AnalyticsService

router = APIRouter()


@router.get("/sales", response_model=List[ProductSalesData])
def get_product_sales(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: Session = Depends(deps.get_db)
):
    return AnalyticsService(db).get_product_sales(start_date, end_date)


@router.get("/inventory-value", response_model=InventoryValueData)
def get_inventory_value(db: Session = Depends(deps.get_db)):
    return AnalyticsService(db).get_inventory_value()


@router.get("/top-sellers", response_model=List[TopSellerData])
def get_top_selling_products(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(deps.get_db)
):
    return AnalyticsService(db).get_top_selling_products(start_date, end_date, limit)


@router.get("/time-series", response_model=List[TimeSeriesPoint])
def get_inventory_time_series(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    interval: TimeInterval = TimeInterval.DAY,
    db: Session = Depends(deps.get_db)
):
    """
    Units sold and purchased per day, week (starting Sunday) or month.
    """
    return AnalyticsService(db).get_inventory_time_series(start_date, end_date, interval)


@router.get("/low-stock", response_model=List[LowStockVariant])
def get_low_stock_products(
    threshold: Optional[int] = Query(None, ge=0),
    db: Session = Depends(deps.get_db)
):
    return AnalyticsService(db).get_low_stock_products(threshold)
