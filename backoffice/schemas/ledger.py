"""Inventory ledger and product history schemas"""

from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import datetime

from backoffice.models.enums import SourceType


class LedgerEntry(BaseModel):
    """One row of the product_history ledger"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    variant_id: Optional[int] = None
    quantity_change: int
    previous_quantity: int
    new_quantity: int
    source_type: SourceType
    source_id: Optional[str] = None
    source_reference: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime


class LedgerEntryDetail(LedgerEntry):
    """Ledger row with the variant and description resolved for display"""
    size: Optional[str] = None
    color: Optional[str] = None
    description: str = ""


class InventorySummary(BaseModel):
    total_in: int = 0
    total_out: int = 0
    current_quantity: int = 0
    last_updated: Optional[datetime] = None
    total_transactions: int = 0


class ProductHistorySummary(BaseModel):
    total_sold: int = 0
    total_purchased: int = 0
    total_adjusted: int = 0
    unique_customers: int = 0
    first_sale_date: Optional[datetime] = None
    last_sale_date: Optional[datetime] = None
    avg_sale_quantity: float = 0.0


class VariantSalesDetail(BaseModel):
    variant_id: int
    size: str
    color: str
    total_sold: int = 0
    current_stock: int = 0
    unique_customers: int = 0


class VariantPurchase(BaseModel):
    size: str
    color: str
    quantity: int = 0


class CustomerPurchaseHistory(BaseModel):
    client_id: int
    client_name: str
    total_purchased: int = 0
    last_purchase_date: datetime
    purchase_count: int = 0
    variants_purchased: List[VariantPurchase] = Field(default_factory=list)


class ClientPurchaseHistoryRecord(BaseModel):
    product_id: int
    product_name: str
    product_photo: Optional[str] = None
    total_purchased: int = 0
    purchase_count: int = 0
    last_purchase_date: datetime
    variants: List[VariantPurchase] = Field(default_factory=list)


class ProductWithHistory(BaseModel):
    id: int
    name: str
    photo: Optional[str] = None
    total_sold: int = 0
    unique_customers: int = 0
    last_sale_date: Optional[datetime] = None
    current_stock: int = 0


class StockAdjustment(BaseModel):
    """Manual stock change; give either quantity_change or new_quantity"""
    quantity_change: Optional[int] = None
    new_quantity: Optional[int] = Field(None, ge=0)
    source_type: SourceType = SourceType.ADJUSTMENT
    notes: Optional[str] = None


class StockAdjustmentResult(BaseModel):
    variant_id: int
    quantity: int
    entry: Optional[LedgerEntry] = None
