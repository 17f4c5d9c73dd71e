"""Analytics dashboard schemas"""

from pydantic import BaseModel, Field
from typing import Optional, List
from decimal import Decimal
from enum import Enum


class TimeInterval(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class VariantSales(BaseModel):
    id: int
    size: str
    color: str
    quantity_sold: int = 0


class ProductSalesData(BaseModel):
    product_id: int
    product_name: str
    total_sold: int = 0
    total_revenue: Decimal = Decimal("0")
    variants: List[VariantSales] = Field(default_factory=list)


class ProductInventoryValue(BaseModel):
    product_id: int
    product_name: str
    value: Decimal = Decimal("0")
    cost: Decimal = Decimal("0")
    items: int = 0


class InventoryValueData(BaseModel):
    total_value: Decimal = Decimal("0")
    total_cost: Decimal = Decimal("0")
    total_items: int = 0
    by_product: List[ProductInventoryValue] = Field(default_factory=list)


class PopularVariant(BaseModel):
    size: str
    color: str


class TopSellerData(BaseModel):
    product_id: int
    product_name: str
    quantity_sold: int = 0
    revenue: Decimal = Decimal("0")
    product_photo: Optional[str] = None
    most_popular_variant: Optional[PopularVariant] = None


class TimeSeriesPoint(BaseModel):
    date: str
    sales: int = 0
    purchases: int = 0


class LowStockVariant(BaseModel):
    product_id: int
    product_name: str
    variant_id: int
    size: str
    color: str
    quantity: int
