"""
Analytics Service
Sales, inventory value and stock movement figures for the dashboard
"""
from collections import OrderedDict
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from backoffice.core.config import settings
from backoffice.core.logging import get_logger
from backoffice.models import (
    ClientInvoice, InvoiceType, Product, ProductHistory, ProductVariant, SourceType
)
from backoffice.schemas.analytics import (
    InventoryValueData, LowStockVariant, PopularVariant, ProductInventoryValue,
    ProductSalesData, TimeInterval, TimeSeriesPoint, TopSellerData, VariantSales
)

logger = get_logger("analytics")


def period_key(moment: datetime, interval: TimeInterval) -> str:
    """Bucket label: YYYY-MM-DD for days, the Sunday starting the week, or YYYY-MM"""
    day = moment.date() if isinstance(moment, datetime) else moment
    if interval == TimeInterval.WEEK:
        return (day - timedelta(days=(day.weekday() + 1) % 7)).isoformat()
    if interval == TimeInterval.MONTH:
        return f"{day.year:04d}-{day.month:02d}"
    return day.isoformat()


def _as_datetime(value, end: bool = False) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, datetime.max.time() if end else datetime.min.time())
    return value


class AnalyticsService:
    """Dashboard aggregations; return invoices are excluded from sales"""

    def __init__(self, db: Session):
        self.db = db

    def _sales_invoices(self, start_date=None, end_date=None) -> List[ClientInvoice]:
        query = self.db.query(ClientInvoice).filter(ClientInvoice.type != InvoiceType.RETURN.value)
        start_date, end_date = _as_datetime(start_date), _as_datetime(end_date, end=True)
        if start_date is not None:
            query = query.filter(ClientInvoice.created_at >= start_date)
        if end_date is not None:
            query = query.filter(ClientInvoice.created_at <= end_date)
        return query.order_by(ClientInvoice.created_at).all()

    def _products_and_variants(self):
        products = {p.id: p for p in self.db.query(Product).all()}
        variants = {v.id: v for v in self.db.query(ProductVariant).all()}
        return products, variants

    def get_product_sales(self, start_date=None, end_date=None) -> List[ProductSalesData]:
        products, variants = self._products_and_variants()
        sales: Dict[int, ProductSalesData] = OrderedDict()
        variant_sales: Dict[int, Dict[int, VariantSales]] = {}

        for invoice in self._sales_invoices(start_date, end_date):
            for item in invoice.line_items:
                product_id = int(item.get("product_id", 0))
                product = products.get(product_id)
                if product is None:
                    continue
                quantity = abs(int(item.get("quantity", 0)))
                unit_price = Decimal(str(item.get("unit_price", product.price or 0)))

                data = sales.setdefault(product_id, ProductSalesData(
                    product_id=product_id, product_name=product.name
                ))
                data.total_sold += quantity
                data.total_revenue += unit_price * quantity

                variant = variants.get(int(item.get("product_variant_id", 0)))
                if variant is not None:
                    per_variant = variant_sales.setdefault(product_id, OrderedDict())
                    entry = per_variant.setdefault(variant.id, VariantSales(
                        id=variant.id, size=variant.size, color=variant.color
                    ))
                    entry.quantity_sold += quantity

        for product_id, data in sales.items():
            data.variants = list(variant_sales.get(product_id, {}).values())
        return sorted(sales.values(), key=lambda d: d.total_sold, reverse=True)

    def get_inventory_value(self) -> InventoryValueData:
        result = InventoryValueData()
        for product in self.db.query(Product).order_by(Product.name).all():
            items = product.total_stock
            value = Decimal(str(product.price or 0)) * items
            cost = Decimal(str(product.cost or 0)) * items
            result.total_value += value
            result.total_cost += cost
            result.total_items += items
            result.by_product.append(ProductInventoryValue(
                product_id=product.id, product_name=product.name,
                value=value, cost=cost, items=items,
            ))
        return result

    def get_top_selling_products(self, start_date=None, end_date=None, limit: int = 10) -> List[TopSellerData]:
        products, variants = self._products_and_variants()
        top: Dict[int, TopSellerData] = OrderedDict()
        by_variant: Dict[int, Dict[int, int]] = {}

        for invoice in self._sales_invoices(start_date, end_date):
            for item in invoice.line_items:
                product = products.get(int(item.get("product_id", 0)))
                if product is None:
                    continue
                quantity = abs(int(item.get("quantity", 0)))
                entry = top.setdefault(product.id, TopSellerData(
                    product_id=product.id, product_name=product.name, product_photo=product.photo
                ))
                entry.quantity_sold += quantity
                entry.revenue += Decimal(str(product.price or 0)) * quantity

                variant_id = int(item.get("product_variant_id", 0))
                counts = by_variant.setdefault(product.id, OrderedDict())
                counts[variant_id] = counts.get(variant_id, 0) + quantity

        for product_id, entry in top.items():
            counts = by_variant.get(product_id)
            if not counts:
                continue
            best = max(counts, key=counts.get)
            variant = variants.get(best)
            if variant is not None:
                entry.most_popular_variant = PopularVariant(size=variant.size, color=variant.color)

        ranked = sorted(top.values(), key=lambda e: e.quantity_sold, reverse=True)
        return ranked[:limit]

    def get_inventory_time_series(
        self, start_date=None, end_date=None, interval: TimeInterval = TimeInterval.DAY
    ) -> List[TimeSeriesPoint]:
        """Units sold and purchased per period, taken from the ledger"""
        interval = TimeInterval(interval)
        query = self.db.query(ProductHistory).filter(ProductHistory.source_type.in_([
            SourceType.CLIENT_INVOICE.value, SourceType.SUPPLIER_INVOICE.value
        ]))
        start_date, end_date = _as_datetime(start_date), _as_datetime(end_date, end=True)
        if start_date is not None:
            query = query.filter(ProductHistory.created_at >= start_date)
        if end_date is not None:
            query = query.filter(ProductHistory.created_at <= end_date)

        points: Dict[str, TimeSeriesPoint] = {}
        for entry in query.all():
            key = period_key(entry.created_at, interval)
            point = points.setdefault(key, TimeSeriesPoint(date=key))
            # Reversals of deleted invoices move the other way and are skipped
            if entry.source_type == SourceType.CLIENT_INVOICE.value and entry.quantity_change < 0:
                point.sales += abs(entry.quantity_change)
            elif entry.source_type == SourceType.SUPPLIER_INVOICE.value and entry.quantity_change > 0:
                point.purchases += entry.quantity_change
        return [points[key] for key in sorted(points)]

    def get_low_stock_products(self, threshold: Optional[int] = None) -> List[LowStockVariant]:
        threshold = threshold if threshold is not None else settings.LOW_STOCK_THRESHOLD
        rows = self.db.query(ProductVariant, Product).join(
            Product, Product.id == ProductVariant.product_id
        ).filter(ProductVariant.quantity <= threshold).order_by(
            ProductVariant.quantity, Product.name, ProductVariant.id
        ).all()
        logger.debug(f"{len(rows)} variants at or below stock threshold {threshold}")
        return [
            LowStockVariant(
                product_id=product.id,
                product_name=product.name,
                variant_id=variant.id,
                size=variant.size,
                color=variant.color,
                quantity=variant.quantity,
            )
            for variant, product in rows
        ]
