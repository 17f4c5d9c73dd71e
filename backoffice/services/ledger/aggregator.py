"""
Product History Service
Read-side summaries over the product_history ledger and client sales
"""
import csv
import io
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import Integer, cast, func
from sqlalchemy.orm import Session

from backoffice.core.cache import TaggedCache, aggregation_cache
from backoffice.core.config import settings
from backoffice.core.logging import get_logger
from backoffice.models import (
    Client, ClientInvoice, InvoiceType, Product, ProductHistory, ProductVariant, SourceType
)
from backoffice.schemas.ledger import (
    ClientPurchaseHistoryRecord, CustomerPurchaseHistory, InventorySummary, LedgerEntryDetail,
    ProductHistorySummary, ProductWithHistory, VariantPurchase, VariantSalesDetail
)

logger = get_logger("ledger")

CSV_COLUMNS = ["Date", "Type", "Order/Invoice #", "Customer", "Size", "Color", "Quantity", "Notes"]

ADJUSTMENT_SOURCES = (SourceType.ADJUSTMENT.value, SourceType.MANUAL.value)
CLIENT_DOCUMENT_SOURCES = (SourceType.CLIENT_INVOICE.value, SourceType.RETURN.value)


@dataclass
class SaleLine:
    """One sold line of a non-return client invoice"""
    invoice_id: int
    client_id: int
    client_name: str
    product_id: int
    variant_id: Optional[int]
    size: str
    color: str
    quantity: int
    created_at: datetime


def format_history_entry(entry) -> str:
    """Human readable description, e.g. 'Removed 2 units (Invoice #3)'"""
    change = entry.quantity_change
    if change > 0:
        text = f"Added {change} units"
    elif change < 0:
        text = f"Removed {abs(change)} units"
    else:
        text = "No quantity change"
    if entry.source_reference:
        text += f" ({entry.source_reference})"
    return text


def _group_variants(lines: List[SaleLine]) -> List[VariantPurchase]:
    grouped: "OrderedDict[tuple, int]" = OrderedDict()
    for line in lines:
        key = (line.size, line.color)
        grouped[key] = grouped.get(key, 0) + line.quantity
    variants = [VariantPurchase(size=size, color=color, quantity=qty) for (size, color), qty in grouped.items()]
    return sorted(variants, key=lambda v: v.quantity, reverse=True)


class ProductHistoryService:
    """
    Product history aggregations

    Sales figures come from the ledger joined to the client invoice that
    caused each stock-out. When that view fails or is empty the raw invoice
    line items are expanded instead. Return invoices are never counted.
    Read paths log failures and return zeroed or empty results.
    """

    def __init__(self, db: Session, cache: TaggedCache = aggregation_cache):
        self.db = db
        self.cache = cache

    # ------------------------------------------------------------------
    # Sales rows
    # ------------------------------------------------------------------

    def _ledger_sales_lines(
        self, product_id: Optional[int] = None, client_id: Optional[int] = None
    ) -> List[SaleLine]:
        query = self.db.query(ProductHistory, ClientInvoice, Client, ProductVariant).join(
            ClientInvoice, ClientInvoice.id == cast(ProductHistory.source_id, Integer)
        ).join(
            Client, Client.id == ClientInvoice.client_id
        ).outerjoin(
            ProductVariant, ProductVariant.id == ProductHistory.variant_id
        ).filter(
            ProductHistory.source_type == SourceType.CLIENT_INVOICE.value,
            ProductHistory.quantity_change < 0,
            ClientInvoice.type != InvoiceType.RETURN.value,
        )
        if product_id is not None:
            query = query.filter(ProductHistory.product_id == product_id)
        if client_id is not None:
            query = query.filter(ClientInvoice.client_id == client_id)

        lines = []
        for entry, invoice, client, variant in query.all():
            lines.append(SaleLine(
                invoice_id=invoice.id,
                client_id=client.id,
                client_name=client.name,
                product_id=entry.product_id,
                variant_id=entry.variant_id,
                size=variant.size if variant else "",
                color=variant.color if variant else "",
                quantity=abs(entry.quantity_change),
                created_at=entry.created_at,
            ))
        return lines

    def _invoice_sales_lines(
        self, product_id: Optional[int] = None, client_id: Optional[int] = None
    ) -> List[SaleLine]:
        query = self.db.query(ClientInvoice, Client).join(
            Client, Client.id == ClientInvoice.client_id
        ).filter(ClientInvoice.type != InvoiceType.RETURN.value)
        if client_id is not None:
            query = query.filter(ClientInvoice.client_id == client_id)

        rows = query.all()
        variant_ids = {
            int(item["product_variant_id"])
            for invoice, _ in rows
            for item in invoice.line_items
            if item.get("product_variant_id") is not None
        }
        variants = {}
        if variant_ids:
            variants = {
                v.id: v for v in
                self.db.query(ProductVariant).filter(ProductVariant.id.in_(variant_ids)).all()
            }

        lines = []
        for invoice, client in rows:
            for item in invoice.line_items:
                item_product = int(item.get("product_id", 0))
                if product_id is not None and item_product != product_id:
                    continue
                variant_id = item.get("product_variant_id")
                variant = variants.get(int(variant_id)) if variant_id is not None else None
                lines.append(SaleLine(
                    invoice_id=invoice.id,
                    client_id=client.id,
                    client_name=client.name,
                    product_id=item_product,
                    variant_id=int(variant_id) if variant_id is not None else None,
                    size=variant.size if variant else "",
                    color=variant.color if variant else "",
                    quantity=abs(int(item.get("quantity", 0))),
                    created_at=invoice.created_at,
                ))
        return lines

    def _sales_lines(
        self, product_id: Optional[int] = None, client_id: Optional[int] = None
    ) -> List[SaleLine]:
        try:
            lines = self._ledger_sales_lines(product_id, client_id)
            if lines:
                return lines
        except Exception as e:
            logger.warning(f"Ledger sales view unavailable, falling back to invoices: {e}")
            self.db.rollback()

        try:
            return self._invoice_sales_lines(product_id, client_id)
        except Exception as e:
            logger.error(f"Failed to read client invoices for sales data: {e}")
            self.db.rollback()
            return []

    # ------------------------------------------------------------------
    # Summaries
    # ------------------------------------------------------------------

    def get_inventory_summary(self, product_id: int, variant_id: Optional[int] = None) -> InventorySummary:
        """Stock in/out totals and the current quantity as last recorded"""
        key = ("inventory_summary", product_id, variant_id)
        return self.cache.get_or_set(
            key, lambda: self._inventory_summary(product_id, variant_id), tags=[("product", product_id)]
        )

    def _inventory_summary(self, product_id: int, variant_id: Optional[int]) -> InventorySummary:
        try:
            query = self.db.query(ProductHistory).filter(ProductHistory.product_id == product_id)
            if variant_id is not None:
                query = query.filter(ProductHistory.variant_id == variant_id)
            entries = query.order_by(ProductHistory.created_at.desc(), ProductHistory.id.desc()).all()

            if not entries:
                return InventorySummary(current_quantity=self._live_quantity(product_id, variant_id))

            total_in = sum(e.quantity_change for e in entries if e.quantity_change > 0)
            total_out = sum(abs(e.quantity_change) for e in entries if e.quantity_change < 0)

            if variant_id is not None:
                current = entries[0].new_quantity
            else:
                # Latest snapshot of each variant, summed
                latest: Dict[Optional[int], int] = {}
                for entry in entries:
                    latest.setdefault(entry.variant_id, entry.new_quantity)
                by_variant = {k: v for k, v in latest.items() if k is not None}
                current = sum(by_variant.values()) if by_variant else latest[None]

            return InventorySummary(
                total_in=total_in,
                total_out=total_out,
                current_quantity=current,
                last_updated=entries[0].created_at,
                total_transactions=len(entries),
            )
        except Exception as e:
            logger.error(f"Failed to build inventory summary for product {product_id}: {e}")
            self.db.rollback()
            return InventorySummary()

    def _live_quantity(self, product_id: int, variant_id: Optional[int]) -> int:
        query = self.db.query(func.coalesce(func.sum(ProductVariant.quantity), 0)).filter(
            ProductVariant.product_id == product_id
        )
        if variant_id is not None:
            query = query.filter(ProductVariant.id == variant_id)
        return int(query.scalar() or 0)

    def get_product_history_summary(self, product_id: int) -> ProductHistorySummary:
        key = ("product_summary", product_id)
        return self.cache.get_or_set(
            key, lambda: self._product_history_summary(product_id), tags=[("product", product_id)]
        )

    def _product_history_summary(self, product_id: int) -> ProductHistorySummary:
        try:
            lines = self._sales_lines(product_id=product_id)
            total_sold = sum(line.quantity for line in lines)
            dates = [line.created_at for line in lines]

            return ProductHistorySummary(
                total_sold=total_sold,
                total_purchased=max(self._ledger_net(product_id, SourceType.SUPPLIER_INVOICE.value), 0),
                total_adjusted=self._ledger_total(product_id, ADJUSTMENT_SOURCES),
                unique_customers=len({line.client_id for line in lines}),
                first_sale_date=min(dates) if dates else None,
                last_sale_date=max(dates) if dates else None,
                avg_sale_quantity=total_sold / len(lines) if lines else 0.0,
            )
        except Exception as e:
            logger.error(f"Failed to build history summary for product {product_id}: {e}")
            self.db.rollback()
            return ProductHistorySummary()

    def _ledger_total(self, product_id: int, sources: tuple) -> int:
        query = self.db.query(func.coalesce(func.sum(func.abs(ProductHistory.quantity_change)), 0)).filter(
            ProductHistory.product_id == product_id,
            ProductHistory.source_type.in_(sources),
        )
        return int(query.scalar() or 0)

    def _ledger_net(self, product_id: int, source: str) -> int:
        """Signed sum for one source, so deletion reversals cancel the original entries"""
        query = self.db.query(func.coalesce(func.sum(ProductHistory.quantity_change), 0)).filter(
            ProductHistory.product_id == product_id,
            ProductHistory.source_type == source,
        )
        return int(query.scalar() or 0)

    def get_variant_sales_details(self, product_id: int) -> List[VariantSalesDetail]:
        key = ("variant_sales", product_id)
        return self.cache.get_or_set(
            key, lambda: self._variant_sales_details(product_id), tags=[("product", product_id)]
        )

    def _variant_sales_details(self, product_id: int) -> List[VariantSalesDetail]:
        try:
            variants = self.db.query(ProductVariant).filter(
                ProductVariant.product_id == product_id
            ).order_by(ProductVariant.id).all()
            lines = self._sales_lines(product_id=product_id)

            details = []
            for variant in variants:
                variant_lines = [line for line in lines if line.variant_id == variant.id]
                details.append(VariantSalesDetail(
                    variant_id=variant.id,
                    size=variant.size,
                    color=variant.color,
                    total_sold=sum(line.quantity for line in variant_lines),
                    current_stock=variant.quantity or 0,
                    unique_customers=len({line.client_id for line in variant_lines}),
                ))
            return sorted(details, key=lambda d: d.total_sold, reverse=True)
        except Exception as e:
            logger.error(f"Failed to build variant sales for product {product_id}: {e}")
            self.db.rollback()
            return []

    def get_customer_purchase_history(self, product_id: int) -> List[CustomerPurchaseHistory]:
        key = ("customer_history", product_id)
        return self.cache.get_or_set(
            key, lambda: self._customer_purchase_history(product_id), tags=[("product", product_id)]
        )

    def _customer_purchase_history(self, product_id: int) -> List[CustomerPurchaseHistory]:
        try:
            by_client: "OrderedDict[int, List[SaleLine]]" = OrderedDict()
            for line in self._sales_lines(product_id=product_id):
                by_client.setdefault(line.client_id, []).append(line)

            history = [
                CustomerPurchaseHistory(
                    client_id=client_id,
                    client_name=lines[0].client_name,
                    total_purchased=sum(line.quantity for line in lines),
                    last_purchase_date=max(line.created_at for line in lines),
                    purchase_count=len(lines),
                    variants_purchased=_group_variants(lines),
                )
                for client_id, lines in by_client.items()
            ]
            return sorted(history, key=lambda h: h.total_purchased, reverse=True)
        except Exception as e:
            logger.error(f"Failed to build customer history for product {product_id}: {e}")
            self.db.rollback()
            return []

    def get_client_purchase_history(self, client_id: int) -> List[ClientPurchaseHistoryRecord]:
        """Everything one client bought, grouped by product"""
        key = ("client_purchases", client_id)
        return self.cache.get_or_set(
            key, lambda: self._client_purchase_history(client_id), tags=[("client", client_id)]
        )

    def _client_purchase_history(self, client_id: int) -> List[ClientPurchaseHistoryRecord]:
        try:
            by_product: "OrderedDict[int, List[SaleLine]]" = OrderedDict()
            for line in self._sales_lines(client_id=client_id):
                by_product.setdefault(line.product_id, []).append(line)
            if not by_product:
                return []

            products = {
                p.id: p for p in
                self.db.query(Product).filter(Product.id.in_(list(by_product))).all()
            }
            records = []
            for product_id, lines in by_product.items():
                product = products.get(product_id)
                records.append(ClientPurchaseHistoryRecord(
                    product_id=product_id,
                    product_name=product.name if product else "Unknown Product",
                    product_photo=product.photo if product else None,
                    total_purchased=sum(line.quantity for line in lines),
                    purchase_count=len(lines),
                    last_purchase_date=max(line.created_at for line in lines),
                    variants=_group_variants(lines),
                ))
            return sorted(records, key=lambda r: r.total_purchased, reverse=True)
        except Exception as e:
            logger.error(f"Failed to build purchase history for client {client_id}: {e}")
            self.db.rollback()
            return []

    def get_all_products_with_history(self) -> List[ProductWithHistory]:
        try:
            products = self.db.query(Product).order_by(Product.name).all()
        except Exception as e:
            logger.error(f"Failed to list products: {e}")
            self.db.rollback()
            return []

        results = []
        for product in products:
            summary = self.get_product_history_summary(product.id)
            results.append(ProductWithHistory(
                id=product.id,
                name=product.name,
                photo=product.photo,
                total_sold=summary.total_sold,
                unique_customers=summary.unique_customers,
                last_sale_date=summary.last_sale_date,
                current_stock=product.total_stock,
            ))
        return sorted(results, key=lambda r: r.total_sold, reverse=True)

    # ------------------------------------------------------------------
    # Ledger listings
    # ------------------------------------------------------------------

    def get_product_history(
        self,
        product_id: Optional[int] = None,
        variant_id: Optional[int] = None,
        source_type: Optional[SourceType] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        client_id: Optional[int] = None,
        limit: Optional[int] = None
    ) -> List[LedgerEntryDetail]:
        """Ledger rows, newest first, with variant details resolved"""
        try:
            query = self.db.query(ProductHistory, ProductVariant).outerjoin(
                ProductVariant, ProductVariant.id == ProductHistory.variant_id
            )
            if product_id is not None:
                query = query.filter(ProductHistory.product_id == product_id)
            if variant_id is not None:
                query = query.filter(ProductHistory.variant_id == variant_id)
            if source_type is not None:
                query = query.filter(ProductHistory.source_type == SourceType(source_type).value)
            if start_date is not None:
                query = query.filter(ProductHistory.created_at >= start_date)
            if end_date is not None:
                query = query.filter(ProductHistory.created_at <= end_date)
            if client_id is not None:
                invoice_ids = [
                    str(row.id) for row in
                    self.db.query(ClientInvoice.id).filter(ClientInvoice.client_id == client_id).all()
                ]
                query = query.filter(
                    ProductHistory.source_type.in_(CLIENT_DOCUMENT_SOURCES),
                    ProductHistory.source_id.in_(invoice_ids),
                )

            query = query.order_by(ProductHistory.created_at.desc(), ProductHistory.id.desc())
            if limit:
                query = query.limit(limit)

            return [self._detail(entry, variant) for entry, variant in query.all()]
        except Exception as e:
            logger.error(f"Failed to fetch product history: {e}")
            self.db.rollback()
            return []

    def get_product_timeline(self, product_id: int, limit: Optional[int] = None) -> List[LedgerEntryDetail]:
        return self.get_product_history(
            product_id=product_id, limit=limit or settings.PRODUCT_TIMELINE_LIMIT
        )

    def get_variant_history(self, variant_id: int, limit: Optional[int] = None) -> List[LedgerEntryDetail]:
        return self.get_product_history(
            variant_id=variant_id, limit=limit or settings.VARIANT_HISTORY_LIMIT
        )

    def export_product_history_csv(self, product_id: int) -> str:
        entries = self.get_product_history(product_id=product_id)
        invoices = self._client_invoices_by_source(
            [e.source_id for e in entries if e.source_type.value in CLIENT_DOCUMENT_SOURCES and e.source_id]
        )

        output = io.StringIO()
        writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator="\n")
        writer.writerow(CSV_COLUMNS)
        for entry in entries:
            order_number, customer = invoices.get(entry.source_id, (None, "N/A"))
            writer.writerow([
                entry.created_at.date().isoformat(),
                entry.source_type.value.replace("_", " ").upper(),
                order_number or entry.source_reference or "",
                customer,
                entry.size or "",
                entry.color or "",
                abs(entry.quantity_change),
                entry.notes or "",
            ])
        return output.getvalue()

    def _client_invoices_by_source(self, source_ids: List[str]) -> Dict[str, Tuple[Optional[str], str]]:
        """source_id -> (order number, client name) for client invoice entries"""
        invoice_ids = [int(s) for s in source_ids if s.isdigit()]
        if not invoice_ids:
            return {}
        rows = self.db.query(ClientInvoice.id, ClientInvoice.order_number, Client.name).join(
            Client, Client.id == ClientInvoice.client_id
        ).filter(ClientInvoice.id.in_(invoice_ids)).all()
        return {str(invoice_id): (order_number, name) for invoice_id, order_number, name in rows}

    @staticmethod
    def _detail(entry: ProductHistory, variant: Optional[ProductVariant]) -> LedgerEntryDetail:
        detail = LedgerEntryDetail.model_validate(entry)
        detail.size = variant.size if variant else None
        detail.color = variant.color if variant else None
        detail.description = format_history_entry(entry)
        return detail
