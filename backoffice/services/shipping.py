"""
Shipping Invoice Service
Partial fulfilment of client and supplier invoices
"""
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Union

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from backoffice.core.cache import TaggedCache, aggregation_cache
from backoffice.core.config import settings
from backoffice.core.exceptions import (
    InvalidStatusTransition, NotFoundError, ShippingValidationError
)
from backoffice.core.logging import get_logger
from backoffice.models import PartyType, ShipmentStatus, ShippingStatus, get_party_models
from backoffice.schemas.shipping import (
    ShippedQuantities, ShippingData, ShippingProduct, ShippingValidation, VariantQuantities
)

logger = get_logger("shipping")

ALLOWED_TRANSITIONS = {
    ShipmentStatus.PENDING: {ShipmentStatus.SHIPPED},
    ShipmentStatus.SHIPPED: {ShipmentStatus.DELIVERED, ShipmentStatus.CANCELLED},
    ShipmentStatus.DELIVERED: set(),
    ShipmentStatus.CANCELLED: set(),
}

ProductInput = Union[ShippingProduct, dict]


def ordered_quantities(invoice) -> Dict[int, int]:
    """Ordered quantity per variant; repeated variant lines are summed"""
    ordered: Dict[int, int] = {}
    for item in invoice.line_items:
        variant_id = item.get("product_variant_id")
        if variant_id is None:
            continue
        ordered[int(variant_id)] = ordered.get(int(variant_id), 0) + abs(int(item.get("quantity", 0)))
    return ordered


def compute_shipped_quantities(invoice, shipments: Iterable) -> ShippedQuantities:
    """
    Ordered, shipped and remaining quantity per invoice variant

    Every shipment except cancelled ones counts as shipped. Shipment lines for
    variants not on the invoice are ignored.
    """
    quantities = {
        variant_id: VariantQuantities(ordered=ordered, shipped=0, remaining=ordered)
        for variant_id, ordered in ordered_quantities(invoice).items()
    }
    for shipment in shipments:
        if not shipment.counts_as_shipped:
            continue
        for item in shipment.products or []:
            entry = quantities.get(int(item.get("product_variant_id", 0)))
            if entry is None:
                continue
            entry.shipped += int(item.get("quantity", 0))

    for entry in quantities.values():
        entry.remaining = entry.ordered - entry.shipped
    return quantities


def shipping_status_for(quantities: ShippedQuantities) -> ShippingStatus:
    total_ordered = sum(q.ordered for q in quantities.values())
    total_shipped = sum(q.shipped for q in quantities.values())
    if total_shipped <= 0:
        return ShippingStatus.UNSHIPPED
    if total_shipped >= total_ordered:
        return ShippingStatus.FULLY_SHIPPED
    return ShippingStatus.PARTIALLY_SHIPPED


def _normalize_products(products: Iterable[ProductInput]) -> List[ShippingProduct]:
    return [p if isinstance(p, ShippingProduct) else ShippingProduct.model_validate(p) for p in products]


class ShippingInvoiceService:
    """
    Shipping invoices for one side of the ledger (client or supplier)

    A shipping invoice records part of an invoice leaving the warehouse.
    The parent invoice's shipping_status is derived from its shipments and
    recomputed on every shipment write.
    """

    def __init__(
        self,
        db: Session,
        party: Union[PartyType, str] = PartyType.CLIENT,
        cache: TaggedCache = aggregation_cache
    ):
        self.db = db
        self.party = PartyType(party)
        self.models = get_party_models(self.party)
        self.cache = cache

    @property
    def number_prefix(self) -> str:
        if self.party == PartyType.CLIENT:
            return settings.SHIPPING_NUMBER_PREFIX_CLIENT
        return settings.SHIPPING_NUMBER_PREFIX_SUPPLIER

    def _get_invoice(self, invoice_id: int, lock: bool = False):
        query = self.db.query(self.models.invoice).filter(self.models.invoice.id == invoice_id)
        if lock:
            query = query.with_for_update()
        invoice = query.first()
        if not invoice:
            raise NotFoundError(f"Invoice {invoice_id} not found")
        return invoice

    def _get_shipping_invoice(self, shipping_invoice_id: int):
        model = self.models.shipping_invoice
        shipment = self.db.query(model).filter(model.id == shipping_invoice_id).first()
        if not shipment:
            raise NotFoundError(f"Shipping invoice {shipping_invoice_id} not found")
        return shipment

    def _shipments_for(self, invoice_id: int) -> list:
        model = self.models.shipping_invoice
        return self.db.query(model).filter(model.invoice_id == invoice_id).all()

    def get_shipping_invoices(self, invoice_id: int) -> list:
        model = self.models.shipping_invoice
        return self.db.query(model).filter(
            model.invoice_id == invoice_id
        ).order_by(model.created_at.desc(), model.id.desc()).all()

    def get_all_shipping_invoices(
        self,
        status: Optional[ShipmentStatus] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        party_id: Optional[int] = None,
        search: Optional[str] = None
    ) -> list:
        model = self.models.shipping_invoice
        query = self.db.query(model)
        if status is not None:
            query = query.filter(model.status == ShipmentStatus(status).value)
        if start_date is not None:
            query = query.filter(model.created_at >= start_date)
        if end_date is not None:
            query = query.filter(model.created_at <= end_date)
        if party_id is not None:
            query = query.filter(getattr(model, self.models.party_fk) == party_id)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                model.shipping_number.ilike(pattern),
                model.tracking_number.ilike(pattern),
            ))
        return query.order_by(model.created_at.desc(), model.id.desc()).all()

    def get_shipped_quantities(self, invoice_id: int) -> ShippedQuantities:
        invoice = self._get_invoice(invoice_id)
        return compute_shipped_quantities(invoice, self._shipments_for(invoice_id))

    def validate_shipping_quantities(
        self, invoice_id: int, products: Iterable[ProductInput]
    ) -> ShippingValidation:
        """Check a proposed shipment against what remains; never raises"""
        try:
            invoice = self._get_invoice(invoice_id)
            quantities = compute_shipped_quantities(invoice, self._shipments_for(invoice_id))
        except NotFoundError as e:
            return ShippingValidation(is_valid=False, errors=[str(e)])
        except Exception as e:
            logger.error(f"Failed to load shipped quantities for invoice {invoice_id}: {e}")
            self.db.rollback()
            return ShippingValidation(is_valid=False, errors=["Failed to validate shipping quantities"])

        try:
            proposal = _normalize_products(products)
        except ValueError as e:
            return ShippingValidation(is_valid=False, errors=[f"Invalid shipping products: {e}"])
        return self._validate(quantities, proposal)

    @staticmethod
    def _validate(quantities: ShippedQuantities, proposal: List[ShippingProduct]) -> ShippingValidation:
        errors = []
        requested: Dict[int, int] = {}
        for product in proposal:
            if product.quantity <= 0:
                errors.append(f"Quantity for variant {product.product_variant_id} must be positive")
                continue
            requested[product.product_variant_id] = requested.get(product.product_variant_id, 0) + product.quantity

        for variant_id, quantity in requested.items():
            entry = quantities.get(variant_id)
            if entry is None:
                errors.append(f"Product variant {variant_id} not found in invoice")
            elif quantity > entry.remaining:
                errors.append(
                    f"Cannot ship {quantity} units of variant {variant_id}. "
                    f"Only {entry.remaining} remaining."
                )
        return ShippingValidation(is_valid=not errors, errors=errors)

    def generate_shipping_number(self, now: Optional[datetime] = None) -> str:
        """PREFIX-YYMM-NNNN where NNNN is this month's shipment count plus one"""
        now = now or datetime.now()
        model = self.models.shipping_invoice
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        if month_start.month == 12:
            next_month = month_start.replace(year=month_start.year + 1, month=1)
        else:
            next_month = month_start.replace(month=month_start.month + 1)

        count = self.db.query(func.count(model.id)).filter(
            model.created_at >= month_start, model.created_at < next_month
        ).scalar() or 0

        stem = f"{self.number_prefix}-{now:%y%m}"
        sequence = count + 1
        # Deleted shipments leave gaps in the count; skip numbers still in use
        while self.db.query(model.id).filter(model.shipping_number == f"{stem}-{sequence:04d}").first():
            sequence += 1
        return f"{stem}-{sequence:04d}"

    def create_shipping_invoice(
        self,
        invoice_id: int,
        products: Iterable[ProductInput],
        shipping_data: Optional[ShippingData] = None
    ):
        """Ship part of an invoice; validation and insert share one locked transaction"""
        shipping_data = shipping_data or ShippingData()
        proposal = _normalize_products(products)

        invoice = self._get_invoice(invoice_id, lock=True)
        quantities = compute_shipped_quantities(invoice, self._shipments_for(invoice_id))
        validation = self._validate(quantities, proposal)
        if not validation.is_valid:
            self.db.rollback()
            raise ShippingValidationError(validation.errors)

        now = datetime.now()
        try:
            shipment = self.models.shipping_invoice(
                invoice_id=invoice.id,
                shipping_number=self.generate_shipping_number(now),
                created_at=now,
                shipped_at=shipping_data.shipped_at or now,
                products=[p.model_dump(exclude_none=True) for p in proposal],
                tracking_number=shipping_data.tracking_number,
                carrier=shipping_data.carrier,
                shipping_method=shipping_data.shipping_method,
                shipping_address=shipping_data.shipping_address,
                shipping_cost=shipping_data.shipping_cost,
                notes=shipping_data.notes,
                status=ShipmentStatus.SHIPPED.value,
            )
            setattr(shipment, self.models.party_fk, invoice.party_id)
            self.db.add(shipment)
            self.db.flush()

            status = self._apply_shipping_status(invoice)
            self.db.commit()
            self.db.refresh(shipment)
        except Exception:
            self.db.rollback()
            raise

        self.cache.invalidate("invoice", invoice_id)
        logger.info(
            f"Created shipping invoice {shipment.shipping_number} for {self.party.value} "
            f"invoice {invoice_id}; invoice now {status.value}"
        )
        return shipment

    def update_shipping_invoice_status(
        self,
        shipping_invoice_id: int,
        status: Union[ShipmentStatus, str],
        delivered_at: Optional[datetime] = None
    ):
        shipment = self._get_shipping_invoice(shipping_invoice_id)
        current = ShipmentStatus(shipment.status)
        requested = ShipmentStatus(status)
        if requested not in ALLOWED_TRANSITIONS[current]:
            raise InvalidStatusTransition(current.value, requested.value)

        try:
            invoice = self._get_invoice(shipment.invoice_id, lock=True)
            shipment.status = requested.value
            if requested == ShipmentStatus.DELIVERED:
                shipment.delivered_at = delivered_at or datetime.now()
            self.db.flush()

            invoice_status = self._apply_shipping_status(invoice)
            self.db.commit()
            self.db.refresh(shipment)
        except Exception:
            self.db.rollback()
            raise

        self.cache.invalidate("invoice", shipment.invoice_id)
        logger.info(
            f"Shipping invoice {shipment.shipping_number} {current.value} -> {requested.value}; "
            f"invoice {shipment.invoice_id} now {invoice_status.value}"
        )
        return shipment

    def delete_shipping_invoice(self, shipping_invoice_id: int) -> None:
        shipment = self._get_shipping_invoice(shipping_invoice_id)
        invoice_id = shipment.invoice_id
        number = shipment.shipping_number

        try:
            invoice = self._get_invoice(invoice_id, lock=True)
            self.db.delete(shipment)
            self.db.flush()
            invoice_status = self._apply_shipping_status(invoice)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.cache.invalidate("invoice", invoice_id)
        logger.info(f"Deleted shipping invoice {number}; invoice {invoice_id} now {invoice_status.value}")

    def recompute_invoice_shipping_status(self, invoice_id: int) -> ShippingStatus:
        """Derive and store the invoice's shipping status; safe to repeat"""
        invoice = self._get_invoice(invoice_id, lock=True)
        status = self._apply_shipping_status(invoice)
        self.db.commit()
        return status

    def resync_shipping_statuses(self) -> Dict[int, str]:
        """Repair every invoice whose stored shipping status disagrees with its shipments"""
        changed: Dict[int, str] = {}
        for invoice in self.db.query(self.models.invoice).order_by(self.models.invoice.id).all():
            before = invoice.shipping_status
            status = self._apply_shipping_status(invoice)
            if status.value != before:
                changed[invoice.id] = status.value
        self.db.commit()
        if changed:
            logger.info(f"Resynced shipping status for {len(changed)} {self.party.value} invoices")
        return changed

    def _apply_shipping_status(self, invoice) -> ShippingStatus:
        self.db.flush()
        quantities = compute_shipped_quantities(invoice, self._shipments_for(invoice.id))
        status = shipping_status_for(quantities)
        invoice.shipping_status = status.value
        return status
