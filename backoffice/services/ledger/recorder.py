"""
Product History Recorder
Writes stock changes to the variant counter and the product_history ledger
"""
from typing import Optional, Tuple, Union

from sqlalchemy import func
from sqlalchemy.orm import Session

from backoffice.core.cache import TaggedCache, aggregation_cache
from backoffice.core.exceptions import NotFoundError, ValidationError
from backoffice.core.logging import get_logger
from backoffice.models import ProductHistory, ProductVariant, SourceType

logger = get_logger("ledger")

REFERENCE_LABELS = {
    SourceType.CLIENT_INVOICE.value: "Invoice",
    SourceType.SUPPLIER_INVOICE.value: "Purchase",
    SourceType.RETURN.value: "Return",
    SourceType.QUOTATION.value: "Quotation",
}


def _source_value(source_type: Union[SourceType, str]) -> str:
    return getattr(source_type, "value", source_type)


def default_reference(source_type: Union[SourceType, str], source_id) -> Optional[str]:
    """Display reference such as 'Invoice #12' for document-driven changes"""
    label = REFERENCE_LABELS.get(_source_value(source_type))
    if label is None or source_id is None:
        return None
    return f"{label} #{source_id}"


class ProductHistoryRecorder:
    """
    Stock change recorder

    apply_change() is the only path that moves a variant counter. It locks the
    variant row, updates the counter and appends a ledger entry in one
    transaction. The ledger insert runs in a SAVEPOINT: if it fails the stock
    change still stands and the failure is logged.
    """

    def __init__(self, db: Session, cache: TaggedCache = aggregation_cache):
        self.db = db
        self.cache = cache

    def record_change(
        self,
        product_id: int,
        variant_id: Optional[int],
        quantity_change: int,
        source_type: Union[SourceType, str],
        source_id: Optional[Union[int, str]] = None,
        source_reference: Optional[str] = None,
        notes: Optional[str] = None
    ) -> Optional[ProductHistory]:
        """
        Append a ledger entry without moving the counter

        The snapshot starts from the current counter; the caller is responsible
        for moving the counter itself. Returns None when the entry could not be
        written.
        """
        try:
            current = self._current_quantity(product_id, variant_id)
        except Exception as e:
            logger.error(f"Failed to read stock for product {product_id} variant {variant_id}: {e}")
            return None

        entry = self._write_entry(
            product_id, variant_id, quantity_change, current,
            source_type, source_id, source_reference, notes
        )
        if entry is not None:
            self.cache.invalidate("product", product_id)
        return entry

    def apply_change(
        self,
        product_id: int,
        variant_id: int,
        quantity_change: int,
        source_type: Union[SourceType, str],
        source_id: Optional[Union[int, str]] = None,
        source_reference: Optional[str] = None,
        notes: Optional[str] = None,
        commit: bool = True
    ) -> Tuple[ProductVariant, Optional[ProductHistory]]:
        """
        Move the variant counter by quantity_change and record the movement

        With commit=False the caller owns the transaction, which is how invoice
        creation groups all of its stock lines with the balance update.
        """
        variant = self._lock_variant(product_id, variant_id)

        previous = variant.quantity or 0
        variant.quantity = previous + quantity_change
        self.db.flush()

        if variant.quantity < 0:
            logger.warning(
                f"Variant {variant_id} of product {product_id} is below zero "
                f"({variant.quantity}) after {_source_value(source_type)} change"
            )

        entry = self._write_entry(
            product_id, variant_id, quantity_change, previous,
            source_type, source_id, source_reference, notes
        )

        if commit:
            self.db.commit()
            self.db.refresh(variant)

        self.cache.invalidate("product", product_id)
        return variant, entry

    def set_quantity(
        self,
        variant_id: int,
        new_quantity: int,
        source_type: Union[SourceType, str] = SourceType.MANUAL,
        notes: Optional[str] = None,
        commit: bool = True
    ) -> Tuple[ProductVariant, Optional[ProductHistory]]:
        """Set the counter to an absolute value, recording the difference"""
        if new_quantity < 0:
            raise ValidationError("Stock quantity cannot be negative")

        variant = self.db.query(ProductVariant).filter(ProductVariant.id == variant_id).first()
        if not variant:
            raise NotFoundError(f"Variant {variant_id} not found")

        delta = new_quantity - (variant.quantity or 0)
        return self.apply_change(
            variant.product_id, variant_id, delta, source_type,
            notes=notes or f"Stock set to {new_quantity}", commit=commit
        )

    def _lock_variant(self, product_id: int, variant_id: int) -> ProductVariant:
        variant = self.db.query(ProductVariant).filter(
            ProductVariant.id == variant_id
        ).with_for_update().first()

        if not variant:
            raise NotFoundError(f"Variant {variant_id} not found")
        if variant.product_id != product_id:
            raise ValidationError(f"Variant {variant_id} does not belong to product {product_id}")
        return variant

    def _current_quantity(self, product_id: int, variant_id: Optional[int]) -> int:
        if variant_id is None:
            total = self.db.query(func.coalesce(func.sum(ProductVariant.quantity), 0)).filter(
                ProductVariant.product_id == product_id
            ).scalar()
            return int(total or 0)

        variant = self.db.query(ProductVariant).filter(ProductVariant.id == variant_id).first()
        if not variant:
            raise NotFoundError(f"Variant {variant_id} not found")
        if variant.product_id != product_id:
            raise ValidationError(f"Variant {variant_id} does not belong to product {product_id}")
        return variant.quantity or 0

    def _write_entry(
        self,
        product_id: int,
        variant_id: Optional[int],
        quantity_change: int,
        previous_quantity: int,
        source_type: Union[SourceType, str],
        source_id,
        source_reference: Optional[str],
        notes: Optional[str]
    ) -> Optional[ProductHistory]:
        source_id = str(source_id) if source_id is not None else None
        try:
            with self.db.begin_nested():
                entry = ProductHistory(
                    product_id=product_id,
                    variant_id=variant_id,
                    quantity_change=quantity_change,
                    previous_quantity=previous_quantity,
                    new_quantity=previous_quantity + quantity_change,
                    source_type=_source_value(source_type),
                    source_id=source_id,
                    source_reference=source_reference or default_reference(source_type, source_id),
                    notes=notes,
                )
                self.db.add(entry)
                self.db.flush()
        except Exception as e:
            # The stock change stands; a missing ledger row is reported, not raised
            logger.error(
                f"Failed to record history for product {product_id} variant {variant_id} "
                f"({_source_value(source_type)} {source_id}): {e}"
            )
            return None

        logger.debug(
            f"Recorded {quantity_change:+d} for product {product_id} variant {variant_id} "
            f"({entry.previous_quantity} -> {entry.new_quantity})"
        )
        return entry
