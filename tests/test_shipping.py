"""
Tests for Shipping Invoices
Partial fulfilment, quantity validation and status derivation
"""

import pytest
from datetime import datetime
from decimal import Decimal
from sqlalchemy.orm import Session

from backoffice.core.exceptions import (
    InvalidStatusTransition, NotFoundError, ShippingValidationError
)
from backoffice.models import (
    ClientInvoice, ClientShippingInvoice, ShipmentStatus, ShippingStatus, SupplierInvoice
)
from backoffice.schemas.shipping import ShippingData, ShippingProduct
from backoffice.services.shipping import ShippingInvoiceService


def line(variant, quantity):
    return ShippingProduct(product_id=variant.product_id, product_variant_id=variant.id, quantity=quantity)


@pytest.fixture
def order(make_client_invoice, sample_client, variants):
    """An invoice for 10 red and 5 blue shirts"""
    red, blue = variants
    return make_client_invoice(sample_client, 375, products=[
        {"product_id": red.product_id, "product_variant_id": red.id, "quantity": 10, "unit_price": "25.00"},
        {"product_id": blue.product_id, "product_variant_id": blue.id, "quantity": 5, "unit_price": "25.00"},
    ])


@pytest.fixture
def red_only_order(make_client_invoice, sample_client, variants):
    """An invoice for 10 red shirts"""
    red, _ = variants
    return make_client_invoice(sample_client, 250, products=[
        {"product_id": red.product_id, "product_variant_id": red.id, "quantity": 10},
    ])


class TestShippingInvoiceService:
    """Test suite for ShippingInvoiceService"""

    def test_status_follows_shipments(self, db_session: Session, red_only_order, variants):
        """Ship 4, then 6, then cancel the 6: partial, full, partial again"""
        red, _ = variants
        service = ShippingInvoiceService(db_session)

        service.create_shipping_invoice(red_only_order.id, [line(red, 4)])
        db_session.refresh(red_only_order)
        assert red_only_order.shipping_status == ShippingStatus.PARTIALLY_SHIPPED.value

        second = service.create_shipping_invoice(red_only_order.id, [line(red, 6)])
        db_session.refresh(red_only_order)
        assert red_only_order.shipping_status == ShippingStatus.FULLY_SHIPPED.value

        service.update_shipping_invoice_status(second.id, ShipmentStatus.CANCELLED)
        db_session.refresh(red_only_order)
        assert red_only_order.shipping_status == ShippingStatus.PARTIALLY_SHIPPED.value
        assert service.get_shipped_quantities(red_only_order.id)[red.id].remaining == 6

    def test_shipped_plus_remaining_equals_ordered(self, db_session: Session, order, variants):
        red, blue = variants
        service = ShippingInvoiceService(db_session)
        service.create_shipping_invoice(order.id, [line(red, 3), line(blue, 5)])
        service.create_shipping_invoice(order.id, [line(red, 2)])

        quantities = service.get_shipped_quantities(order.id)

        assert quantities[red.id].shipped == 5
        assert quantities[blue.id].shipped == 5
        for entry in quantities.values():
            assert entry.shipped + entry.remaining == entry.ordered

    def test_delete_restores_exact_quantities(self, db_session: Session, order, variants):
        red, blue = variants
        service = ShippingInvoiceService(db_session)
        service.create_shipping_invoice(order.id, [line(red, 2)])
        doomed = service.create_shipping_invoice(order.id, [line(red, 3), line(blue, 1)])

        before = service.get_shipped_quantities(order.id)
        service.delete_shipping_invoice(doomed.id)
        after = service.get_shipped_quantities(order.id)

        assert before[red.id].shipped - after[red.id].shipped == 3
        assert before[blue.id].shipped - after[blue.id].shipped == 1
        db_session.refresh(order)
        assert order.shipping_status == ShippingStatus.PARTIALLY_SHIPPED.value

    def test_duplicate_invoice_lines_are_summed(
        self, db_session: Session, make_client_invoice, sample_client, variants
    ):
        red, _ = variants
        invoice = make_client_invoice(sample_client, 100, products=[
            {"product_id": red.product_id, "product_variant_id": red.id, "quantity": 2},
            {"product_id": red.product_id, "product_variant_id": red.id, "quantity": 3},
        ])

        quantities = ShippingInvoiceService(db_session).get_shipped_quantities(invoice.id)

        assert quantities[red.id].ordered == 5

    def test_create_rejects_over_shipment(self, db_session: Session, order, variants):
        """Nothing is written when any line exceeds what remains"""
        red, blue = variants
        service = ShippingInvoiceService(db_session)

        with pytest.raises(ShippingValidationError) as exc_info:
            service.create_shipping_invoice(order.id, [line(red, 11), line(blue, 6)])

        assert len(exc_info.value.errors) == 2
        assert "Only 10 remaining" in exc_info.value.errors[0]
        assert db_session.query(ClientShippingInvoice).count() == 0

    def test_create_records_shipping_details(self, db_session: Session, order, variants, sample_client):
        red, _ = variants
        shipped_at = datetime(2024, 10, 3, 9, 30)
        shipment = ShippingInvoiceService(db_session).create_shipping_invoice(
            order.id,
            [line(red, 1)],
            ShippingData(carrier="DHL", tracking_number="TRK123", shipping_cost=Decimal("7.50"),
                         shipped_at=shipped_at),
        )

        assert shipment.status == ShipmentStatus.SHIPPED.value
        assert shipment.client_id == sample_client.id
        assert shipment.carrier == "DHL"
        assert shipment.shipped_at == shipped_at
        assert shipment.products == [{"product_id": red.product_id, "product_variant_id": red.id, "quantity": 1}]

    def test_unknown_invoice(self, db_session: Session, variants):
        red, _ = variants
        with pytest.raises(NotFoundError):
            ShippingInvoiceService(db_session).create_shipping_invoice(4242, [line(red, 1)])

    def test_delivered_sets_timestamp(self, db_session: Session, order, variants):
        red, _ = variants
        service = ShippingInvoiceService(db_session)
        shipment = service.create_shipping_invoice(order.id, [line(red, 1)])

        delivered = service.update_shipping_invoice_status(shipment.id, "delivered")

        assert delivered.status == ShipmentStatus.DELIVERED.value
        assert delivered.delivered_at is not None

    @pytest.mark.parametrize("first,second", [
        (ShipmentStatus.DELIVERED, ShipmentStatus.SHIPPED),
        (ShipmentStatus.CANCELLED, ShipmentStatus.DELIVERED),
        (ShipmentStatus.DELIVERED, ShipmentStatus.DELIVERED),
    ])
    def test_invalid_transitions(self, db_session: Session, order, variants, first, second):
        red, _ = variants
        service = ShippingInvoiceService(db_session)
        shipment = service.create_shipping_invoice(order.id, [line(red, 1)])
        service.update_shipping_invoice_status(shipment.id, first)

        with pytest.raises(InvalidStatusTransition):
            service.update_shipping_invoice_status(shipment.id, second)

    def test_pending_shipment_can_be_shipped(self, db_session: Session, order, variants):
        red, _ = variants
        service = ShippingInvoiceService(db_session)
        shipment = service.create_shipping_invoice(order.id, [line(red, 2)])
        shipment.status = ShipmentStatus.PENDING.value
        db_session.commit()

        updated = service.update_shipping_invoice_status(shipment.id, ShipmentStatus.SHIPPED)

        assert updated.status == ShipmentStatus.SHIPPED.value


class TestShippingValidation:
    """validate_shipping_quantities never raises"""

    def test_valid_proposal(self, db_session: Session, order, variants):
        red, blue = variants
        result = ShippingInvoiceService(db_session).validate_shipping_quantities(
            order.id, [line(red, 10), line(blue, 5)]
        )
        assert result.is_valid is True
        assert result.errors == []

    def test_collects_every_error(self, db_session: Session, order, variants):
        red, _ = variants
        result = ShippingInvoiceService(db_session).validate_shipping_quantities(order.id, [
            line(red, 0),
            {"product_id": red.product_id, "product_variant_id": 9999, "quantity": 1},
        ])

        assert result.is_valid is False
        assert len(result.errors) == 2
        assert "not found in invoice" in result.errors[1]

    def test_split_lines_cannot_bypass_remaining(self, db_session: Session, order, variants):
        """Two lines for the same variant are checked against remaining together"""
        red, _ = variants
        result = ShippingInvoiceService(db_session).validate_shipping_quantities(
            order.id, [line(red, 6), line(red, 6)]
        )
        assert result.is_valid is False

    def test_missing_invoice(self, db_session: Session, variants):
        red, _ = variants
        result = ShippingInvoiceService(db_session).validate_shipping_quantities(4242, [line(red, 1)])

        assert result.is_valid is False
        assert result.errors == ["Invoice 4242 not found"]


class TestShippingMaintenance:
    """Numbering, listings and status repair"""

    def test_shipping_numbers_are_sequential(self, db_session: Session, order, variants):
        red, _ = variants
        service = ShippingInvoiceService(db_session)
        stem = f"CSH-{datetime.now():%y%m}"

        first = service.create_shipping_invoice(order.id, [line(red, 1)])
        second = service.create_shipping_invoice(order.id, [line(red, 1)])

        assert first.shipping_number == f"{stem}-0001"
        assert second.shipping_number == f"{stem}-0002"

    def test_shipping_number_skips_numbers_in_use(self, db_session: Session, order, variants):
        red, _ = variants
        service = ShippingInvoiceService(db_session)
        first = service.create_shipping_invoice(order.id, [line(red, 1)])
        service.create_shipping_invoice(order.id, [line(red, 1)])
        service.delete_shipping_invoice(first.id)

        # One shipment left this month, but -0002 is still taken
        assert service.generate_shipping_number().endswith("-0003")

    def test_supplier_prefix(self, db_session: Session, sample_supplier, variants):
        red, _ = variants
        invoice = SupplierInvoice(
            supplier_id=sample_supplier.id,
            total_price=Decimal("100"),
            products=[{"product_id": red.product_id, "product_variant_id": red.id, "quantity": 4}],
        )
        db_session.add(invoice)
        db_session.commit()

        shipment = ShippingInvoiceService(db_session, "supplier").create_shipping_invoice(
            invoice.id, [line(red, 4)]
        )

        assert shipment.shipping_number.startswith("SSH-")
        assert shipment.supplier_id == sample_supplier.id
        db_session.refresh(invoice)
        assert invoice.shipping_status == ShippingStatus.FULLY_SHIPPED.value

    def test_list_filters(self, db_session: Session, order, variants):
        red, _ = variants
        service = ShippingInvoiceService(db_session)
        service.create_shipping_invoice(order.id, [line(red, 1)], ShippingData(tracking_number="TRK-A"))
        cancelled = service.create_shipping_invoice(order.id, [line(red, 1)], ShippingData(tracking_number="TRK-B"))
        service.update_shipping_invoice_status(cancelled.id, ShipmentStatus.CANCELLED)

        assert len(service.get_all_shipping_invoices()) == 2
        assert [s.id for s in service.get_all_shipping_invoices(status="cancelled")] == [cancelled.id]
        assert [s.tracking_number for s in service.get_all_shipping_invoices(search="trk-a")] == ["TRK-A"]
        assert len(service.get_shipping_invoices(order.id)) == 2

    def test_resync_repairs_drifted_status(self, db_session: Session, order, variants):
        red, _ = variants
        service = ShippingInvoiceService(db_session)
        service.create_shipping_invoice(order.id, [line(red, 2)])

        order.shipping_status = ShippingStatus.UNSHIPPED.value
        db_session.commit()

        assert service.resync_shipping_statuses() == {order.id: ShippingStatus.PARTIALLY_SHIPPED.value}
        assert service.resync_shipping_statuses() == {}
        assert service.recompute_invoice_shipping_status(order.id) == ShippingStatus.PARTIALLY_SHIPPED

    def test_unshipped_invoice(self, db_session: Session, order):
        status = ShippingInvoiceService(db_session).recompute_invoice_shipping_status(order.id)

        assert status == ShippingStatus.UNSHIPPED
        assert db_session.get(ClientInvoice, order.id).shipping_status == ShippingStatus.UNSHIPPED.value
