# Overview: Pytest coverage for order allocation and cancellation.

"""
Order Allocation Tests

1. PROCESSING orders post one SALE per stock-tracked item
2. Short stock rejects the whole order unless backorders are allowed
3. Cancelling mirrors every SALE back as RETURN_RESTOCK
4. Entering PROCESSING later allocates exactly once
"""

from decimal import Decimal

import pytest

from backoffice.errors import InsufficientStockError, InvalidTransitionError, ValidationError
from backoffice.models import InventoryTransaction, Order
from backoffice.services.ledger_service import get_quantity_on_hand
from backoffice.services.order_service import (
    OrderItemInput,
    cancel_order,
    create_order,
    get_order,
    list_orders,
    update_order_status,
)


def _order_txns(session, order_id):
    return (
        session.query(InventoryTransaction)
        .filter_by(related_order_id=order_id)
        .order_by(InventoryTransaction.id.asc())
        .all()
    )


class TestCreateOrder:
    """Validation, pricing and allocation on creation."""

    def test_processing_order_consumes_stock(
        self, db_session, tenant_a, location_a, product_a, service_product_a, user_a, stock
    ):
        """Tracked items post SALE; service items do not."""
        stock(tenant_a, product_a, location_a, 10)

        order = create_order(
            tenant_a.id, user_a.id, location_a.id,
            [
                OrderItemInput(product_id=product_a.id, quantity=3),
                OrderItemInput(product_id=service_product_a.id, quantity=1),
            ],
            shipping_cost="5.00",
            discount_amount="2.00",
        )

        assert order.status == "PROCESSING"
        assert order.order_number == "SO-000001"
        assert order.subtotal == Decimal("33")
        assert order.total_amount == Decimal("36")
        assert get_quantity_on_hand(tenant_a.id, product_a.id, location_a.id) == Decimal("7")

        txns = _order_txns(db_session, order.id)
        assert len(txns) == 1
        assert txns[0].transaction_type == "SALE"
        assert txns[0].quantity_change == Decimal("-3")
        assert txns[0].related_order_item_id == order.items[0].id

    def test_insufficient_stock_rejects_whole_order(
        self, db_session, tenant_a, location_a, product_a, user_a, stock
    ):
        """10 requested with 4 available persists nothing."""
        stock(tenant_a, product_a, location_a, 4)

        with pytest.raises(InsufficientStockError) as exc_info:
            create_order(
                tenant_a.id, user_a.id, location_a.id,
                [OrderItemInput(product_id=product_a.id, quantity=10)],
            )

        err = exc_info.value
        assert err.message == "Insufficient stock for WIDGET-001. Available: 4.0000, requested: 10.0000"
        assert err.details["available"] == "4.0000"
        assert err.details["requested"] == "10.0000"
        assert db_session.query(Order).count() == 0
        assert get_quantity_on_hand(tenant_a.id, product_a.id, location_a.id) == Decimal("4")

    def test_requested_quantity_aggregates_per_product(
        self, db_session, tenant_a, location_a, product_a, user_a, stock
    ):
        """Two lines of 3 against 5 on hand are short."""
        stock(tenant_a, product_a, location_a, 5)

        with pytest.raises(InsufficientStockError):
            create_order(
                tenant_a.id, user_a.id, location_a.id,
                [
                    OrderItemInput(product_id=product_a.id, quantity=3),
                    OrderItemInput(product_id=product_a.id, quantity=3, unit_price="9.00"),
                ],
            )

    def test_pending_payment_skips_stock(self, db_session, tenant_a, location_a, product_a, user_a, stock):
        """Non-allocating statuses never touch the ledger."""
        stock(tenant_a, product_a, location_a, 5)

        order = create_order(
            tenant_a.id, user_a.id, location_a.id,
            [OrderItemInput(product_id=product_a.id, quantity=2)],
            status="PENDING_PAYMENT",
        )

        assert order.status == "PENDING_PAYMENT"
        assert _order_txns(db_session, order.id) == []
        assert get_quantity_on_hand(tenant_a.id, product_a.id, location_a.id) == Decimal("5")

    def test_backorder_allowed_by_config(
        self, app, db_session, tenant_a, location_a, product_a, user_a, stock, monkeypatch
    ):
        """With ALLOW_BACKORDER the order is flagged and stock goes negative."""
        monkeypatch.setitem(app.config, "ALLOW_BACKORDER", True)
        stock(tenant_a, product_a, location_a, 1)

        order = create_order(
            tenant_a.id, user_a.id, location_a.id,
            [OrderItemInput(product_id=product_a.id, quantity=3)],
        )

        assert order.is_backordered is True
        assert get_quantity_on_hand(tenant_a.id, product_a.id, location_a.id) == Decimal("-2")

    @pytest.mark.parametrize("status", ["COMPLETED", "CANCELLED", "SHIPPED", "BOGUS"])
    def test_creation_status_restricted(self, db_session, tenant_a, location_a, product_a, user_a, status):
        """Orders start in PROCESSING, PENDING_PAYMENT or SUSPENDED only."""
        with pytest.raises(ValidationError):
            create_order(
                tenant_a.id, user_a.id, location_a.id,
                [OrderItemInput(product_id=product_a.id, quantity=1)],
                status=status,
            )

    def test_bad_item_values(self, db_session, tenant_a, location_a, product_a, user_a):
        """Zero quantity and negative price are rejected."""
        with pytest.raises(ValidationError):
            create_order(tenant_a.id, user_a.id, location_a.id,
                         [OrderItemInput(product_id=product_a.id, quantity=0)])
        with pytest.raises(ValidationError):
            create_order(tenant_a.id, user_a.id, location_a.id,
                         [OrderItemInput(product_id=product_a.id, quantity=1, unit_price="-1")])
        with pytest.raises(ValidationError):
            create_order(tenant_a.id, user_a.id, location_a.id, [])


class TestCancelOrder:
    """Cancellation reverses allocation."""

    def test_cancel_mirrors_sale(self, db_session, tenant_a, location_a, product_a, user_a, stock):
        """A 3.5 SALE with lot and serial is restocked as +3.5 with the same lot and serial."""
        stock(tenant_a, product_a, location_a, 10)
        order = create_order(
            tenant_a.id, user_a.id, location_a.id,
            [OrderItemInput(product_id=product_a.id, quantity="3.5",
                            lot_number="LOT-7", serial_number="SN-7")],
        )
        assert get_quantity_on_hand(tenant_a.id, product_a.id, location_a.id) == Decimal("6.5")

        order = cancel_order(tenant_a.id, user_a.id, order.id, reason="Customer changed mind")

        assert order.status == "CANCELLED"
        assert "Cancelled: Customer changed mind" in order.notes
        assert get_quantity_on_hand(tenant_a.id, product_a.id, location_a.id) == Decimal("10")

        sale, restock = _order_txns(db_session, order.id)
        assert restock.transaction_type == "RETURN_RESTOCK"
        assert restock.quantity_change == -sale.quantity_change == Decimal("3.5")
        assert (restock.lot_number, restock.serial_number) == ("LOT-7", "SN-7")
        assert restock.related_order_item_id == sale.related_order_item_id
        assert restock.location_id == sale.location_id

    def test_cancel_pending_payment_moves_nothing(self, db_session, tenant_a, location_a, product_a, user_a, stock):
        """Orders that never allocated cancel without ledger activity."""
        stock(tenant_a, product_a, location_a, 1)
        order = create_order(
            tenant_a.id, user_a.id, location_a.id,
            [OrderItemInput(product_id=product_a.id, quantity=1)],
            status="PENDING_PAYMENT",
        )
        cancel_order(tenant_a.id, user_a.id, order.id)

        assert _order_txns(db_session, order.id) == []

    def test_cancel_twice_rejected(self, db_session, tenant_a, location_a, product_a, user_a, stock):
        """Cancelled orders are terminal."""
        stock(tenant_a, product_a, location_a, 2)
        order = create_order(
            tenant_a.id, user_a.id, location_a.id,
            [OrderItemInput(product_id=product_a.id, quantity=1)],
        )
        cancel_order(tenant_a.id, user_a.id, order.id)

        with pytest.raises(InvalidTransitionError):
            cancel_order(tenant_a.id, user_a.id, order.id)
        assert get_quantity_on_hand(tenant_a.id, product_a.id, location_a.id) == Decimal("2")


class TestUpdateOrderStatus:
    """Status moves through the order state machine."""

    def test_pending_to_processing_allocates_once(
        self, db_session, tenant_a, location_a, product_a, user_a, stock
    ):
        """Entering PROCESSING allocates; moving on does not allocate again."""
        stock(tenant_a, product_a, location_a, 5)
        order = create_order(
            tenant_a.id, user_a.id, location_a.id,
            [OrderItemInput(product_id=product_a.id, quantity=2)],
            status="PENDING_PAYMENT",
        )

        update_order_status(tenant_a.id, user_a.id, order.id, "PROCESSING")
        assert get_quantity_on_hand(tenant_a.id, product_a.id, location_a.id) == Decimal("3")

        order = update_order_status(tenant_a.id, user_a.id, order.id, "COMPLETED")
        assert order.status == "COMPLETED"
        assert get_quantity_on_hand(tenant_a.id, product_a.id, location_a.id) == Decimal("3")
        assert len(_order_txns(db_session, order.id)) == 1

    def test_processing_without_stock_rolls_back(
        self, db_session, tenant_a, location_a, product_a, user_a, stock
    ):
        """A short order stays in its prior status."""
        stock(tenant_a, product_a, location_a, 2)
        order = create_order(
            tenant_a.id, user_a.id, location_a.id,
            [OrderItemInput(product_id=product_a.id, quantity=2)],
            status="SUSPENDED",
        )
        create_order(
            tenant_a.id, user_a.id, location_a.id,
            [OrderItemInput(product_id=product_a.id, quantity=2)],
        )

        with pytest.raises(InsufficientStockError):
            update_order_status(tenant_a.id, user_a.id, order.id, "PROCESSING")

        assert get_order(tenant_a.id, order.id).status == "SUSPENDED"

    def test_cancelled_target_delegates(self, db_session, tenant_a, location_a, product_a, user_a, stock):
        """Moving to CANCELLED runs the cancellation path."""
        stock(tenant_a, product_a, location_a, 5)
        order = create_order(
            tenant_a.id, user_a.id, location_a.id,
            [OrderItemInput(product_id=product_a.id, quantity=2)],
        )
        update_order_status(tenant_a.id, user_a.id, order.id, "CANCELLED")

        assert get_quantity_on_hand(tenant_a.id, product_a.id, location_a.id) == Decimal("5")

    def test_completed_cannot_reopen(self, db_session, tenant_a, location_a, product_a, user_a, stock):
        """COMPLETED -> PROCESSING is not a valid move."""
        stock(tenant_a, product_a, location_a, 5)
        order = create_order(
            tenant_a.id, user_a.id, location_a.id,
            [OrderItemInput(product_id=product_a.id, quantity=1)],
        )
        update_order_status(tenant_a.id, user_a.id, order.id, "COMPLETED")

        with pytest.raises(InvalidTransitionError):
            update_order_status(tenant_a.id, user_a.id, order.id, "PROCESSING")

    def test_list_orders_by_status(self, db_session, tenant_a, location_a, product_a, user_a, stock):
        """Orders filter by status."""
        stock(tenant_a, product_a, location_a, 1)
        create_order(
            tenant_a.id, user_a.id, location_a.id,
            [OrderItemInput(product_id=product_a.id, quantity=1)],
            status="PENDING_PAYMENT",
        )
        assert list_orders(tenant_a.id, status="PENDING_PAYMENT")["count"] == 1
        assert list_orders(tenant_a.id, status="PROCESSING")["count"] == 0
