# Overview: Pytest coverage for inter-location transfers.

"""
Transfer Workflow Tests

Covers PENDING -> IN_TRANSIT -> COMPLETED and cancellation:
1. Shipping moves the full requested quantity out of the source
2. Receipts may be partial but never exceed what is outstanding
3. Status is derived from line totals
4. Cancelling in transit returns unreceived stock to the source
"""

from decimal import Decimal

import pytest

from backoffice.errors import (
    ErrorKind,
    InsufficientStockError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from backoffice.models import InventoryTransaction
from backoffice.services.ledger_service import get_quantity_on_hand
from backoffice.services.transfer_service import (
    ReceiveLineInput,
    TransferLineInput,
    cancel_transfer,
    create_transfer,
    get_transfer,
    get_transfer_summary,
    list_transfers,
    receive_transfer,
    ship_transfer,
)


@pytest.fixture
def shipped_five(db_session, tenant_a, location_a, warehouse_a, product_a, user_a, stock):
    """Five units of product_a shipped from the warehouse to the store."""
    stock(tenant_a, product_a, warehouse_a, 20)
    transfer = create_transfer(
        tenant_a.id, user_a.id, warehouse_a.id, location_a.id,
        [TransferLineInput(product_id=product_a.id, quantity=5)],
    )
    return ship_transfer(tenant_a.id, user_a.id, transfer.id)


class TestCreateTransfer:
    """Transfer document validation."""

    def test_create_pending(self, db_session, tenant_a, location_a, warehouse_a, product_a, user_a):
        """New transfers are PENDING with nothing shipped."""
        transfer = create_transfer(
            tenant_a.id, user_a.id, warehouse_a.id, location_a.id,
            [TransferLineInput(product_id=product_a.id, quantity="2.5")],
            notes="Restock front shelf",
        )

        assert transfer.status == "PENDING"
        assert transfer.transfer_number == "TRF-000001"
        line = transfer.lines[0]
        assert line.quantity_requested == Decimal("2.5")
        assert line.quantity_shipped == Decimal("0")
        assert db_session.query(InventoryTransaction).count() == 0

    def test_same_location_rejected(self, db_session, tenant_a, location_a, product_a, user_a):
        """Source and destination must differ."""
        with pytest.raises(ValidationError):
            create_transfer(
                tenant_a.id, user_a.id, location_a.id, location_a.id,
                [TransferLineInput(product_id=product_a.id, quantity=1)],
            )

    def test_non_positive_quantity_rejected(self, db_session, tenant_a, location_a, warehouse_a, product_a, user_a):
        """Requested quantities must be positive."""
        with pytest.raises(ValidationError):
            create_transfer(
                tenant_a.id, user_a.id, warehouse_a.id, location_a.id,
                [TransferLineInput(product_id=product_a.id, quantity=0)],
            )

    def test_duplicate_product_rejected(self, db_session, tenant_a, location_a, warehouse_a, product_a, user_a):
        """Each product appears once per transfer."""
        with pytest.raises(ValidationError):
            create_transfer(
                tenant_a.id, user_a.id, warehouse_a.id, location_a.id,
                [
                    TransferLineInput(product_id=product_a.id, quantity=1),
                    TransferLineInput(product_id=product_a.id, quantity=2),
                ],
            )

    def test_other_tenant_product_rejected(self, db_session, tenant_a, location_a, warehouse_a, product_b, user_a):
        """Products of another tenant are not found."""
        with pytest.raises(ValidationError):
            create_transfer(
                tenant_a.id, user_a.id, warehouse_a.id, location_a.id,
                [TransferLineInput(product_id=product_b.id, quantity=1)],
            )


class TestShipAndReceive:
    """Stock leaves on ship and arrives on receive."""

    def test_ship_moves_stock_out(self, shipped_five, tenant_a, location_a, warehouse_a, product_a):
        """Shipping posts TRANSFER_OUT for the full requested quantity."""
        assert shipped_five.status == "IN_TRANSIT"
        assert shipped_five.shipped_at is not None
        assert shipped_five.lines[0].quantity_shipped == Decimal("5")
        assert get_quantity_on_hand(tenant_a.id, product_a.id, warehouse_a.id) == Decimal("15")
        assert get_quantity_on_hand(tenant_a.id, product_a.id, location_a.id) == Decimal("0")

    def test_full_receipt_completes(self, shipped_five, db_session, tenant_a, location_a, product_a, user_a):
        """Receiving all five completes the transfer."""
        transfer = receive_transfer(
            tenant_a.id, user_a.id, shipped_five.id,
            [ReceiveLineInput(product_id=product_a.id, quantity_received=5)],
        )

        assert transfer.status == "COMPLETED"
        assert transfer.completed_at is not None
        assert transfer.received_by_user_id == user_a.id
        assert get_quantity_on_hand(tenant_a.id, product_a.id, location_a.id) == Decimal("5")

        types = sorted(
            txn.transaction_type
            for txn in db_session.query(InventoryTransaction).filter_by(related_transfer_id=transfer.id)
        )
        assert types == ["TRANSFER_IN", "TRANSFER_OUT"]

    def test_partial_then_complete(self, shipped_five, tenant_a, location_a, product_a, user_a):
        """Two receipts of 2 and 3 complete the transfer."""
        transfer = receive_transfer(
            tenant_a.id, user_a.id, shipped_five.id,
            [ReceiveLineInput(product_id=product_a.id, quantity_received=2)],
        )
        assert transfer.status == "IN_TRANSIT"
        assert transfer.lines[0].quantity_received == Decimal("2")

        transfer = receive_transfer(
            tenant_a.id, user_a.id, shipped_five.id,
            [ReceiveLineInput(product_id=product_a.id, quantity_received=3)],
        )
        assert transfer.status == "COMPLETED"
        assert get_quantity_on_hand(tenant_a.id, product_a.id, location_a.id) == Decimal("5")

    def test_over_receipt_rejected(self, shipped_five, tenant_a, location_a, product_a, user_a):
        """Receiving more than outstanding fails and changes nothing."""
        with pytest.raises(ValidationError) as exc_info:
            receive_transfer(
                tenant_a.id, user_a.id, shipped_five.id,
                [ReceiveLineInput(product_id=product_a.id, quantity_received=6)],
            )

        assert exc_info.value.details["max_receivable"] == "5.0000"
        assert get_quantity_on_hand(tenant_a.id, product_a.id, location_a.id) == Decimal("0")
        assert get_transfer(tenant_a.id, shipped_five.id).status == "IN_TRANSIT"

    def test_line_received_in_full_rejects_more(
        self, db_session, tenant_a, location_a, warehouse_a, product_a, product_a2, user_a, stock
    ):
        """Receiving 1 more of a line already received 5 of 5 fails and keeps the status."""
        stock(tenant_a, product_a, warehouse_a, 5)
        stock(tenant_a, product_a2, warehouse_a, 3)
        transfer = create_transfer(
            tenant_a.id, user_a.id, warehouse_a.id, location_a.id,
            [
                TransferLineInput(product_id=product_a.id, quantity=5),
                TransferLineInput(product_id=product_a2.id, quantity=3),
            ],
        )
        ship_transfer(tenant_a.id, user_a.id, transfer.id)
        receive_transfer(
            tenant_a.id, user_a.id, transfer.id,
            [ReceiveLineInput(product_id=product_a.id, quantity_received=5)],
        )

        with pytest.raises(ValidationError) as exc_info:
            receive_transfer(
                tenant_a.id, user_a.id, transfer.id,
                [ReceiveLineInput(product_id=product_a.id, quantity_received=1)],
            )

        assert exc_info.value.details["max_receivable"] == "0.0000"
        assert get_transfer(tenant_a.id, transfer.id).status == "IN_TRANSIT"
        assert get_quantity_on_hand(tenant_a.id, product_a.id, location_a.id) == Decimal("5")

    def test_receive_before_ship_rejected(
        self, db_session, tenant_a, location_a, warehouse_a, product_a, user_a, stock
    ):
        """A PENDING transfer cannot be received; no stock appears at the destination."""
        stock(tenant_a, product_a, warehouse_a, 5)
        transfer = create_transfer(
            tenant_a.id, user_a.id, warehouse_a.id, location_a.id,
            [TransferLineInput(product_id=product_a.id, quantity=5)],
        )

        with pytest.raises(InvalidTransitionError) as exc_info:
            receive_transfer(
                tenant_a.id, user_a.id, transfer.id,
                [ReceiveLineInput(product_id=product_a.id, quantity_received=5)],
            )
        assert exc_info.value.details["current_status"] == "PENDING"
        assert get_quantity_on_hand(tenant_a.id, product_a.id, location_a.id) == Decimal("0")

        # Still shippable afterwards
        shipped = ship_transfer(tenant_a.id, user_a.id, transfer.id)
        assert shipped.status == "IN_TRANSIT"
        assert get_quantity_on_hand(tenant_a.id, product_a.id, warehouse_a.id) == Decimal("0")

    def test_unknown_product_in_receipt(self, shipped_five, tenant_a, product_a2, user_a):
        """Products not on the transfer are rejected."""
        with pytest.raises(ValidationError):
            receive_transfer(
                tenant_a.id, user_a.id, shipped_five.id,
                [ReceiveLineInput(product_id=product_a2.id, quantity_received=1)],
            )

    def test_ship_twice_rejected(self, shipped_five, tenant_a, user_a):
        """Only PENDING transfers ship."""
        with pytest.raises(InvalidTransitionError) as exc_info:
            ship_transfer(tenant_a.id, user_a.id, shipped_five.id)
        assert exc_info.value.kind == ErrorKind.BUSINESS_RULE

    def test_receive_after_completion_rejected(self, shipped_five, tenant_a, product_a, user_a):
        """Completed transfers reject further receipts."""
        receive_transfer(
            tenant_a.id, user_a.id, shipped_five.id,
            [ReceiveLineInput(product_id=product_a.id, quantity_received=5)],
        )
        with pytest.raises(InvalidTransitionError):
            receive_transfer(
                tenant_a.id, user_a.id, shipped_five.id,
                [ReceiveLineInput(product_id=product_a.id, quantity_received=1)],
            )

    def test_ship_without_stock_rolls_back(
        self, db_session, tenant_a, location_a, warehouse_a, product_a, user_a
    ):
        """An empty source blocks shipping and the transfer stays PENDING."""
        transfer = create_transfer(
            tenant_a.id, user_a.id, warehouse_a.id, location_a.id,
            [TransferLineInput(product_id=product_a.id, quantity=1)],
        )
        with pytest.raises(InsufficientStockError):
            ship_transfer(tenant_a.id, user_a.id, transfer.id)

        assert get_transfer(tenant_a.id, transfer.id).status == "PENDING"
        assert db_session.query(InventoryTransaction).count() == 0

    def test_other_tenant_cannot_ship(self, shipped_five, tenant_b, user_a):
        """Transfers are invisible across tenants."""
        with pytest.raises(NotFoundError):
            ship_transfer(tenant_b.id, user_a.id, shipped_five.id)


class TestCancelTransfer:
    """Cancellation returns stock that never arrived."""

    def test_cancel_pending_moves_nothing(self, db_session, tenant_a, location_a, warehouse_a, product_a, user_a):
        """A PENDING transfer cancels without ledger activity."""
        transfer = create_transfer(
            tenant_a.id, user_a.id, warehouse_a.id, location_a.id,
            [TransferLineInput(product_id=product_a.id, quantity=1)],
        )
        transfer = cancel_transfer(tenant_a.id, user_a.id, transfer.id, reason="Not needed")

        assert transfer.status == "CANCELLED"
        assert transfer.cancellation_reason == "Not needed"
        assert db_session.query(InventoryTransaction).count() == 0

    def test_cancel_in_transit_returns_unreceived(
        self, shipped_five, tenant_a, location_a, warehouse_a, product_a, user_a
    ):
        """After receiving 2 of 5, cancelling returns 3 to the source."""
        receive_transfer(
            tenant_a.id, user_a.id, shipped_five.id,
            [ReceiveLineInput(product_id=product_a.id, quantity_received=2)],
        )
        transfer = cancel_transfer(tenant_a.id, user_a.id, shipped_five.id)

        assert transfer.status == "CANCELLED"
        assert get_quantity_on_hand(tenant_a.id, product_a.id, warehouse_a.id) == Decimal("18")
        assert get_quantity_on_hand(tenant_a.id, product_a.id, location_a.id) == Decimal("2")

    def test_cancel_completed_rejected(self, shipped_five, tenant_a, product_a, user_a):
        """Completed transfers cannot be cancelled."""
        receive_transfer(
            tenant_a.id, user_a.id, shipped_five.id,
            [ReceiveLineInput(product_id=product_a.id, quantity_received=5)],
        )
        with pytest.raises(InvalidTransitionError):
            cancel_transfer(tenant_a.id, user_a.id, shipped_five.id)


class TestTransferReads:
    """Summary and list helpers."""

    def test_summary_reports_outstanding(self, shipped_five, tenant_a, product_a, user_a):
        """Outstanding = requested - received."""
        receive_transfer(
            tenant_a.id, user_a.id, shipped_five.id,
            [ReceiveLineInput(product_id=product_a.id, quantity_received=2)],
        )
        summary = get_transfer_summary(tenant_a.id, shipped_five.id)

        assert summary["lines"][0]["sku"] == "WIDGET-001"
        assert summary["lines"][0]["quantity_outstanding"] == "3.0000"
        assert summary["totals"] == {"requested": "5.0000", "shipped": "5.0000", "received": "2.0000"}

    def test_list_by_either_location(self, shipped_five, tenant_a, location_a, warehouse_a):
        """Location filter matches source or destination."""
        assert list_transfers(tenant_a.id, location_id=location_a.id)["count"] == 1
        assert list_transfers(tenant_a.id, location_id=warehouse_a.id)["count"] == 1
        assert list_transfers(tenant_a.id, status="COMPLETED")["count"] == 0
