# Overview: Pytest coverage for customer returns and restocking.

from decimal import Decimal

import pytest

from backoffice.errors import InvalidTransitionError, NotFoundError, ValidationError
from backoffice.models import InventoryTransaction, Payment, ReturnItem
from backoffice.services.ledger_service import get_quantity_on_hand
from backoffice.services.order_service import OrderItemInput, cancel_order, create_order, get_order
from backoffice.services.return_service import (
    RefundPaymentInput,
    ReturnItemInput,
    create_return,
    get_return,
    list_returns,
    update_return_status,
)


@pytest.fixture
def sold_three(db_session, tenant_a, location_a, product_a, user_a, stock):
    """Order for 3 x product_a at 10.00, stock left at 7."""
    stock(tenant_a, product_a, location_a, 10)
    return create_order(
        tenant_a.id, user_a.id, location_a.id,
        [OrderItemInput(product_id=product_a.id, quantity=3)],
    )


class TestCreateReturn:
    """Returns restock sellable goods against the original order item."""

    def test_sellable_return_restocks(self, sold_three, db_session, tenant_a, location_a, product_a, user_a):
        """Returning 1 sellable unit adds it back and partially returns the order."""
        return_doc = create_return(
            tenant_a.id, user_a.id, sold_three.id, location_a.id,
            [ReturnItemInput(product_id=product_a.id, quantity=1)],
            refund_payments=[RefundPaymentInput(payment_method="CASH", amount="10.00")],
            reason="Wrong size",
        )

        assert return_doc.status == "COMPLETED"
        assert return_doc.return_number == "RTN-000001"
        assert return_doc.total_refund_amount == Decimal("10")
        assert get_quantity_on_hand(tenant_a.id, product_a.id, location_a.id) == Decimal("8")
        assert get_order(tenant_a.id, sold_three.id).status == "PARTIALLY_RETURNED"

        item = db_session.query(ReturnItem).one()
        assert item.restock is True
        assert item.original_order_item_id == sold_three.items[0].id
        txn = db_session.query(InventoryTransaction).filter_by(related_return_item_id=item.id).one()
        assert txn.transaction_type == "RETURN_RESTOCK"
        assert txn.quantity_change == Decimal("1")

        payment = db_session.query(Payment).one()
        assert (payment.payment_method, payment.amount) == ("CASH", Decimal("10"))
        assert payment.return_id == return_doc.id

    def test_damaged_return_not_restocked(self, sold_three, db_session, tenant_a, location_a, product_a, user_a):
        """Damaged goods are recorded without a stock movement."""
        create_return(
            tenant_a.id, user_a.id, sold_three.id, location_a.id,
            [ReturnItemInput(product_id=product_a.id, quantity=3, condition="DAMAGED")],
        )

        assert get_quantity_on_hand(tenant_a.id, product_a.id, location_a.id) == Decimal("7")
        assert db_session.query(ReturnItem).one().restock is False
        assert get_order(tenant_a.id, sold_three.id).status == "RETURNED"

    def test_over_return_rejected(self, sold_three, tenant_a, location_a, product_a, user_a):
        """Earlier returns and earlier lines count against the sold quantity."""
        create_return(
            tenant_a.id, user_a.id, sold_three.id, location_a.id,
            [ReturnItemInput(product_id=product_a.id, quantity=2)],
        )

        with pytest.raises(ValidationError) as exc_info:
            create_return(
                tenant_a.id, user_a.id, sold_three.id, location_a.id,
                [ReturnItemInput(product_id=product_a.id, quantity=2)],
            )
        assert exc_info.value.details["max_returnable"] == "1.0000"
        assert get_quantity_on_hand(tenant_a.id, product_a.id, location_a.id) == Decimal("9")

    def test_same_request_lines_accumulate(self, sold_three, tenant_a, location_a, product_a, user_a):
        """Two lines of 2 in one request exceed the 3 sold."""
        with pytest.raises(ValidationError):
            create_return(
                tenant_a.id, user_a.id, sold_three.id, location_a.id,
                [
                    ReturnItemInput(product_id=product_a.id, quantity=2),
                    ReturnItemInput(product_id=product_a.id, quantity=2, condition="DEFECTIVE"),
                ],
            )

    def test_product_not_on_order(self, sold_three, tenant_a, location_a, product_a2, user_a):
        """Products never sold on the order cannot be returned."""
        with pytest.raises(ValidationError):
            create_return(
                tenant_a.id, user_a.id, sold_three.id, location_a.id,
                [ReturnItemInput(product_id=product_a2.id, quantity=1)],
            )

    def test_no_positive_items(self, sold_three, tenant_a, location_a, product_a, user_a):
        """Zero-quantity lines are dropped; nothing left is an error."""
        with pytest.raises(ValidationError):
            create_return(
                tenant_a.id, user_a.id, sold_three.id, location_a.id,
                [ReturnItemInput(product_id=product_a.id, quantity=0)],
            )

    def test_inactive_location_rejected(self, sold_three, tenant_a, inactive_location_a, product_a, user_a):
        """Goods cannot be returned into a closed location."""
        with pytest.raises(ValidationError):
            create_return(
                tenant_a.id, user_a.id, sold_three.id, inactive_location_a.id,
                [ReturnItemInput(product_id=product_a.id, quantity=1)],
            )

    def test_cancelled_order_rejected(self, sold_three, tenant_a, location_a, product_a, user_a):
        """Cancelled orders do not accept returns."""
        cancel_order(tenant_a.id, user_a.id, sold_three.id)

        with pytest.raises(InvalidTransitionError):
            create_return(
                tenant_a.id, user_a.id, sold_three.id, location_a.id,
                [ReturnItemInput(product_id=product_a.id, quantity=1)],
            )

    def test_other_tenant_order(self, sold_three, tenant_b, location_b, product_a, user_a):
        """Orders of another tenant are not found."""
        with pytest.raises(NotFoundError):
            create_return(
                tenant_b.id, user_a.id, sold_three.id, location_b.id,
                [ReturnItemInput(product_id=product_a.id, quantity=1)],
            )


class TestReturnStatus:
    """Return status updates."""

    def test_pending_to_approved_appends_note(self, sold_three, db_session, tenant_a, location_a, product_a, user_a):
        """Notes are appended with the acting user."""
        return_doc = create_return(
            tenant_a.id, user_a.id, sold_three.id, location_a.id,
            [ReturnItemInput(product_id=product_a.id, quantity=1)],
            reason="Wrong size",
        )
        return_doc.status = "PENDING"
        db_session.commit()

        updated = update_return_status(tenant_a.id, user_a.id, return_doc.id, "APPROVED", notes="Checked")

        assert updated.status == "APPROVED"
        assert updated.reason == f"Wrong size\n[APPROVED by user {user_a.id}]: Checked"

    def test_same_status_is_noop(self, sold_three, tenant_a, location_a, product_a, user_a):
        """Re-applying COMPLETED changes nothing."""
        return_doc = create_return(
            tenant_a.id, user_a.id, sold_three.id, location_a.id,
            [ReturnItemInput(product_id=product_a.id, quantity=1)],
        )
        updated = update_return_status(tenant_a.id, user_a.id, return_doc.id, "COMPLETED", notes="again")

        assert updated.status == "COMPLETED"
        assert updated.reason is None

    def test_completed_cannot_be_rejected(self, sold_three, tenant_a, location_a, product_a, user_a):
        """COMPLETED is terminal."""
        return_doc = create_return(
            tenant_a.id, user_a.id, sold_three.id, location_a.id,
            [ReturnItemInput(product_id=product_a.id, quantity=1)],
        )
        with pytest.raises(InvalidTransitionError):
            update_return_status(tenant_a.id, user_a.id, return_doc.id, "REJECTED")

    def test_reads(self, sold_three, tenant_a, location_a, product_a, user_a):
        """Returns are readable by id and by order."""
        return_doc = create_return(
            tenant_a.id, user_a.id, sold_three.id, location_a.id,
            [ReturnItemInput(product_id=product_a.id, quantity=1)],
        )
        assert get_return(tenant_a.id, return_doc.id).original_order_id == sold_three.id
        assert list_returns(tenant_a.id, original_order_id=sold_three.id)["count"] == 1
