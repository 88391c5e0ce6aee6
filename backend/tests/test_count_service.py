# Overview: Pytest coverage for the physical stock count workflow.

"""
Stock Count Tests

PENDING -> COUNTING -> REVIEW -> COMPLETED, plus cancellation:
1. Snapshots freeze on-hand at initiation
2. Variance = counted - snapshot
3. Only APPROVED items with a non-zero variance are posted
4. Posting creates one STOCK_COUNT_VARIANCE adjustment
"""

from decimal import Decimal

import pytest

from backoffice.errors import InvalidTransitionError, ValidationError
from backoffice.models import Adjustment, InventoryTransaction
from backoffice.models.enums import InventoryTransactionType
from backoffice.services.count_service import (
    VARIANCE_REASON_CODE,
    CountEntryInput,
    ReviewActionInput,
    cancel_stock_count,
    enter_count_data,
    get_count_summary,
    get_stock_count,
    initiate_stock_count,
    list_stock_counts,
    post_stock_count_adjustments,
    review_stock_count,
)
from backoffice.services.ledger_service import get_balance, get_quantity_on_hand
from backoffice.services.unit_of_work import unit_of_work
from backoffice.time_utils import utcnow


def _items_by_product(stock_count):
    return {item.product_id: item for item in stock_count.items}


@pytest.fixture
def open_count(db_session, tenant_a, location_a, product_a, product_a2, user_a, stock):
    """Full count at location_a over product_a (10 @ 2.00) and product_a2 (5)."""
    stock(tenant_a, product_a, location_a, 10, unit_cost="2.00")
    stock(tenant_a, product_a2, location_a, 5)
    return initiate_stock_count(tenant_a.id, user_a.id, location_a.id, "FULL")


class TestInitiate:
    """Count creation and snapshots."""

    def test_full_count_snapshots_balances(self, open_count, product_a, product_a2):
        """Every tracked balance at the location becomes a PENDING item."""
        assert open_count.status == "PENDING"
        assert open_count.count_number == f"SC-{utcnow().year}-00001"

        items = _items_by_product(open_count)
        assert set(items) == {product_a.id, product_a2.id}
        assert items[product_a.id].snapshot_quantity == Decimal("10")
        assert items[product_a.id].unit_cost == Decimal("2")
        assert all(item.status == "PENDING" for item in items.values())

    def test_cycle_count_without_balance_snapshots_zero(
        self, db_session, tenant_a, location_a, product_a, user_a
    ):
        """Cycle products that never moved are counted from zero."""
        stock_count = initiate_stock_count(
            tenant_a.id, user_a.id, location_a.id, "CYCLE", product_ids=[product_a.id]
        )
        item = stock_count.items[0]
        assert item.snapshot_quantity == Decimal("0")
        assert item.unit_cost is None

    def test_nothing_to_count(self, db_session, tenant_a, location_a, user_a):
        """A location without balances has nothing to count."""
        with pytest.raises(ValidationError):
            initiate_stock_count(tenant_a.id, user_a.id, location_a.id)

    def test_inactive_location(self, db_session, tenant_a, inactive_location_a, user_a):
        """Closed locations cannot be counted."""
        with pytest.raises(ValidationError):
            initiate_stock_count(tenant_a.id, user_a.id, inactive_location_a.id)

    def test_bad_count_type(self, db_session, tenant_a, location_a, user_a):
        """Only FULL and CYCLE are valid."""
        with pytest.raises(ValidationError):
            initiate_stock_count(tenant_a.id, user_a.id, location_a.id, "ANNUAL")


class TestCountLifecycle:
    """Entering, reviewing and posting."""

    def test_approved_shortage_is_posted(self, open_count, db_session, tenant_a, location_a, product_a, product_a2, user_a):
        """Counting 8 of 10 posts a -2 CYCLE_COUNT_ADJUSTMENT."""
        items = _items_by_product(open_count)
        counted = enter_count_data(tenant_a.id, user_a.id, open_count.id, [
            CountEntryInput(items[product_a.id].id, 8),
            CountEntryInput(items[product_a2.id].id, 5),
        ])
        assert counted.status == "COUNTING"
        assert _items_by_product(counted)[product_a.id].variance_quantity == Decimal("-2")

        reviewed = review_stock_count(tenant_a.id, user_a.id, open_count.id, [
            ReviewActionInput(items[product_a.id].id, "APPROVED"),
            ReviewActionInput(items[product_a2.id].id, "APPROVED"),
        ])
        assert reviewed.status == "REVIEW"

        stock_count, adjustment, created = post_stock_count_adjustments(tenant_a.id, user_a.id, open_count.id)

        assert stock_count.status == "COMPLETED"
        assert created == 1
        assert adjustment.reason_code == VARIANCE_REASON_CODE
        assert stock_count.adjustment_id == adjustment.id
        assert get_quantity_on_hand(tenant_a.id, product_a.id, location_a.id) == Decimal("8")
        assert get_quantity_on_hand(tenant_a.id, product_a2.id, location_a.id) == Decimal("5")

        txn = db_session.query(InventoryTransaction).filter_by(related_adjustment_id=adjustment.id).one()
        assert txn.transaction_type == "CYCLE_COUNT_ADJUSTMENT"
        assert txn.quantity_change == Decimal("-2")
        assert get_balance(tenant_a.id, product_a.id, location_a.id).last_counted_at is not None

    def test_recount_and_skipped_not_posted(self, open_count, db_session, tenant_a, location_a, product_a, product_a2, user_a):
        """Only APPROVED items move stock."""
        items = _items_by_product(open_count)
        enter_count_data(tenant_a.id, user_a.id, open_count.id, [
            CountEntryInput(items[product_a.id].id, 12),
            CountEntryInput(items[product_a2.id].id, 1),
        ])
        review_stock_count(tenant_a.id, user_a.id, open_count.id, [
            ReviewActionInput(items[product_a.id].id, "RECOUNT_REQUESTED"),
            ReviewActionInput(items[product_a2.id].id, "SKIPPED"),
        ])

        stock_count, adjustment, created = post_stock_count_adjustments(tenant_a.id, user_a.id, open_count.id)

        assert stock_count.status == "COMPLETED"
        assert adjustment is None
        assert created == 0
        assert db_session.query(Adjustment).count() == 0
        assert get_quantity_on_hand(tenant_a.id, product_a.id, location_a.id) == Decimal("10")

    def test_zero_variance_completes_without_adjustment(self, open_count, tenant_a, product_a, product_a2, user_a):
        """Matching counts complete the count with no adjustment."""
        items = _items_by_product(open_count)
        enter_count_data(tenant_a.id, user_a.id, open_count.id, [
            CountEntryInput(items[product_a.id].id, 10),
            CountEntryInput(items[product_a2.id].id, 5),
        ])
        review_stock_count(tenant_a.id, user_a.id, open_count.id, [
            ReviewActionInput(items[product_a.id].id, "APPROVED"),
            ReviewActionInput(items[product_a2.id].id, "APPROVED"),
        ])

        stock_count, adjustment, created = post_stock_count_adjustments(tenant_a.id, user_a.id, open_count.id)
        assert (stock_count.status, adjustment, created) == ("COMPLETED", None, 0)

    def test_post_requires_review(self, open_count, tenant_a, user_a):
        """PENDING counts cannot be posted."""
        with pytest.raises(InvalidTransitionError):
            post_stock_count_adjustments(tenant_a.id, user_a.id, open_count.id)

    def test_negative_count_rejected(self, open_count, tenant_a, product_a, user_a):
        """Counted quantities cannot be negative."""
        item_id = _items_by_product(open_count)[product_a.id].id
        with pytest.raises(ValidationError):
            enter_count_data(tenant_a.id, user_a.id, open_count.id, [CountEntryInput(item_id, -1)])
        assert get_stock_count(tenant_a.id, open_count.id).status == "PENDING"

    def test_invalid_review_action(self, open_count, tenant_a, product_a, user_a):
        """PENDING is not a review action."""
        item_id = _items_by_product(open_count)[product_a.id].id
        with pytest.raises(ValidationError):
            review_stock_count(tenant_a.id, user_a.id, open_count.id, [ReviewActionInput(item_id, "PENDING")])

    def test_summary(self, open_count, tenant_a, product_a, product_a2, user_a):
        """Summary totals variance quantity and value."""
        items = _items_by_product(open_count)
        enter_count_data(tenant_a.id, user_a.id, open_count.id, [
            CountEntryInput(items[product_a.id].id, 7),
        ])
        summary = get_count_summary(tenant_a.id, open_count.id)

        assert summary["total_items"] == 2
        assert summary["items_by_status"]["COUNTED"] == 1
        assert summary["items_by_status"]["PENDING"] == 1
        assert summary["items_by_status"]["APPROVED"] == 0
        assert summary["items_with_variance"] == 1
        assert summary["net_variance_quantity"] == "-3.0000"
        assert summary["variance_value"] == "-6.0000"
        assert summary["adjustment_id"] is None


class TestCancelCount:
    """Cancellation has no stock effect."""

    def test_cancel_open_count(self, open_count, tenant_a, location_a, product_a, user_a):
        """Open counts cancel and keep stock as it was."""
        stock_count = cancel_stock_count(tenant_a.id, user_a.id, open_count.id, reason="Store closed")

        assert stock_count.status == "CANCELLED"
        assert "Cancelled: Store closed" in stock_count.notes
        assert get_quantity_on_hand(tenant_a.id, product_a.id, location_a.id) == Decimal("10")
        assert list_stock_counts(tenant_a.id, status="CANCELLED")["count"] == 1

    def test_cannot_enter_after_cancel(self, open_count, tenant_a, product_a, user_a):
        """Cancelled counts reject data entry."""
        item_id = _items_by_product(open_count)[product_a.id].id
        cancel_stock_count(tenant_a.id, user_a.id, open_count.id)

        with pytest.raises(InvalidTransitionError):
            enter_count_data(tenant_a.id, user_a.id, open_count.id, [CountEntryInput(item_id, 1)])


class TestCountEdges:
    """Edge cases in entering and reviewing counts."""

    def test_unknown_item_skipped_on_entry(self, open_count, tenant_a, product_a, user_a):
        """Entries for items not on the count are ignored; the rest are recorded."""
        item_id = _items_by_product(open_count)[product_a.id].id

        counted = enter_count_data(tenant_a.id, user_a.id, open_count.id, [
            CountEntryInput(999999, 3),
            CountEntryInput(item_id, 9),
        ])

        assert counted.status == "COUNTING"
        items = _items_by_product(counted)
        assert items[product_a.id].counted_quantity == Decimal("9")
        assert 999999 not in {item.id for item in counted.items}

    def test_review_of_pending_item_is_noop(self, open_count, tenant_a, product_a, product_a2, user_a):
        """Approving an uncounted item leaves it PENDING without raising."""
        items = _items_by_product(open_count)
        enter_count_data(tenant_a.id, user_a.id, open_count.id, [
            CountEntryInput(items[product_a.id].id, 10),
        ])

        reviewed = review_stock_count(tenant_a.id, user_a.id, open_count.id, [
            ReviewActionInput(items[product_a2.id].id, "APPROVED"),
        ])

        reviewed_items = _items_by_product(reviewed)
        assert reviewed.status == "REVIEW"
        assert reviewed_items[product_a2.id].status == "PENDING"
        assert reviewed_items[product_a2.id].reviewed_by_user_id is None
        assert reviewed_items[product_a.id].status == "COUNTED"

    def test_reentry_during_review_needs_new_approval(
        self, open_count, tenant_a, location_a, product_a, product_a2, user_a
    ):
        """A recount entered in REVIEW replaces the variance and resets the item to COUNTED."""
        items = _items_by_product(open_count)
        enter_count_data(tenant_a.id, user_a.id, open_count.id, [
            CountEntryInput(items[product_a.id].id, 8),
            CountEntryInput(items[product_a2.id].id, 5),
        ])
        review_stock_count(tenant_a.id, user_a.id, open_count.id, [
            ReviewActionInput(items[product_a.id].id, "APPROVED"),
            ReviewActionInput(items[product_a2.id].id, "APPROVED"),
        ])

        recounted = enter_count_data(tenant_a.id, user_a.id, open_count.id, [
            CountEntryInput(items[product_a.id].id, 9),
        ])

        item = _items_by_product(recounted)[product_a.id]
        assert recounted.status == "REVIEW"
        assert item.status == "COUNTED"
        assert item.variance_quantity == Decimal("-1")

        # Unapproved recount is not posted
        _, adjustment, created = post_stock_count_adjustments(tenant_a.id, user_a.id, open_count.id)
        assert (adjustment, created) == (None, 0)
        assert get_quantity_on_hand(tenant_a.id, product_a.id, location_a.id) == Decimal("10")

    def test_sale_after_initiation_keeps_snapshot(
        self, open_count, db_session, tenant_a, location_a, product_a, product_a2, user_a
    ):
        """Variance is measured against the snapshot, not stock that moved later."""
        with unit_of_work(tenant_a.id) as uow:
            uow.ledger.record_movement(
                user_id=user_a.id,
                product_id=product_a.id,
                location_id=location_a.id,
                quantity_change=-3,
                transaction_type=InventoryTransactionType.SALE,
            )

        items = _items_by_product(open_count)
        counted = enter_count_data(tenant_a.id, user_a.id, open_count.id, [
            CountEntryInput(items[product_a.id].id, 7),
        ])
        item = _items_by_product(counted)[product_a.id]
        assert item.snapshot_quantity == Decimal("10")
        assert item.variance_quantity == Decimal("-3")

        review_stock_count(tenant_a.id, user_a.id, open_count.id, [
            ReviewActionInput(items[product_a.id].id, "APPROVED"),
            ReviewActionInput(items[product_a2.id].id, "SKIPPED"),
        ])
        _, adjustment, created = post_stock_count_adjustments(tenant_a.id, user_a.id, open_count.id)

        assert created == 1
        txn = db_session.query(InventoryTransaction).filter_by(related_adjustment_id=adjustment.id).one()
        assert txn.quantity_change == Decimal("-3")
        assert get_quantity_on_hand(tenant_a.id, product_a.id, location_a.id) == Decimal("4")
