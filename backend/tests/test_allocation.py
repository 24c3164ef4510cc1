# Overview: Pytest coverage for FIFO-by-expiry batch allocation.

"""
Allocation Engine Tests

Verifies:
1. AUTO picks the earliest-expiring eligible batch (id breaks ties)
2. Expired, retired and empty batches are never offered
3. A batch expiring today is already unsellable (day-0 boundary)
4. ExpiringSoon warning inside the warning window
5. MANUAL returns the eligible list or validates the chosen batch
6. Split plans across batches for lines without a batch
7. Input validation happens before any database work
"""

from datetime import timedelta

import pytest

from batchpos.errors import InsufficientBatchQuantityError, NoEligibleBatchesError, NotFoundError
from batchpos.services import allocation_service, batch_service
from batchpos.services.allocation_service import AUTO, MANUAL, BatchAllocation, ExpiringSoon
from batchpos.validation import ValidationError


class TestAutoSelection:

    def test_auto_picks_earliest_expiry(self, db_session, manager_a, cashier_a, product_a, receive):
        late = receive(manager_a, product_a, "B2", expires_in=60, quantity=30)
        early = receive(manager_a, product_a, "B1", expires_in=10, quantity=20)

        allocation = allocation_service.allocate(cashier_a, product_a.id, 5, AUTO)

        assert isinstance(allocation, BatchAllocation)
        assert allocation.batch_id == early.id
        assert allocation.batch_id != late.id
        assert allocation.batch_number == "B1"
        assert allocation.available_qty == 20

    def test_same_expiry_tie_broken_by_id(self, db_session, manager_a, cashier_a, product_a, receive):
        first = receive(manager_a, product_a, "LOT-1", expires_in=40, quantity=5)
        receive(manager_a, product_a, "LOT-2", expires_in=40, quantity=5)

        allocation = allocation_service.allocate(cashier_a, product_a.id, 1, AUTO)

        assert allocation.batch_id == first.id

    def test_auto_does_not_split(self, db_session, manager_a, cashier_a, product_a, receive):
        receive(manager_a, product_a, "B1", expires_in=10, quantity=3)
        receive(manager_a, product_a, "B2", expires_in=60, quantity=30)

        with pytest.raises(InsufficientBatchQuantityError) as exc:
            allocation_service.allocate(cashier_a, product_a.id, 5, AUTO)

        assert exc.value.details["available_qty"] == 3

    def test_allocation_is_side_effect_free(self, db_session, manager_a, cashier_a, product_a, receive):
        batch = receive(manager_a, product_a, "B1", expires_in=10, quantity=20)

        allocation_service.allocate(cashier_a, product_a.id, 5, AUTO)
        allocation_service.allocate(cashier_a, product_a.id, 5, AUTO)

        db_session.refresh(batch)
        db_session.refresh(product_a)
        assert batch.remaining_quantity == 20
        assert product_a.stock_quantity == 20


class TestEligibility:

    def test_expired_batch_excluded(self, db_session, manager_a, cashier_a, product_a, receive):
        receive(manager_a, product_a, "OLD", expires_in=-3, quantity=50)
        fresh = receive(manager_a, product_a, "NEW", expires_in=90, quantity=10)

        allocation = allocation_service.allocate(cashier_a, product_a.id, 1, AUTO)

        assert allocation.batch_id == fresh.id

    def test_batch_expiring_today_is_excluded(self, db_session, manager_a, cashier_a, product_a, receive, today):
        receive(manager_a, product_a, "DAY0", expires_in=0, quantity=50)

        with pytest.raises(NoEligibleBatchesError):
            allocation_service.allocate(cashier_a, product_a.id, 1, AUTO, today=today)

    def test_batch_expiring_tomorrow_is_sellable(self, db_session, manager_a, cashier_a, product_a, receive, today):
        batch = receive(manager_a, product_a, "DAY1", expires_in=1, quantity=50)

        allocation = allocation_service.allocate(cashier_a, product_a.id, 1, AUTO, today=today)

        assert allocation.batch_id == batch.id
        assert allocation.warning == ExpiringSoon(days_remaining=1)

    def test_retired_batch_excluded(self, db_session, manager_a, cashier_a, product_a, receive):
        retired = receive(manager_a, product_a, "B1", expires_in=10, quantity=20)
        kept = receive(manager_a, product_a, "B2", expires_in=60, quantity=30)
        batch_service.retire_batch(manager_a, retired.id)

        eligible = allocation_service.list_eligible_batches(cashier_a, product_a.id)

        assert [a.batch_id for a in eligible] == [kept.id]

    def test_no_batches_at_all(self, db_session, cashier_a, product_a):
        with pytest.raises(NoEligibleBatchesError):
            allocation_service.allocate(cashier_a, product_a.id, 1, AUTO)

    def test_inactive_product_rejected(self, db_session, manager_a, cashier_a, product_a, receive):
        receive(manager_a, product_a, "B1", expires_in=10, quantity=20)
        product_a.is_active = False
        db_session.commit()

        with pytest.raises(ValidationError):
            allocation_service.allocate(cashier_a, product_a.id, 1, AUTO)


class TestExpiryWarning:

    def test_warning_inside_window(self, db_session, manager_a, cashier_a, product_a, receive, today):
        receive(manager_a, product_a, "B1", expires_in=30, quantity=20)

        allocation = allocation_service.allocate(cashier_a, product_a.id, 1, AUTO, today=today)

        assert allocation.warning is not None
        assert allocation.warning.days_remaining == 30
        assert allocation.to_dict()["warning"] == {"type": "EXPIRING_SOON", "days_remaining": 30}

    def test_no_warning_outside_window(self, db_session, manager_a, cashier_a, product_a, receive, today):
        receive(manager_a, product_a, "B1", expires_in=31, quantity=20)

        allocation = allocation_service.allocate(cashier_a, product_a.id, 1, AUTO, today=today)

        assert allocation.warning is None


class TestManualSelection:

    def test_manual_without_batch_returns_choices(self, db_session, manager_a, cashier_a, product_a, receive):
        b2 = receive(manager_a, product_a, "B2", expires_in=60, quantity=30)
        b1 = receive(manager_a, product_a, "B1", expires_in=10, quantity=20)

        choices = allocation_service.select_batch(cashier_a, product_a.id, 1, MANUAL)

        assert [c.batch_id for c in choices] == [b1.id, b2.id]

    def test_manual_accepts_later_batch(self, db_session, manager_a, cashier_a, product_a, receive):
        receive(manager_a, product_a, "B1", expires_in=10, quantity=20)
        b2 = receive(manager_a, product_a, "B2", expires_in=60, quantity=30)

        allocation = allocation_service.allocate(cashier_a, product_a.id, 25, MANUAL, batch_id=b2.id)

        assert allocation.batch_id == b2.id
        assert allocation.warning is None

    def test_manual_rejects_expired_choice(self, db_session, manager_a, cashier_a, product_a, receive):
        expired = receive(manager_a, product_a, "OLD", expires_in=-1, quantity=20)
        receive(manager_a, product_a, "NEW", expires_in=60, quantity=30)

        with pytest.raises(NoEligibleBatchesError):
            allocation_service.allocate(cashier_a, product_a.id, 1, MANUAL, batch_id=expired.id)

    def test_manual_rejects_short_batch(self, db_session, manager_a, cashier_a, product_a, receive):
        b1 = receive(manager_a, product_a, "B1", expires_in=10, quantity=4)

        with pytest.raises(InsufficientBatchQuantityError):
            allocation_service.allocate(cashier_a, product_a.id, 5, MANUAL, batch_id=b1.id)

    def test_allocate_manual_requires_batch(self, db_session, cashier_a, product_a):
        with pytest.raises(ValidationError):
            allocation_service.allocate(cashier_a, product_a.id, 1, MANUAL)


class TestInputValidation:

    @pytest.mark.parametrize("qty", [0, -1, "abc", 1.5, True, None, "\u00b2", "\u2460", ""])
    def test_bad_quantity(self, db_session, cashier_a, qty):
        # Product id that does not exist: validation must fail first
        with pytest.raises(ValidationError):
            allocation_service.select_batch(cashier_a, 999999, qty, AUTO)

    def test_bad_mode(self, db_session, cashier_a):
        with pytest.raises(ValidationError):
            allocation_service.select_batch(cashier_a, 999999, 1, "LIFO")

    def test_unknown_product(self, db_session, cashier_a):
        with pytest.raises(NotFoundError):
            allocation_service.select_batch(cashier_a, 999999, 1, AUTO)

    def test_foreign_product_not_visible(self, db_session, manager_b, cashier_a, product_b, receive):
        receive(manager_b, product_b, "B1", expires_in=10, quantity=20)

        with pytest.raises(NotFoundError):
            allocation_service.select_batch(cashier_a, product_b.id, 1, AUTO)


class TestSplitAllocation:

    def test_split_draws_fifo(self, db_session, manager_a, cashier_a, product_a, receive):
        b1 = receive(manager_a, product_a, "B1", expires_in=10, quantity=20)
        b2 = receive(manager_a, product_a, "B2", expires_in=60, quantity=30)

        plan = allocation_service.split_allocation(cashier_a, product_a.id, 25)

        assert [(a.batch_id, a.quantity) for a in plan] == [(b1.id, 20), (b2.id, 5)]

    def test_split_short_of_stock(self, db_session, manager_a, cashier_a, product_a, receive):
        receive(manager_a, product_a, "B1", expires_in=10, quantity=20)
        receive(manager_a, product_a, "OLD", expires_in=-5, quantity=100)

        with pytest.raises(InsufficientBatchQuantityError) as exc:
            allocation_service.split_allocation(cashier_a, product_a.id, 21)

        assert exc.value.details["available_qty"] == 20

    def test_split_plan_serializes_quantity(self, db_session, manager_a, cashier_a, product_a, receive, today):
        receive(manager_a, product_a, "B1", expires_in=10, quantity=20)

        plan = allocation_service.split_allocation(cashier_a, product_a.id, 2, today=today)

        data = plan[0].to_dict()
        assert data["quantity"] == 2
        assert data["expiry_date"] == (today + timedelta(days=10)).isoformat()
